"""Sequence reweighting by inverse neighborhood density."""

from __future__ import annotations

import logging
import warnings
from functools import partial
from typing import TYPE_CHECKING

import jax
import jax.numpy as jnp

from pottstats.errors import ConfigurationWarning
from pottstats.types import Codes, NeighborCounts, Sequence, get_default_dtype
from pottstats.utils.memory import safe_map

if TYPE_CHECKING:
  from pottstats.alignment import Alignment

logger = logging.getLogger(__name__)


def identity_threshold(theta: float, n_sites: int) -> float:
  """Minimum number of identical sites for two sequences to be neighbors."""
  return (1.0 - theta) * n_sites


@jax.jit
def count_neighbors_symmetric(sequences: Codes, threshold: float) -> NeighborCounts:
  """Count neighbors by crediting both sides of every ``s < t`` pair.

  Row ``s`` is compared against all rows and the result is masked to ``t > s``,
  so each neighbor pair increments both ``s`` and ``t`` exactly once. The
  identity computation itself still covers all rows.

  Args:
      sequences: Encoded alignment.
      threshold: Identity count at or above which two sequences are neighbors.

  Returns:
      Number of neighbors of every sequence, excluding itself.

  """
  n_seqs = sequences.shape[0]
  indices = jnp.arange(n_seqs)

  def body_fun(s: int, counts: NeighborCounts) -> NeighborCounts:
    identity = jnp.sum(sequences == sequences[s][None, :], axis=1)
    is_neighbor = (identity >= threshold) & (indices > s)
    counts = counts.at[s].add(jnp.sum(is_neighbor).astype(jnp.int32))
    return counts + is_neighbor.astype(jnp.int32)

  return jax.lax.fori_loop(0, n_seqs, body_fun, jnp.zeros(n_seqs, dtype=jnp.int32))


@partial(jax.jit, static_argnames=("batch_size",))
def count_neighbors_ordered(sequences: Codes, threshold: float, batch_size: int = 256) -> NeighborCounts:
  """Count neighbors comparing every ordered pair of sequences.

  Each output row depends only on its own comparisons, so rows are processed
  independently in chunks of ``batch_size``.

  Args:
      sequences: Encoded alignment.
      threshold: Identity count at or above which two sequences are neighbors.
      batch_size: Number of rows compared at once.

  Returns:
      Number of neighbors of every sequence, excluding itself.

  """

  def row_neighbors(row: Sequence) -> jax.Array:
    identity = jnp.sum(sequences == row[None, :], axis=1)
    # The row always matches itself.
    return (jnp.sum(identity >= threshold) - 1).astype(jnp.int32)

  return safe_map(row_neighbors, sequences, batch_size)


def reweight_sequences(
  alignment: Alignment,
  theta: float,
  scale: float = 1.0,
  *,
  parallel: bool = False,
  batch_size: int = 256,
) -> Alignment:
  """Weight each sequence by the inverse size of its neighborhood.

  A sequence's neighborhood is itself plus every other sequence sharing at
  least ``(1 - theta) * n_sites`` identical sites, and its weight is
  ``scale / (1 + n_neighbors)``. With ``theta`` outside [0, 1] no reweighting
  is applied and every weight is ``scale``.

  Args:
      alignment: The loaded alignment.
      theta: Neighborhood divergence threshold.
      scale: Effective number of samples per neighborhood; must be positive.
      parallel: Compare all ordered pairs in independent chunks instead of
          each unordered pair once. Both give identical weights.
      batch_size: Chunk size for the ordered comparison.

  Returns:
      The alignment with new weights and ``n_eff``.

  Raises:
      ValueError: If ``scale`` is not positive.

  """
  if not scale > 0:
    raise ValueError(f"Neighborhood scale must be positive, got {scale}")

  dtype = get_default_dtype()
  if not 0 <= theta <= 1:
    warnings.warn(
      f"Theta {theta} not between 0 and 1, no sequence reweighting applied",
      ConfigurationWarning,
      stacklevel=2,
    )
    weights = jnp.full(alignment.n_seqs, scale, dtype=dtype)
    return alignment._replace(weights=weights, n_eff=alignment.n_seqs * scale)

  threshold = identity_threshold(theta, alignment.n_sites)
  if parallel:
    neighbors = count_neighbors_ordered(alignment.sequences, threshold, batch_size=batch_size)
  else:
    neighbors = count_neighbors_symmetric(alignment.sequences, threshold)

  weights = (scale / (1.0 + neighbors.astype(jnp.float64))).astype(dtype)
  alignment = alignment.with_weights(weights)
  logger.info(
    "Neighborhood sample size: %.1f\t(%.0f%% identical neighborhood = %.3f samples)",
    alignment.n_eff,
    100 * (1 - theta),
    scale,
  )
  return alignment
