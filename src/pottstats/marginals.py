"""Weighted first- and second-order marginals of an alignment."""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING

import jax
import jax.numpy as jnp
import numpy as np

from pottstats.alignment import pair_indices
from pottstats.configs import MarginalMode
from pottstats.errors import DegenerateColumnError
from pottstats.types import Codes, PairMarginals, SiteMarginals, Weights, get_default_dtype
from pottstats.utils.memory import check_memory_budget, safe_map

if TYPE_CHECKING:
  from jaxtyping import Array, Float

  from pottstats.alignment import Alignment

logger = logging.getLogger(__name__)


def one_hot_states(sequences: Codes, n_states: int, *, gap_reduced: bool) -> Float[Array, "n_seqs n_sites n_states"]:
  """One-hot encode the alignment over the modeled states.

  Under the gap-reduced convention state ``a`` is code ``a + 1`` and gaps
  encode to an all-zero vector.
  """
  codes = sequences - 1 if gap_reduced else sequences
  return jax.nn.one_hot(codes, n_states, dtype=jnp.float64)


@jax.jit
def site_counts(weights: Weights, one_hot: Array) -> SiteMarginals:
  """Weighted symbol counts at every site."""
  return jnp.einsum("s,sia->ia", weights.astype(jnp.float64), one_hot)


@partial(jax.jit, static_argnames=("batch_size",))
def pair_counts(
  weights: Weights,
  one_hot: Array,
  pair_i: Array,
  pair_j: Array,
  batch_size: int = 1024,
) -> PairMarginals:
  """Weighted joint symbol counts for the given site pairs.

  Pairs are processed in chunks so that only ``batch_size`` blocks of
  per-sequence products are alive at a time.
  """
  weights = weights.astype(jnp.float64)

  def pair_block(pair: tuple[Array, Array]) -> Array:
    i, j = pair
    return jnp.einsum("s,sa,sb->ab", weights, one_hot[:, i], one_hot[:, j])

  return safe_map(pair_block, (pair_i, pair_j), batch_size)


def _normalize_rows(counts: Array, axes: tuple[int, ...]) -> tuple[Array, Array]:
  """Divide each slice by its own total; slices with zero total stay zero."""
  totals = jnp.sum(counts, axis=axes, keepdims=True)
  nonzero = totals > 0
  normalized = jnp.where(nonzero, counts / jnp.where(nonzero, totals, 1.0), 0.0)
  return normalized, jnp.squeeze(nonzero, axis=axes)


def _report_degenerate(
  site_ok: np.ndarray,
  pair_ok: np.ndarray,
  pair_i: np.ndarray,
  pair_j: np.ndarray,
  *,
  strict: bool,
) -> None:
  bad_sites = np.flatnonzero(~site_ok)
  bad_pairs = np.flatnonzero(~pair_ok)
  if bad_sites.size == 0 and bad_pairs.size == 0:
    return
  message = (
    f"{bad_sites.size} sites and {bad_pairs.size} site pairs have no ungapped sequences "
    f"(sites {(bad_sites + 1).tolist()[:10]})"
  )
  if strict:
    raise DegenerateColumnError(message)
  logger.warning("%s; their conditional marginals are left at zero", message)
  for p in bad_pairs[:10]:
    logger.debug("Degenerate pair (%d, %d)", pair_i[p] + 1, pair_j[p] + 1)


def count_marginals(
  alignment: Alignment,
  mode: MarginalMode = MarginalMode.STANDARD,
  *,
  strict: bool = False,
  batch_size: int = 1024,
  memory_limit_bytes: int | None = None,
) -> Alignment:
  """Compute weighted first- and second-order marginals.

  Process:
  1.  **Encoding**: one-hot encode the alignment over the modeled states
      (all codes, or non-gap codes for ``GAP_REDUCED``).
  2.  **Counting**: accumulate weighted counts in double precision.
      -   `fi`: Shape $(L, q)$.
      -   `fij`: Shape $(L(L-1)/2, q, q)$, one block per pair $i < j$.
  3.  **Normalization**:
      -   ``STANDARD``: divide by ``n_eff``.
      -   ``GAP_REDUCED``: ``gapi`` and ``ungapij`` are divided by ``n_eff``,
          then each ``fi`` row and ``fij`` block is divided by its own total,
          giving distributions conditioned on non-gap symbols.

  Notes:
  $$ f_i(a) = \\frac{1}{N_{eff}} \\sum_s w_s [\\sigma^s_i = a] $$
  $$ f_{ij}(a, b) = \\frac{1}{N_{eff}} \\sum_s w_s [\\sigma^s_i = a][\\sigma^s_j = b] $$

  Args:
      alignment: Weighted alignment.
      mode: Marginal convention.
      strict: Raise instead of leaving zero rows for sites or pairs without
          ungapped mass.
      batch_size: Number of pair blocks computed at once.
      memory_limit_bytes: Optional cap on the one-hot encoding plus the pair tables.

  Returns:
      The alignment with ``fi``, ``fij`` and, when gap-reduced, ``gapi`` and
      ``ungapij`` set.

  Raises:
      DegenerateColumnError: In strict mode, for sites or pairs with zero
          conditional mass.
      ResourceError: If the one-hot encoding and pair tables exceed
          ``memory_limit_bytes``.

  """
  gap_reduced = mode is MarginalMode.GAP_REDUCED
  alignment = alignment._replace(gap_reduced=gap_reduced)
  n_states = alignment.n_states
  n_pairs = alignment.n_pairs
  dtype = get_default_dtype()

  check_memory_budget(
    [
      (alignment.n_seqs, alignment.n_sites, n_states),
      (n_pairs, n_states, n_states),
      (n_pairs, n_states, n_states),
    ],
    [jnp.float64, jnp.float64, dtype],
    memory_limit_bytes,
    what="one-hot states and pair marginals",
  )

  one_hot = one_hot_states(alignment.sequences, n_states, gap_reduced=gap_reduced)
  pair_i, pair_j = pair_indices(alignment.n_sites)
  fi = site_counts(alignment.weights, one_hot)
  if n_pairs > 0:
    fij = pair_counts(alignment.weights, one_hot, jnp.asarray(pair_i), jnp.asarray(pair_j), batch_size=batch_size)
  else:
    fij = jnp.zeros((0, n_states, n_states), dtype=jnp.float64)

  z_inv = 1.0 / alignment.n_eff
  if not gap_reduced:
    return alignment._replace(
      fi=(fi * z_inv).astype(dtype),
      fij=(fij * z_inv).astype(dtype),
      gapi=None,
      ungapij=None,
    )

  gapi = jnp.einsum("s,si->i", alignment.weights.astype(jnp.float64), (alignment.sequences == 0).astype(jnp.float64))
  ungapij = jnp.sum(fij, axis=(1, 2))
  fi, site_ok = _normalize_rows(fi, (1,))
  fij, pair_ok = _normalize_rows(fij, (1, 2))
  _report_degenerate(np.asarray(site_ok), np.asarray(pair_ok), pair_i, pair_j, strict=strict)

  return alignment._replace(
    fi=fi.astype(dtype),
    fij=fij.astype(dtype),
    gapi=(gapi * z_inv).astype(dtype),
    ungapij=(ungapij * z_inv).astype(dtype),
  )
