"""The decoded alignment and the statistics attached to it."""

from __future__ import annotations

from typing import NamedTuple

import jax.numpy as jnp
import numpy as np

from pottstats.alphabet import decode_sequence
from pottstats.types import (
  Codes,
  GapFrequencies,
  Offsets,
  PairMarginals,
  Scalar,
  SiteMarginals,
  UngapFrequencies,
  Weights,
)


def pair_index(i: int | Scalar, j: int | Scalar, n_sites: int) -> Scalar:
  """Return the packed index of the unordered site pair ``{i, j}``.

  Pairs are stored for ``i < j`` in row-major order: ``(0, 1), (0, 2), ...,
  (0, L-1), (1, 2), ...``. The arguments may be given in either order and may
  be traced JAX integers.
  """
  lo = jnp.minimum(i, j)
  hi = jnp.maximum(i, j)
  return lo * n_sites - lo * (lo + 1) // 2 + (hi - lo - 1)


def pair_indices(n_sites: int) -> tuple[np.ndarray, np.ndarray]:
  """Return the ``(i, j)`` site indices of every packed pair, in storage order."""
  return np.triu_indices(n_sites, k=1)


class Alignment(NamedTuple):
  """A symbol-encoded alignment with its weights and marginal statistics.

  Instances are immutable; each processing phase returns an updated copy via
  ``_replace`` that keeps everything computed before it.
  """

  sequences: Codes
  """Symbol codes, one row per sequence, all in ``[0, n_codes - 1]``."""
  names: tuple[str, ...]
  """Sequence identifiers, one per row."""
  alphabet: str
  """The alphabet, gap first."""
  weights: Weights
  """Positive per-sequence weights."""
  n_eff: float
  """Sum of ``weights``."""
  target: int | None = None
  """Row of the focus sequence, if one was selected."""
  offsets: Offsets | None = None
  """1-based original positions of the retained columns (focus mode only)."""
  gap_reduced: bool = False
  """Whether the marginals are conditioned on non-gap symbols."""
  fi: SiteMarginals | None = None
  """First-order marginals, ``n_sites x n_states``."""
  fij: PairMarginals | None = None
  """Second-order marginals, ``n_pairs x n_states x n_states``."""
  gapi: GapFrequencies | None = None
  """Per-site gap frequency (gap-reduced only)."""
  ungapij: UngapFrequencies | None = None
  """Per-pair frequency of both sites being ungapped (gap-reduced only)."""

  @property
  def n_seqs(self) -> int:
    return self.sequences.shape[0]

  @property
  def n_sites(self) -> int:
    return self.sequences.shape[1]

  @property
  def n_codes(self) -> int:
    return len(self.alphabet)

  @property
  def n_states(self) -> int:
    """Number of modeled states: the gap is dropped under the gap-reduced convention."""
    return self.n_codes - 1 if self.gap_reduced else self.n_codes

  @property
  def n_pairs(self) -> int:
    return self.n_sites * (self.n_sites - 1) // 2

  @property
  def has_marginals(self) -> bool:
    return self.fi is not None and self.fij is not None

  def seq(self, s: int, i: int) -> int:
    """Return the code of sequence ``s`` at site ``i``."""
    assert 0 <= s < self.n_seqs, f"sequence {s} out of range"
    assert 0 <= i < self.n_sites, f"site {i} out of range"
    return int(self.sequences[s, i])

  def site_marginal(self, i: int, a: int) -> float:
    """Return ``fi(i, a)``."""
    assert self.fi is not None, "marginals have not been counted"
    assert 0 <= i < self.n_sites, f"site {i} out of range"
    assert 0 <= a < self.n_states, f"state {a} out of range"
    return float(self.fi[i, a])

  def pair_marginal(self, i: int, j: int, a: int, b: int) -> float:
    """Return ``fij(i, j, a, b)``; ``a`` is the state at ``i`` and ``b`` at ``j``."""
    assert self.fij is not None, "marginals have not been counted"
    assert i != j, "pair marginals need two distinct sites"
    assert 0 <= i < self.n_sites and 0 <= j < self.n_sites, f"pair ({i}, {j}) out of range"
    assert 0 <= a < self.n_states and 0 <= b < self.n_states, f"states ({a}, {b}) out of range"
    block = self.fij[pair_index(i, j, self.n_sites)]
    return float(block[a, b] if i < j else block[b, a])

  def pair_ungapped(self, i: int, j: int) -> float:
    """Return the weighted frequency of sequences ungapped at both ``i`` and ``j``."""
    assert self.ungapij is not None, "gap statistics are only kept for gap-reduced marginals"
    assert i != j, "pair statistics need two distinct sites"
    return float(self.ungapij[pair_index(i, j, self.n_sites)])

  def decode(self, s: int) -> str:
    """Render sequence ``s`` back to characters."""
    assert 0 <= s < self.n_seqs, f"sequence {s} out of range"
    return decode_sequence(np.asarray(self.sequences[s]), self.alphabet)

  def with_weights(self, weights: Weights) -> Alignment:
    """Return a copy with new weights and the matching ``n_eff``."""
    return self._replace(weights=weights, n_eff=float(jnp.sum(weights)))
