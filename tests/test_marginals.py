"""Unit tests for marginals.py using pytest and chex."""

import logging

import chex
import jax.numpy as jnp
import numpy as np
import pytest

from pottstats.alignment import pair_indices
from pottstats.alphabet import DNA_ALPHABET, PROTEIN_ALPHABET
from pottstats.configs import MarginalMode
from pottstats.errors import DegenerateColumnError, ResourceError
from pottstats.loader import load_alignment
from pottstats.marginals import count_marginals, one_hot_states
from pottstats.reweighting import reweight_sequences
from pottstats.types import set_default_dtype


def random_alignment(n_seqs: int = 30, n_sites: int = 4, seed: int = 0):
  rng = np.random.default_rng(seed)
  rows = rng.integers(0, len(DNA_ALPHABET), size=(n_seqs, n_sites))
  records = [(f"s{k}", "".join(DNA_ALPHABET[c] for c in row)) for k, row in enumerate(rows.tolist())]
  return load_alignment(records, DNA_ALPHABET)


class TestOneHot:
  """Test state encoding."""

  def test_standard(self):
    one_hot = one_hot_states(jnp.array([[0, 2]]), 5, gap_reduced=False)
    chex.assert_shape(one_hot, (1, 2, 5))
    np.testing.assert_array_equal(one_hot[0, 0], [1, 0, 0, 0, 0])

  def test_gap_reduced_gap_is_zero(self):
    one_hot = one_hot_states(jnp.array([[0, 2]]), 4, gap_reduced=True)
    np.testing.assert_array_equal(one_hot[0, 0], [0, 0, 0, 0])
    np.testing.assert_array_equal(one_hot[0, 1], [0, 1, 0, 0])


class TestStandardMarginals:
  """Test marginals over all codes, normalized by n_eff."""

  def test_small_example(self):
    alignment = load_alignment([("a", "AC"), ("b", "AG")], DNA_ALPHABET)
    alignment = count_marginals(alignment)
    chex.assert_shape(alignment.fi, (2, 5))
    chex.assert_shape(alignment.fij, (1, 5, 5))
    assert alignment.site_marginal(0, 1) == pytest.approx(1.0)
    assert alignment.site_marginal(1, 2) == pytest.approx(0.5)
    assert alignment.site_marginal(1, 3) == pytest.approx(0.5)
    assert alignment.pair_marginal(0, 1, 1, 2) == pytest.approx(0.5)
    assert alignment.pair_marginal(0, 1, 1, 3) == pytest.approx(0.5)
    assert alignment.gapi is None
    assert alignment.ungapij is None

  def test_normalized_and_consistent(self):
    alignment = reweight_sequences(random_alignment(), theta=0.6)
    alignment = count_marginals(alignment)
    np.testing.assert_allclose(jnp.sum(alignment.fi, axis=1), 1.0, rtol=1e-10)
    np.testing.assert_allclose(jnp.sum(alignment.fij, axis=(1, 2)), 1.0, rtol=1e-10)
    # Row sums of each pair block recover the site marginals.
    block = alignment.fij[0]
    np.testing.assert_allclose(jnp.sum(block, axis=1), alignment.fi[0], atol=1e-12)
    np.testing.assert_allclose(jnp.sum(block, axis=0), alignment.fi[1], atol=1e-12)

  def test_pair_marginal_symmetry(self):
    alignment = count_marginals(random_alignment())
    for a in range(alignment.n_states):
      for b in range(alignment.n_states):
        assert alignment.pair_marginal(2, 0, b, a) == alignment.pair_marginal(0, 2, a, b)

  def test_batch_size_invariance(self):
    alignment = random_alignment(n_sites=6)
    full = count_marginals(alignment, batch_size=1024)
    chunked = count_marginals(alignment, batch_size=4)
    np.testing.assert_allclose(full.fij, chunked.fij)

  def test_single_site(self):
    alignment = count_marginals(load_alignment([("a", "A"), ("b", "C")], DNA_ALPHABET))
    chex.assert_shape(alignment.fij, (0, 5, 5))

  def test_storage_dtype(self):
    alignment = random_alignment()
    assert count_marginals(alignment).fij.dtype == jnp.float64
    set_default_dtype("float32")
    try:
      assert count_marginals(alignment).fij.dtype == jnp.float32
    finally:
      set_default_dtype("float64")

  def test_memory_limit(self):
    with pytest.raises(ResourceError, match="pair marginals"):
      count_marginals(random_alignment(), memory_limit_bytes=1)

  def test_memory_limit_counts_one_hot_states(self):
    # 4000 x 3 x 21 float64 one-hot states dwarf the three 21 x 21 pair blocks.
    rng = np.random.default_rng(0)
    rows = rng.integers(1, len(PROTEIN_ALPHABET), size=(4000, 3))
    records = [(f"s{k}", "".join(PROTEIN_ALPHABET[c] for c in row)) for k, row in enumerate(rows.tolist())]
    alignment = load_alignment(records, PROTEIN_ALPHABET)
    with pytest.raises(ResourceError, match="one-hot states"):
      count_marginals(alignment, memory_limit_bytes=100_000)
    counted = count_marginals(alignment, memory_limit_bytes=2_100_000)
    chex.assert_shape(counted.fij, (3, 21, 21))


class TestGapReducedMarginals:
  """Test marginals conditioned on non-gap symbols."""

  def test_small_example(self):
    records = [("a", "A-"), ("b", "AC"), ("c", "-C"), ("d", "AG")]
    alignment = count_marginals(load_alignment(records, DNA_ALPHABET), MarginalMode.GAP_REDUCED)
    assert alignment.gap_reduced
    chex.assert_shape(alignment.fi, (2, 4))
    chex.assert_shape(alignment.fij, (1, 4, 4))
    np.testing.assert_allclose(alignment.gapi, [0.25, 0.25])
    np.testing.assert_allclose(alignment.fi[0], [1.0, 0.0, 0.0, 0.0])
    np.testing.assert_allclose(alignment.fi[1], [0.0, 2 / 3, 1 / 3, 0.0])
    assert alignment.pair_ungapped(0, 1) == pytest.approx(0.5)
    assert alignment.pair_marginal(0, 1, 0, 1) == pytest.approx(0.5)
    assert alignment.pair_marginal(0, 1, 0, 2) == pytest.approx(0.5)

  def test_conditional_normalization(self):
    alignment = count_marginals(random_alignment(), MarginalMode.GAP_REDUCED)
    np.testing.assert_allclose(jnp.sum(alignment.fi, axis=1), 1.0, rtol=1e-10)
    np.testing.assert_allclose(jnp.sum(alignment.fij, axis=(1, 2)), 1.0, rtol=1e-10)
    assert jnp.all(alignment.ungapij <= 1.0)

  def test_ungapped_pairs_bounded_by_site_gaps(self):
    alignment = random_alignment(n_seqs=60, n_sites=7, seed=4)
    alignment = count_marginals(alignment, MarginalMode.GAP_REDUCED)
    pair_i, pair_j = pair_indices(alignment.n_sites)
    assert float(jnp.max(alignment.gapi)) > 0
    for k, (i, j) in enumerate(zip(pair_i.tolist(), pair_j.tolist(), strict=True)):
      bound = min(1.0 - float(alignment.gapi[i]), 1.0 - float(alignment.gapi[j]))
      assert float(alignment.ungapij[k]) <= bound + 1e-12

  def test_all_gap_column_is_left_at_zero(self, caplog):
    alignment = load_alignment([("a", "A-"), ("b", "C-")], DNA_ALPHABET)
    with caplog.at_level(logging.WARNING, logger="pottstats.marginals"):
      alignment = count_marginals(alignment, MarginalMode.GAP_REDUCED)
    assert "no ungapped sequences" in caplog.text
    np.testing.assert_array_equal(alignment.fi[1], np.zeros(4))
    np.testing.assert_array_equal(alignment.fij[0], np.zeros((4, 4)))
    assert bool(jnp.all(jnp.isfinite(alignment.fi)))

  def test_all_gap_column_strict(self):
    alignment = load_alignment([("a", "A-"), ("b", "C-")], DNA_ALPHABET)
    with pytest.raises(DegenerateColumnError):
      count_marginals(alignment, MarginalMode.GAP_REDUCED, strict=True)
