"""Unit tests for reweighting.py using pytest and chex."""

import chex
import jax.numpy as jnp
import numpy as np
import pytest

from pottstats.alphabet import DNA_ALPHABET
from pottstats.errors import ConfigurationWarning
from pottstats.loader import load_alignment
from pottstats.reweighting import (
  count_neighbors_ordered,
  count_neighbors_symmetric,
  identity_threshold,
  reweight_sequences,
)


@pytest.fixture
def clustered():
  records = [("a", "AAAA"), ("b", "AAAA"), ("c", "AAAC"), ("d", "CCCC")]
  return load_alignment(records, DNA_ALPHABET)


def related_sequences(n_seqs: int, n_sites: int, seed: int = 0) -> jnp.ndarray:
  """Mutants of a few ancestors, so that neighborhoods are non-trivial."""
  rng = np.random.default_rng(seed)
  ancestors = rng.integers(0, 5, size=(3, n_sites))
  sequences = ancestors[rng.integers(0, 3, size=n_seqs)]
  mutate = rng.random((n_seqs, n_sites)) < 0.15
  sequences = np.where(mutate, rng.integers(0, 5, size=(n_seqs, n_sites)), sequences)
  return jnp.asarray(sequences, dtype=jnp.int32)


class TestNeighborCounts:
  """Test the two neighbor counting algorithms."""

  def test_identity_threshold(self):
    assert identity_threshold(0.2, 10) == pytest.approx(8.0)
    assert identity_threshold(1.0, 10) == 0.0

  def test_symmetric_counts(self, clustered):
    counts = count_neighbors_symmetric(clustered.sequences, 3.0)
    chex.assert_shape(counts, (4,))
    np.testing.assert_array_equal(counts, [2, 2, 2, 0])

  @pytest.mark.parametrize("batch_size", [1, 7, 256])
  def test_ordered_matches_symmetric(self, batch_size):
    sequences = related_sequences(60, 25)
    threshold = identity_threshold(0.2, 25)
    symmetric = count_neighbors_symmetric(sequences, threshold)
    ordered = count_neighbors_ordered(sequences, threshold, batch_size=batch_size)
    np.testing.assert_array_equal(symmetric, ordered)
    assert int(jnp.sum(symmetric)) > 0


class TestReweightSequences:
  """Test the weights assigned to an alignment."""

  def test_strict_identity(self, clustered):
    reweighted = reweight_sequences(clustered, theta=0.2)
    np.testing.assert_allclose(reweighted.weights, [0.5, 0.5, 1.0, 1.0])
    assert reweighted.n_eff == pytest.approx(3.0)

  def test_looser_threshold(self, clustered):
    reweighted = reweight_sequences(clustered, theta=0.25)
    np.testing.assert_allclose(reweighted.weights, [1 / 3, 1 / 3, 1 / 3, 1.0])
    assert reweighted.n_eff == pytest.approx(2.0)

  def test_theta_one_makes_everyone_neighbors(self, clustered):
    reweighted = reweight_sequences(clustered, theta=1.0)
    np.testing.assert_allclose(reweighted.weights, np.full(4, 0.25))
    assert reweighted.n_eff == pytest.approx(1.0)

  def test_scale(self, clustered):
    reweighted = reweight_sequences(clustered, theta=0.2, scale=2.0)
    np.testing.assert_allclose(reweighted.weights, [1.0, 1.0, 2.0, 2.0])
    assert reweighted.n_eff == pytest.approx(6.0)

  def test_parallel_matches_sequential(self):
    rows = related_sequences(40, 20).tolist()
    records = [(f"s{k}", "".join(DNA_ALPHABET[c] for c in row)) for k, row in enumerate(rows)]
    alignment = load_alignment(records, DNA_ALPHABET)
    sequential = reweight_sequences(alignment, theta=0.3)
    parallel = reweight_sequences(alignment, theta=0.3, parallel=True, batch_size=16)
    np.testing.assert_allclose(sequential.weights, parallel.weights)
    assert sequential.n_eff == pytest.approx(parallel.n_eff)

  @pytest.mark.parametrize("theta", [-1.0, 1.5])
  def test_theta_out_of_range_disables_reweighting(self, clustered, theta):
    with pytest.warns(ConfigurationWarning, match="no sequence reweighting"):
      reweighted = reweight_sequences(clustered, theta=theta, scale=0.5)
    np.testing.assert_allclose(reweighted.weights, np.full(4, 0.5))
    assert reweighted.n_eff == pytest.approx(2.0)

  def test_non_positive_scale(self, clustered):
    with pytest.raises(ValueError, match="must be positive"):
      reweight_sequences(clustered, theta=0.2, scale=0.0)

  def test_input_unchanged(self, clustered):
    reweight_sequences(clustered, theta=0.2)
    np.testing.assert_allclose(clustered.weights, np.ones(4))
