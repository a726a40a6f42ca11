"""Unit tests for padding.py using pytest and chex."""

import chex
import jax
import jax.numpy as jnp
import pytest

from pottstats.errors import ResourceError
from pottstats.padding import DRAW_BUCKETS, create_draw_mask, get_bucket, get_draw_bucket


class TestBuckets:
  """Test bucket selection logic."""

  def test_get_bucket_exact_match(self):
    assert get_bucket(32, DRAW_BUCKETS) == 32
    assert get_bucket(64, DRAW_BUCKETS) == 64

  def test_get_bucket_between_values(self):
    assert get_bucket(50, DRAW_BUCKETS) == 64
    assert get_bucket(100, DRAW_BUCKETS) == 128
    assert get_bucket(33, DRAW_BUCKETS) == 64

  def test_get_bucket_exceeds_all(self):
    with pytest.raises(ValueError, match="exceeds all buckets"):
      get_bucket(1000, (32, 64))

  def test_get_draw_bucket(self):
    assert get_draw_bucket(1) == 32
    assert get_draw_bucket(1001) == 1024
    assert get_draw_bucket(2**22) == 2**22

  def test_get_draw_bucket_too_large(self):
    with pytest.raises(ResourceError, match="Cannot simulate"):
      get_draw_bucket(2**22 + 1)

  def test_resource_error_is_memory_error(self):
    with pytest.raises(MemoryError):
      get_draw_bucket(2**30)


class TestMasks:
  """Test mask creation functions."""

  def test_create_draw_mask(self):
    mask = create_draw_mask(3, 5)
    chex.assert_shape(mask, (5,))
    assert jnp.array_equal(mask, jnp.array([True, True, True, False, False]))

  def test_create_draw_mask_empty(self):
    assert not bool(jnp.any(create_draw_mask(0, 32)))


class TestRecompilationPrevention:
  """Test that padded operations avoid recompilation."""

  def test_same_bucket_masked_counts(self):
    """Draw counts of different size in the same bucket share one padded buffer."""

    @jax.jit
    def count_masked(draws, n):
      return jnp.sum(jnp.where(create_draw_mask(n, draws.shape[0]), draws, 0))

    draws = jnp.ones(get_draw_bucket(50), dtype=jnp.int32)
    assert int(count_masked(draws, 50)) == 50
    assert int(count_masked(draws, 60)) == 60
