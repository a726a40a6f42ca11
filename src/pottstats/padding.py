"""Padding and masking utilities for static-shape JAX compilation.

The sample size estimator draws a variable number ``n`` of joint samples per
trial, but XLA needs static shapes. Draw buffers are therefore padded to a
bucket ceiling and a mask excludes the padded draws from the counts, so that
the jitted batch is only recompiled when ``n`` crosses into a new bucket.

Bucketing Strategy:
    - draws: powers of two from 2^5 to 2^22
"""

from __future__ import annotations

import jax.numpy as jnp
from jaxtyping import Array

from pottstats.errors import ResourceError
from pottstats.utils.types import DrawMask

# Bucket definitions
DRAW_BUCKETS: tuple[int, ...] = tuple(2**k for k in range(5, 23))


def get_bucket(value: int, buckets: tuple[int, ...]) -> int:
  """Find the smallest bucket that can fit the value.

  Args:
      value: The actual parameter value.
      buckets: Tuple of bucket sizes in ascending order.

  Returns:
      The bucket size to use.

  Raises:
      ValueError: If value exceeds all buckets.
  """
  for bucket in buckets:
    if value <= bucket:
      return bucket
  raise ValueError(f"Value {value} exceeds all buckets {buckets}")


def get_draw_bucket(n_draws: int) -> int:
  """Get the draw-buffer bucket for a number of draws.

  Args:
      n_draws: Largest number of draws a trial may request.

  Returns:
      The padded buffer length.

  Raises:
      ResourceError: If the sample size is beyond the largest bucket.
  """
  try:
    return get_bucket(n_draws, DRAW_BUCKETS)
  except ValueError as e:
    raise ResourceError(f"Cannot simulate samples of size {n_draws}") from e


def create_draw_mask(real_n: Array | int, padded_n: int) -> DrawMask:
  """Create a mask for valid draw positions.

  Args:
      real_n: Actual number of draws (may be traced).
      padded_n: Padded buffer length.

  Returns:
      Boolean mask of shape (padded_n,), True for valid draws.
  """
  return jnp.arange(padded_n) < real_n

