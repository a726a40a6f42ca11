"""Memory-safe utilities for JAX-based statistics."""

from __future__ import annotations

from typing import TYPE_CHECKING

import jax
import jax.numpy as jnp
from jax import lax

from pottstats.errors import ResourceError

if TYPE_CHECKING:
  from collections.abc import Callable
  from typing import Any


def safe_map(fn: Callable, xs: Any, batch_size: int):
  """Memory-safe version of jax.vmap using jax.lax.map.

  Processes the input data in chunks of batch_size, so that per-element
  intermediates (e.g. one row of pairwise identities) never exist for the
  whole input at once.

  Args:
      fn: The function to apply.
      xs: The input data (array or PyTree of arrays).
      batch_size: Number of elements to process in parallel.

  Returns:
      The result of applying fn to xs.
  """
  n = jax.tree_util.tree_leaves(xs)[0].shape[0]
  return lax.map(fn, xs, batch_size=max(1, min(batch_size, n)))


def estimate_memory_usage(shapes: list[tuple], dtypes: list[jnp.dtype]) -> float:
  """Estimates memory usage in bytes.

  Args:
      shapes: List of array shapes.
      dtypes: List of array dtypes.

  Returns:
      Estimated memory usage in bytes.
  """
  total_bytes = 0
  for shape, dtype in zip(shapes, dtypes, strict=True):
    size = 1
    for dim in shape:
      size *= dim
    total_bytes += size * jnp.dtype(dtype).itemsize
  return total_bytes


def check_memory_budget(
  shapes: list[tuple],
  dtypes: list[jnp.dtype],
  limit_bytes: int | None,
  what: str = "arrays",
) -> None:
  """Raise ResourceError if the arrays would exceed ``limit_bytes``.

  A limit of None disables the check.
  """
  if limit_bytes is None:
    return
  required = estimate_memory_usage(shapes, dtypes)
  if required > limit_bytes:
    raise ResourceError(
      f"Allocating {what} needs {required / 2**20:.1f} MiB, "
      f"above the limit of {limit_bytes / 2**20:.1f} MiB"
    )
