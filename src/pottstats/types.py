"""Type definitions for pottstats."""

from typing import Literal

import jax
import jax.numpy as jnp
from jaxtyping import Array, Bool, Float, Int, PRNGKeyArray

# Weighted counts are accumulated in double precision.
jax.config.update("jax_enable_x64", True)

# JAX Aliases
PRNGKey = PRNGKeyArray

# Configuration
DTypeStr = Literal["float32", "bfloat16", "float64"]
_DEFAULT_DTYPE: DTypeStr = "float64"


# Scalar Types
Scalar = Int[Array, ""]
ScalarFloat = Float[Array, ""]

# Alignment Types
Codes = Int[Array, "n_seqs n_sites"]
Sequence = Int[Array, "n_sites"]
Weights = Float[Array, "n_seqs"]
NeighborCounts = Int[Array, "n_seqs"]
SiteMask = Bool[Array, "n_sites"]
Offsets = Int[Array, "n_sites"]

# Marginal Tables
SiteMarginals = Float[Array, "n_sites n_states"]
PairMarginals = Float[Array, "n_pairs n_states n_states"]
GapFrequencies = Float[Array, "n_sites"]
UngapFrequencies = Float[Array, "n_pairs"]


def get_default_dtype() -> jnp.dtype:
  """Return the configured default floating-point dtype."""
  return jnp.dtype(_DEFAULT_DTYPE)


def set_default_dtype(dtype: DTypeStr) -> None:
  """Set the default floating-point dtype used to store statistics."""
  global _DEFAULT_DTYPE
  _DEFAULT_DTYPE = dtype
