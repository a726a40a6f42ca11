"""Categorical sampling primitives used by the sample size estimator."""

from __future__ import annotations

import jax
import jax.numpy as jnp

from pottstats.types import PRNGKey, Scalar, ScalarFloat
from pottstats.utils.types import (
  CDF,
  CountVector,
  DrawIndices,
  JointTable,
  MutualInformation,
  ProbabilityVector,
  Uniforms,
)


def sample_index_from_cdf(cdf: CDF, uniforms: Uniforms) -> DrawIndices:
  """Invert a discrete CDF at a batch of uniform variates.

  Each draw is the first state ``s`` with ``u <= cdf[s]``, i.e. the result of
  a linear scan through the CDF. Variates above the last CDF entry (possible
  when rounding leaves ``cdf[-1]`` slightly below 1) map to the last state.

  Args:
      cdf: Cumulative probabilities, non-decreasing.
      uniforms: Variates on [0, 1).

  Returns:
      State indices with the same shape as ``uniforms``.

  """
  indices = jnp.searchsorted(cdf, uniforms, side="left")
  return jnp.minimum(indices, cdf.shape[0] - 1).astype(jnp.int32)


def round_half_up(value: jax.Array) -> jax.Array:
  """Round to the nearest integer, with halves going up (``2.5 -> 3``)."""
  return jnp.floor(value + 0.5)


def stochastic_round(key: PRNGKey, value: ScalarFloat) -> Scalar:
  """Round to ``floor(value)`` or ``floor(value) + 1`` with expectation ``value``."""
  floor = jnp.floor(value)
  return (floor + (jax.random.uniform(key, dtype=jnp.float64) < value - floor)).astype(jnp.int32)


def sample_categorical_distribution(
  key: PRNGKey,
  counts: CountVector,
  pseudocount: float = 0.5,
) -> ProbabilityVector:
  """Draw a categorical distribution consistent with observed counts.

  Rather than returning the maximum likelihood estimate ``counts / n``, this
  samples from the Dirichlet posterior ``Dir(counts + pseudocount)``, so that
  repeated calls carry the uncertainty of estimating the distribution itself
  from ``n`` observations.

  Args:
      key: JAX random key.
      counts: Non-negative per-state counts.
      pseudocount: Dirichlet prior concentration per state; must be positive.

  Returns:
      A probability vector over the states.

  """
  return jax.random.dirichlet(key, counts + pseudocount, dtype=jnp.float64)


def mutual_information(joint: JointTable, marginal_i: ProbabilityVector, marginal_j: ProbabilityVector) -> MutualInformation:
  r"""Plug-in mutual information of a joint table.

  Notes:
  $$ I_{ij} = \\sum_{a,b:\\, f_{ij}(a,b) > 0} f_{ij}(a,b) \\log \\frac{f_{ij}(a,b)}{f_i(a) f_j(b)} $$

  Zero cells are skipped rather than contributing ``-inf``.

  Args:
      joint: Joint distribution of sites i and j.
      marginal_i: Distribution at site i.
      marginal_j: Distribution at site j.

  Returns:
      Mutual information in nats.

  """
  positive = joint > 0
  outer = marginal_i[:, None] * marginal_j[None, :]
  log_ratio = jnp.log(jnp.where(positive, joint, 1.0)) - jnp.log(jnp.where(positive, outer, 1.0))
  return jnp.sum(jnp.where(positive, joint * log_ratio, 0.0))


def empirical_mutual_information(joint: JointTable) -> MutualInformation:
  """Mutual information of a joint table against its own marginals."""
  return mutual_information(joint, jnp.sum(joint, axis=1), jnp.sum(joint, axis=0))
