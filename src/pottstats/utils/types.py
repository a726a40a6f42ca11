"""Array types for the sampling side of pottstats.

Like ``pottstats.types``, these aliases use jaxtyping so that shape and dtype
information is carried directly in the signatures of the estimator code.
"""

from typing import NamedTuple

from jaxtyping import Array, Bool, Float, Int

CountVector = Float[Array, "n_states"]
"""Rounded (but float-typed) per-symbol counts at a single site."""

ProbabilityVector = Float[Array, "n_states"]
"""A categorical distribution over the modeled states of one site."""

CDF = Float[Array, "n_states"]
"""Cumulative distribution of a ``ProbabilityVector``; the last entry is ~1."""

Uniforms = Float[Array, "n_draws"]
"""Uniform variates on [0, 1) used for inverse-CDF sampling."""

DrawIndices = Int[Array, "n_draws"]
"""State indices produced by inverting a CDF at a batch of uniforms."""

DrawMask = Bool[Array, "max_draws"]
"""Marks which entries of a padded draw buffer are real draws."""

JointTable = Float[Array, "n_states n_states"]
"""Empirical (or population) joint distribution of a pair of sites."""

MutualInformation = Float[Array, ""]
"""A scalar mutual information in nats."""


class SampleSizeTrace(NamedTuple):
  """Per-iteration record of the Robbins-Monro search.

  Only kept when requested, it is mainly useful for diagnosing convergence.
  """

  sample_mi: Float[Array, "iterations"]
  """Batch-averaged mutual information of the simulated samples."""
  n_eff: Float[Array, "iterations"]
  """Sample size ``exp(u)`` used in each iteration."""
