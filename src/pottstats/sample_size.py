"""Effective sample size estimation by Monte-Carlo mutual information matching.

Finite samples overestimate mutual information: even independent sites show a
positive plug-in MI that shrinks roughly like ``1 / N``. This module finds the
sample size ``N`` at which independent draws from the alignment's site
distributions reproduce, on average, the alignment's mean pairwise MI. The
search is a Robbins-Monro stochastic approximation on ``u = log(N)``:

$$ u_{t+1} = u_t + \\frac{\\eta}{t + 1} (\\langle I \\rangle_{sample}(e^{u_t}) - \\langle I \\rangle_{data}) $$
"""

from __future__ import annotations

import logging
import math
from functools import partial
from typing import TYPE_CHECKING

import jax
import jax.numpy as jnp
import numpy as np
from tqdm import tqdm

from pottstats.alignment import pair_index, pair_indices
from pottstats.configs import SampleSizeConfig
from pottstats.errors import DegenerateColumnError
from pottstats.padding import create_draw_mask, get_draw_bucket
from pottstats.sampling import (
  empirical_mutual_information,
  mutual_information,
  round_half_up,
  sample_categorical_distribution,
  sample_index_from_cdf,
  stochastic_round,
)
from pottstats.types import (
  PairMarginals,
  PRNGKey,
  ScalarFloat,
  SiteMarginals,
  SiteMask,
  UngapFrequencies,
  get_default_dtype,
)
from pottstats.utils.memory import safe_map
from pottstats.utils.types import MutualInformation, SampleSizeTrace

if TYPE_CHECKING:
  from pottstats.alignment import Alignment

logger = logging.getLogger(__name__)

REPORT_EVERY = 50


def valid_sites(fi: SiteMarginals) -> SiteMask:
  """Sites whose marginal carries probability mass."""
  return jnp.sum(fi, axis=1) > 0


def average_mutual_information(fi: SiteMarginals, fij: PairMarginals) -> MutualInformation:
  """Mean plug-in MI over all site pairs with non-degenerate marginals.

  Args:
      fi: First-order marginals.
      fij: Packed second-order marginals.

  Returns:
      The average MI in nats, or 0 if no pair qualifies.

  """
  fi = fi.astype(jnp.float64)
  fij = fij.astype(jnp.float64)
  pair_i, pair_j = pair_indices(fi.shape[0])
  if pair_i.size == 0:
    return jnp.zeros((), dtype=jnp.float64)
  mi = jax.vmap(mutual_information)(fij, fi[pair_i], fi[pair_j])
  site_ok = valid_sites(fi)
  pair_ok = site_ok[pair_i] & site_ok[pair_j] & (jnp.sum(fij, axis=(1, 2)) > 0)
  n_ok = jnp.sum(pair_ok)
  return jnp.where(n_ok > 0, jnp.sum(jnp.where(pair_ok, mi, 0.0)) / jnp.maximum(n_ok, 1), 0.0)


def simulate_pair_mi(
  key: PRNGKey,
  fi: SiteMarginals,
  ungapij: UngapFrequencies,
  site_probs: jax.Array,
  n_eff: ScalarFloat,
  pseudocount: float,
  max_draws: int,
) -> MutualInformation:
  """Simulate one null sample for a random site pair and return its MI.

  Process:
  1.  **Pair**: pick two distinct sites uniformly among the valid ones.
  2.  **Size**: scale ``n_eff`` by the pair's ungapped frequency and round it
      stochastically to an integer ``n``.
  3.  **Site distributions**: round ``n * fi`` to counts at each site and draw a
      categorical distribution from each with ``sample_categorical_distribution``.
  4.  **Draws**: invert both CDFs at ``max_draws`` uniforms each; only the first
      ``n`` draws are counted.
  5.  **MI**: plug-in MI of the resulting joint frequency table.

  Args:
      key: JAX random key.
      fi: First-order marginals.
      ungapij: Packed ungapped pair frequencies (all ones for the standard convention).
      site_probs: Selection probabilities for the sites (uniform over valid sites).
      n_eff: Current sample size ``exp(u)``.
      pseudocount: Dirichlet concentration added to every count.
      max_draws: Static length of the draw buffer; must exceed the largest ``n``.

  Returns:
      The sample MI of the simulated pair.

  """
  n_sites, n_states = fi.shape
  pair_key, round_key, dist_i_key, dist_j_key, draw_i_key, draw_j_key = jax.random.split(key, 6)

  pair = jax.random.choice(pair_key, n_sites, shape=(2,), replace=False, p=site_probs)
  i, j = pair[0], pair[1]

  n_local = n_eff * ungapij[pair_index(i, j, n_sites)]
  n = stochastic_round(round_key, n_local)
  n_float = n.astype(jnp.float64)

  p_i = sample_categorical_distribution(dist_i_key, round_half_up(n_float * fi[i]), pseudocount)
  p_j = sample_categorical_distribution(dist_j_key, round_half_up(n_float * fi[j]), pseudocount)

  uniforms_i = jax.random.uniform(draw_i_key, (max_draws,), dtype=jnp.float64)
  uniforms_j = jax.random.uniform(draw_j_key, (max_draws,), dtype=jnp.float64)
  draws_i = sample_index_from_cdf(jnp.cumsum(p_i), uniforms_i)
  draws_j = sample_index_from_cdf(jnp.cumsum(p_j), uniforms_j)
  mask = create_draw_mask(n, max_draws)

  counts = jnp.zeros(n_states * n_states, dtype=jnp.float64)
  counts = counts.at[draws_i * n_states + draws_j].add(mask.astype(jnp.float64))
  joint = counts.reshape(n_states, n_states) / jnp.maximum(n_float, 1.0)
  return empirical_mutual_information(joint)


@partial(jax.jit, static_argnames=("batch_size", "max_draws", "chunk_size"))
def batch_sample_mi(
  key: PRNGKey,
  fi: SiteMarginals,
  ungapij: UngapFrequencies,
  site_probs: jax.Array,
  n_eff: ScalarFloat,
  pseudocount: float,
  batch_size: int,
  max_draws: int,
  chunk_size: int,
) -> MutualInformation:
  """Average ``simulate_pair_mi`` over a batch of independent trials."""
  keys = jax.random.split(key, batch_size)
  mi = safe_map(
    lambda k: simulate_pair_mi(k, fi, ungapij, site_probs, n_eff, pseudocount, max_draws),
    keys,
    chunk_size,
  )
  return jnp.mean(mi)


def _max_draws(n_eff: float) -> int:
  # Stochastic rounding never exceeds floor(n) + 1.
  return get_draw_bucket(math.floor(n_eff) + 1)


def estimate_sample_size(
  alignment: Alignment,
  config: SampleSizeConfig | None = None,
  *,
  verbose: bool = False,
  return_trace: bool = False,
) -> Alignment | tuple[Alignment, SampleSizeTrace]:
  """Rescale the weights so that ``n_eff`` matches the alignment's average MI.

  Starting from ``u = log(n_eff)``, each iteration simulates ``batch_size``
  null samples of size ``exp(u)`` and moves ``u`` by
  ``(sample_mi - avg_mi) * learning_rate / (t + 1)``. Afterwards every weight is
  multiplied by ``exp(u) / n_eff`` and ``n_eff`` becomes ``exp(u)``.

  Args:
      alignment: Alignment with counted marginals.
      config: Search settings; defaults to ``SampleSizeConfig()``.
      verbose: Show a progress bar.
      return_trace: Also return the per-iteration sample MI and sample size.

  Returns:
      The rescaled alignment, and the trace if requested.

  Raises:
      ValueError: If the marginals have not been counted or the pseudocount
          is not positive.
      DegenerateColumnError: If fewer than two sites carry probability mass.

  """
  if config is None:
    config = SampleSizeConfig()
  if not alignment.has_marginals:
    raise ValueError("Marginals must be counted before estimating the sample size")
  if not config.pseudocount > 0:
    raise ValueError(f"Pseudocount must be positive, got {config.pseudocount}")

  fi = alignment.fi.astype(jnp.float64)
  fij = alignment.fij.astype(jnp.float64)
  site_ok = valid_sites(fi)
  n_valid = int(jnp.sum(site_ok))
  if n_valid < 2:
    raise DegenerateColumnError(
      f"Sample size estimation needs two sites with probability mass, found {n_valid}"
    )
  site_probs = site_ok.astype(jnp.float64) / n_valid
  if alignment.gap_reduced and alignment.ungapij is not None:
    ungapij = alignment.ungapij.astype(jnp.float64)
  else:
    ungapij = jnp.ones(alignment.n_pairs, dtype=jnp.float64)

  avg_mi = float(average_mutual_information(fi, fij))
  logger.info("Average mutual information: %.5f", avg_mi)

  old_n_eff = alignment.n_eff
  u = math.log(old_n_eff)
  key = jax.random.PRNGKey(config.seed)
  sample_mis = np.zeros(config.iterations)
  n_effs = np.zeros(config.iterations)

  pbar = tqdm(range(config.iterations), desc="Sample size", disable=not verbose)
  for t in pbar:
    n_eff = math.exp(u)
    max_draws = _max_draws(n_eff)
    chunk_size = max(1, min(config.batch_size, config.max_buffer_elements // max_draws))
    key, step_key = jax.random.split(key)
    sample_mi = float(
      batch_sample_mi(
        step_key,
        fi,
        ungapij,
        site_probs,
        n_eff,
        config.pseudocount,
        batch_size=config.batch_size,
        max_draws=max_draws,
        chunk_size=chunk_size,
      )
    )
    sample_mis[t] = sample_mi
    n_effs[t] = n_eff

    if t % REPORT_EVERY == REPORT_EVERY - 1:
      logger.debug("%8d\t%8.3f\t%8.2f", t + 1, sample_mi, n_eff)
      pbar.set_postfix({"mi": f"{sample_mi:.4f}", "n_eff": f"{n_eff:.1f}"})

    u += (sample_mi - avg_mi) * (config.learning_rate / (t + 1))

  n_eff = math.exp(u)
  ratio = n_eff / old_n_eff
  weights = (alignment.weights.astype(jnp.float64) * ratio).astype(get_default_dtype())
  alignment = alignment._replace(weights=weights, n_eff=n_eff)
  logger.info("Effective sample size: %.1f\t(weights scaled by %.3f)", n_eff, ratio)

  if return_trace:
    trace = SampleSizeTrace(sample_mi=jnp.asarray(sample_mis), n_eff=jnp.asarray(n_effs))
    return alignment, trace
  return alignment
