"""End-to-end preparation of Potts model sufficient statistics."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple, TextIO

from pottstats.configs import MarginalMode, PipelineConfig
from pottstats.fasta import read_fasta
from pottstats.loader import load_alignment
from pottstats.marginals import count_marginals
from pottstats.reweighting import reweight_sequences
from pottstats.sample_size import estimate_sample_size

if TYPE_CHECKING:
  from collections.abc import Iterable

  from pottstats.alignment import Alignment

logger = logging.getLogger(__name__)


class PottsStatistics(NamedTuple):
  """Everything a Potts model inference step needs from the alignment."""

  alignment: Alignment
  """Weighted alignment with marginals attached."""
  theta: float
  """Reweighting threshold used."""
  scale: float
  """Samples per neighborhood used."""
  gap_reduce: bool
  """Whether the marginals are conditioned on non-gap symbols."""


def prepare_statistics(
  records: Iterable[tuple[str, str]],
  config: PipelineConfig | None = None,
) -> PottsStatistics:
  """Load, reweight and count an alignment.

  Process:
  1.  **Load**: encode records, filter rows and (in focus mode) columns.
  2.  **Reweight**: neighborhood weights with ``theta`` and ``scale``.
  3.  **Marginals**: standard or gap-reduced first- and second-order counts.
  4.  **Sample size**: when ``theta`` is in [0, 1] and the estimator is
      enabled, rescale the weights to the MI-matched effective sample size.

  Args:
      records: ``(identifier, sequence)`` pairs.
      config: Pipeline settings; defaults to ``PipelineConfig()``.

  Returns:
      The prepared statistics.

  """
  if config is None:
    config = PipelineConfig()
  align_cfg = config.alignment
  weight_cfg = config.reweighting
  marg_cfg = config.marginals

  alignment = load_alignment(
    records,
    align_cfg.alphabet,
    focus=align_cfg.focus,
    gap_reduce=align_cfg.gap_reduce,
  )
  logger.info("Loaded %d sequences x %d sites", alignment.n_seqs, alignment.n_sites)

  alignment = reweight_sequences(
    alignment,
    weight_cfg.theta,
    weight_cfg.scale,
    parallel=weight_cfg.parallel,
    batch_size=weight_cfg.batch_size,
  )

  mode = MarginalMode.GAP_REDUCED if align_cfg.gap_reduce else MarginalMode.STANDARD
  alignment = count_marginals(
    alignment,
    mode,
    strict=marg_cfg.strict,
    batch_size=marg_cfg.batch_size,
    memory_limit_bytes=marg_cfg.memory_limit_bytes,
  )

  if config.sample_size.enabled and 0 <= weight_cfg.theta <= 1:
    alignment = estimate_sample_size(alignment, config.sample_size, verbose=config.verbose)
  else:
    logger.info("Skipping sample size estimation")

  return PottsStatistics(
    alignment=alignment,
    theta=weight_cfg.theta,
    scale=weight_cfg.scale,
    gap_reduce=align_cfg.gap_reduce,
  )


def prepare_statistics_from_file(
  source: str | Path | TextIO,
  config: PipelineConfig | None = None,
) -> PottsStatistics:
  """Run ``prepare_statistics`` on a FASTA file path or open text stream."""
  if isinstance(source, (str, Path)):
    with Path(source).open() as handle:
      return prepare_statistics(read_fasta(handle), config)
  return prepare_statistics(read_fasta(source), config)
