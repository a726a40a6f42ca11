import dataclasses
import logging
from pathlib import Path

import numpy as np
import tyro

from pottstats.alphabet import DNA_ALPHABET, RNA_ALPHABET
from pottstats.configs import AlignmentConfig, PipelineConfig
from pottstats.pipeline import PottsStatistics, prepare_statistics_from_file

logger = logging.getLogger("prepare_stats")


@dataclasses.dataclass
class PrepareStatsConfig:
  """Command line settings for statistics preparation."""

  alignment_path: Path = Path("alignment.fasta")
  output_path: Path | None = None
  pipeline: PipelineConfig = dataclasses.field(default_factory=PipelineConfig)


def save_statistics(stats: PottsStatistics, path: Path) -> None:
  """Write weights and marginals to a compressed ``.npz`` archive."""
  alignment = stats.alignment
  arrays = {
    "weights": np.asarray(alignment.weights),
    "fi": np.asarray(alignment.fi),
    "fij": np.asarray(alignment.fij),
    "n_eff": np.asarray(alignment.n_eff),
    "theta": np.asarray(stats.theta),
    "scale": np.asarray(stats.scale),
    "alphabet": np.asarray(alignment.alphabet),
  }
  if alignment.offsets is not None:
    arrays["offsets"] = np.asarray(alignment.offsets)
  if alignment.gap_reduced:
    arrays["gapi"] = np.asarray(alignment.gapi)
    arrays["ungapij"] = np.asarray(alignment.ungapij)
  np.savez_compressed(path, **arrays)
  logger.info("Wrote statistics to %s", path)


def main(cfg: PrepareStatsConfig) -> None:
  """Prepare statistics for one alignment and optionally save them."""
  logging.basicConfig(
    level=logging.DEBUG if cfg.pipeline.verbose else logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s: %(message)s",
  )
  stats = prepare_statistics_from_file(cfg.alignment_path, cfg.pipeline)
  alignment = stats.alignment
  logger.info(
    "%d sequences, %d sites, %d states, effective sample size %.1f",
    alignment.n_seqs,
    alignment.n_sites,
    alignment.n_states,
    alignment.n_eff,
  )
  if cfg.output_path is not None:
    save_statistics(stats, cfg.output_path)


if __name__ == "__main__":
  COMMAND_DEFAULTS = {
    "protein": PrepareStatsConfig(),
    "dna": PrepareStatsConfig(
      pipeline=PipelineConfig(alignment=AlignmentConfig(alphabet=DNA_ALPHABET)),
    ),
    "rna": PrepareStatsConfig(
      pipeline=PipelineConfig(alignment=AlignmentConfig(alphabet=RNA_ALPHABET)),
    ),
  }
  Subcommands = tyro.extras.subcommand_type_from_defaults(COMMAND_DEFAULTS)

  cfg = tyro.cli(Subcommands, description="Prepare Potts model statistics from an alignment.")
  main(cfg)
