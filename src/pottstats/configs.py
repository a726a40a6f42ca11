"""Configurations for alignment statistics preparation."""

from dataclasses import dataclass, field
from enum import Enum

from pottstats.alphabet import PROTEIN_ALPHABET


class MarginalMode(Enum):
  """Convention used to count marginals."""

  STANDARD = "standard"
  GAP_REDUCED = "gap_reduced"


@dataclass
class AlignmentConfig:
  """Configuration for alignment loading."""

  alphabet: str = PROTEIN_ALPHABET
  focus: str | None = None
  gap_reduce: bool = False


@dataclass
class ReweightingConfig:
  """Configuration for neighborhood sequence reweighting.

  A ``theta`` outside [0, 1] disables reweighting (and sample size estimation).
  """

  theta: float = 0.2
  scale: float = 1.0
  parallel: bool = False
  batch_size: int = 256


@dataclass
class MarginalConfig:
  """Configuration for marginal counting."""

  strict: bool = False
  batch_size: int = 1024
  memory_limit_bytes: int | None = None


@dataclass
class SampleSizeConfig:
  """Configuration for the Robbins-Monro effective sample size search."""

  enabled: bool = True
  iterations: int = 1000
  batch_size: int = 100
  learning_rate: float = 10.0
  seed: int = 42
  pseudocount: float = 0.5
  max_buffer_elements: int = 1 << 22


@dataclass
class PipelineConfig:
  """Top-level configuration for the statistics pipeline."""

  alignment: AlignmentConfig = field(default_factory=AlignmentConfig)
  reweighting: ReweightingConfig = field(default_factory=ReweightingConfig)
  marginals: MarginalConfig = field(default_factory=MarginalConfig)
  sample_size: SampleSizeConfig = field(default_factory=SampleSizeConfig)
  verbose: bool = False
