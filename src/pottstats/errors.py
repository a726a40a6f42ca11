"""Exceptions and warnings raised while preparing alignment statistics."""


class PottsStatsError(Exception):
  """Base class for all pottstats errors."""


class FormatError(PottsStatsError, ValueError):
  """The record stream is malformed or leaves nothing to analyze.

  Raised for a missing ``>`` delimiter, sequences of different lengths, or an
  alignment that has no rows or columns left after filtering.
  """


class ResourceError(PottsStatsError, MemoryError):
  """A statistics table or sampling buffer would not fit the memory budget."""


class DegenerateColumnError(PottsStatsError, ArithmeticError):
  """A site or site pair carries no probability mass to condition on."""


class ConfigurationWarning(UserWarning):
  """A non-fatal configuration anomaly with a well-defined fallback."""
