"""Build an ``Alignment`` from raw records, applying focus-mode reduction."""

from __future__ import annotations

import logging
import warnings
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

import jax.numpy as jnp
import numpy as np

from pottstats.alignment import Alignment
from pottstats.alphabet import PROTEIN_ALPHABET, build_code_table, encode_sequence, is_protein
from pottstats.errors import ConfigurationWarning, FormatError, ResourceError
from pottstats.fasta import read_fasta
from pottstats.types import get_default_dtype

if TYPE_CHECKING:
  from collections.abc import Iterable

logger = logging.getLogger(__name__)

REGION_SEPARATOR = "/"


def find_focus(names: list[str], prefix: str) -> int | None:
  """Locate the focus sequence by name prefix.

  The first match wins; later matches are reported and ignored.

  Args:
      names: All sequence identifiers, in file order.
      prefix: The requested focus name prefix.

  Returns:
      The row of the focus sequence, or None if no name matches.

  """
  target = None
  for s, name in enumerate(names):
    if name.startswith(prefix):
      if target is None:
        target = s
      else:
        warnings.warn(
          f"Multiple sequences start with {prefix}, ignoring sequence {s + 1}",
          ConfigurationWarning,
          stacklevel=3,
        )
  if target is None:
    warnings.warn(
      f"Could not find {prefix}, proceeding without focus sequence",
      ConfigurationWarning,
      stacklevel=3,
    )
  else:
    logger.info("Found focus %s as sequence %d", prefix, target + 1)
  return target


def parse_region_start(name: str, prefix: str) -> int:
  """Return the left offset encoded by a ``NAME/START-END`` focus identifier.

  The region is only read when ``/`` directly follows the matched prefix. The
  offset is ``START - 1`` so that it can be added to 1-based column positions.

  Args:
      name: Full identifier of the focus sequence.
      prefix: The prefix it was matched with.

  Returns:
      The left offset, or 0 when there is no region or it cannot be parsed.

  """
  if len(name) <= len(prefix) + 1 or name[len(prefix)] != REGION_SEPARATOR:
    return 0
  region = name[len(prefix) + 1 :]
  digits = len(region) - len(region.lstrip("0123456789"))
  if digits == 0:
    warnings.warn(
      f"Error parsing region of {name}, assuming start at 1",
      ConfigurationWarning,
      stacklevel=3,
    )
    return 0
  start = int(region[:digits])
  logger.info("Region starts at %d", start)
  return start - 1


def focus_columns(focus_row: np.ndarray, alphabet: str, *, gap_reduce: bool) -> np.ndarray:
  """Return a boolean mask of the columns kept in focus mode.

  For the protein alphabet, columns where the focus sequence is soft
  (lowercase) or gapped are dropped. In gap-reduced mode gapped focus columns
  are dropped for any alphabet.
  """
  valid = np.ones(focus_row.shape[0], dtype=bool)
  if is_protein(alphabet):
    valid &= focus_row >= 0
  if is_protein(alphabet) or gap_reduce:
    valid &= focus_row != 0
  return valid


def encode_records(
  records: Iterable[tuple[str, str]],
  alphabet: str,
) -> tuple[list[str], np.ndarray]:
  """Encode records into an integer matrix, checking that widths agree.

  Raises:
      FormatError: If the sequences differ in length or there are none.
      ResourceError: If the matrix cannot be allocated.

  """
  table = build_code_table(alphabet)
  names: list[str] = []
  rows: list[np.ndarray] = []
  n_sites = None
  for name, sequence in records:
    if n_sites is None:
      n_sites = len(sequence)
    elif len(sequence) != n_sites:
      raise FormatError(
        f"Incompatible sequence length ({len(sequence)} should be {n_sites}) for {name}"
      )
    names.append(name)
    rows.append(encode_sequence(sequence, alphabet, table))

  if not rows:
    raise FormatError("Error reading alignment: no records found")
  if n_sites == 0:
    raise FormatError("Error reading alignment: sequences are empty")
  try:
    return names, np.stack(rows)
  except MemoryError as e:
    raise ResourceError(f"Cannot allocate a {len(rows)} x {n_sites} alignment") from e


def load_alignment(
  records: Iterable[tuple[str, str]],
  alphabet: str = PROTEIN_ALPHABET,
  *,
  focus: str | None = None,
  gap_reduce: bool = False,
) -> Alignment:
  """Encode records and reduce them to the rows and columns to analyze.

  Process:
  1.  **Encoding**: every character becomes an exact, soft or out-of-alphabet
      code; all rows must have the same width.
  2.  **Focus search**: with ``focus``, the first row whose name starts with it
      is selected on the unfiltered alignment.
  3.  **Row filter**: rows containing an out-of-alphabet code are dropped.
  4.  **Column filter**: in focus mode, columns are kept according to
      ``focus_columns`` and mapped to 1-based positions (shifted by any
      ``NAME/START-END`` region start) in ``offsets``.
  5.  **Normalization**: soft codes are shifted back to ``[0, n_codes - 1]``.

  Args:
      records: ``(identifier, sequence)`` pairs.
      alphabet: The alphabet, gap first.
      focus: Optional name prefix of the focus sequence.
      gap_reduce: Whether marginals will be gap-reduced; this also drops gapped
          focus columns for non-protein alphabets.

  Returns:
      An Alignment with unit weights.

  Raises:
      FormatError: For malformed records or if no rows or columns remain.

  """
  n_codes = len(alphabet)
  names, codes = encode_records(records, alphabet)
  n_seqs, n_sites = codes.shape

  target = find_focus(names, focus) if focus is not None else None

  seq_valid = np.all((codes >= -n_codes) & (codes < n_codes), axis=1)
  n_valid_seqs = int(seq_valid.sum())
  logger.info("%d valid sequences out of %d", n_valid_seqs, n_seqs)
  if n_valid_seqs == 0:
    raise FormatError("No sequences left after removing out-of-alphabet characters")

  if target is not None and not seq_valid[target]:
    warnings.warn(
      f"Focus sequence {names[target]} contains out-of-alphabet characters, "
      "proceeding without focus sequence",
      ConfigurationWarning,
      stacklevel=2,
    )
    target = None

  site_valid = np.ones(n_sites, dtype=bool)
  offsets = None
  if target is not None:
    site_valid = focus_columns(codes[target], alphabet, gap_reduce=gap_reduce)
    logger.info("%d sites out of %d", int(site_valid.sum()), n_sites)
    left_offset = parse_region_start(names[target], focus)
    offsets = jnp.asarray(np.flatnonzero(site_valid) + 1 + left_offset, dtype=jnp.int32)
    # Position among the rows that survive the row filter.
    target = int(seq_valid[: target + 1].sum()) - 1
  else:
    logger.info("%d sites", n_sites)

  if not site_valid.any():
    raise FormatError("No sites left after focus column filtering")

  codes = codes[seq_valid][:, site_valid]
  codes = np.where(codes < 0, codes + n_codes, codes)

  weights = jnp.ones(codes.shape[0], dtype=get_default_dtype())
  return Alignment(
    sequences=jnp.asarray(codes, dtype=jnp.int32),
    names=tuple(name for name, valid in zip(names, seq_valid, strict=True) if valid),
    alphabet=alphabet,
    weights=weights,
    n_eff=float(codes.shape[0]),
    target=target,
    offsets=offsets,
  )


def read_alignment(
  source: str | Path | TextIO,
  alphabet: str = PROTEIN_ALPHABET,
  *,
  focus: str | None = None,
  gap_reduce: bool = False,
) -> Alignment:
  """Read a FASTA alignment from a path or an open text stream.

  See ``load_alignment`` for the processing applied.
  """
  if isinstance(source, (str, Path)):
    with Path(source).open() as handle:
      return load_alignment(read_fasta(handle), alphabet, focus=focus, gap_reduce=gap_reduce)
  return load_alignment(read_fasta(source), alphabet, focus=focus, gap_reduce=gap_reduce)
