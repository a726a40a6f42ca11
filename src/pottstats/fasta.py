"""Reader for FASTA-style alignment record streams."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pottstats.errors import FormatError

if TYPE_CHECKING:
  from collections.abc import Iterable, Iterator

RECORD_DELIMITER = ">"


def read_fasta(lines: Iterable[str]) -> Iterator[tuple[str, str]]:
  """Read ``(identifier, sequence)`` records from lines of text.

  Each record is one identifier line starting with ``>`` followed by any
  number of sequence lines, which are concatenated. Blank lines are ignored.

  Args:
      lines: Lines of text, e.g. an open file.

  Yields:
      Tuples of (identifier, sequence).

  Raises:
      FormatError: If text precedes the first identifier line or the stream
          holds no records.

  """
  current_id = None
  chunks: list[str] = []

  for line_number, line in enumerate(lines, start=1):
    line = line.strip()
    if not line:
      continue
    if line.startswith(RECORD_DELIMITER):
      if current_id is not None:
        yield current_id, "".join(chunks)
      current_id = line[1:]
      chunks = []
    elif current_id is None:
      raise FormatError(
        f"Error reading alignment: sequences should start with {RECORD_DELIMITER} (line {line_number})"
      )
    else:
      chunks.append(line)

  if current_id is None:
    raise FormatError("Error reading alignment: no records found")
  yield current_id, "".join(chunks)
