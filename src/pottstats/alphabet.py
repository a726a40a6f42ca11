"""Alphabets and symbol encoding for multiple sequence alignments.

Every alphabet is an ordered string whose first character is the gap (or
wildcard) symbol. A character is encoded relative to an alphabet of size
``n_codes`` as one of three kinds:

- exact match of an alphabet character: ``index`` in ``[0, n_codes - 1]``
- same letter in the other case ("soft" match): ``index - n_codes``,
  in ``[-n_codes, -1]``
- anything else: the sentinel ``n_codes``

The integer form is what alignment matrices store; ``Symbol`` is the tagged
form used when a single character is inspected.
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple

import numpy as np

GAP = "-"
INSERT_GAP = "."

PROTEIN_ALPHABET = GAP + "ACDEFGHIKLMNPQRSTVWY"
DNA_ALPHABET = GAP + "ACGT"
RNA_ALPHABET = GAP + "ACGU"


class SymbolKind(Enum):
  """How a character relates to the alphabet."""

  EXACT = "exact"
  SOFT = "soft"
  INVALID = "invalid"


class Symbol(NamedTuple):
  """A decoded alignment cell.

  ``index`` is the alphabet position for ``EXACT`` and ``SOFT`` symbols and
  ``None`` for ``INVALID`` ones.
  """

  kind: SymbolKind
  index: int | None = None

  def to_code(self, n_codes: int) -> int:
    """Collapse to the integer code stored in alignment matrices."""
    if self.kind is SymbolKind.EXACT:
      return self.index
    if self.kind is SymbolKind.SOFT:
      return self.index - n_codes
    return n_codes

  @classmethod
  def from_code(cls, code: int, n_codes: int) -> Symbol:
    """Inverse of ``to_code``."""
    if 0 <= code < n_codes:
      return cls(SymbolKind.EXACT, code)
    if -n_codes <= code < 0:
      return cls(SymbolKind.SOFT, code + n_codes)
    return cls(SymbolKind.INVALID)


def is_protein(alphabet: str) -> bool:
  """Protein alphabets get special treatment of insert gaps and focus columns."""
  return alphabet == PROTEIN_ALPHABET


def encode_symbol(char: str, alphabet: str) -> Symbol:
  """Encode a single character, matching case-insensitively.

  Args:
      char: The character to encode.
      alphabet: The alphabet, gap first.

  Returns:
      The tagged symbol.

  """
  if is_protein(alphabet) and char == INSERT_GAP:
    char = GAP
  index = alphabet.find(char)
  if index >= 0:
    return Symbol(SymbolKind.EXACT, index)
  index = alphabet.find(char.upper())
  if index >= 0:
    return Symbol(SymbolKind.SOFT, index)
  return Symbol(SymbolKind.INVALID)


def encode_char(char: str, alphabet: str) -> int:
  """Encode a single character to its integer code."""
  return encode_symbol(char, alphabet).to_code(len(alphabet))


def decode_code(code: int, alphabet: str) -> str:
  """Decode an integer code back to a character.

  Soft codes decode to the lowercase letter and the out-of-alphabet sentinel
  decodes to ``"?"``.
  """
  symbol = Symbol.from_code(int(code), len(alphabet))
  if symbol.kind is SymbolKind.EXACT:
    return alphabet[symbol.index]
  if symbol.kind is SymbolKind.SOFT:
    return alphabet[symbol.index].lower()
  return "?"


def build_code_table(alphabet: str) -> dict[str, int]:
  """Precompute codes for every character that is not out-of-alphabet."""
  table = {}
  for char in alphabet:
    for variant in {char, char.lower(), char.upper()}:
      table.setdefault(variant, encode_char(variant, alphabet))
  if is_protein(alphabet):
    table[INSERT_GAP] = encode_char(INSERT_GAP, alphabet)
  return table


def encode_sequence(
  sequence: str,
  alphabet: str,
  table: dict[str, int] | None = None,
) -> np.ndarray:
  """Encode a whole sequence.

  Args:
      sequence: The raw sequence string.
      alphabet: The alphabet, gap first.
      table: Optional precomputed table from ``build_code_table``.

  Returns:
      An ``int32`` array of codes with the sentinel ``len(alphabet)`` for
      out-of-alphabet characters.

  """
  if table is None:
    table = build_code_table(alphabet)
  n_codes = len(alphabet)
  return np.fromiter((table.get(c, n_codes) for c in sequence), dtype=np.int32, count=len(sequence))


def decode_sequence(codes: np.ndarray, alphabet: str) -> str:
  """Decode a row of integer codes to a string."""
  return "".join(decode_code(c, alphabet) for c in np.asarray(codes).tolist())
