"""
Numeric identifier extraction from tabular rows.

Scans every cell of every row and keeps the cells that hold a finite number,
collapsing equal values regardless of how they were formatted in the source
file ("5", 5, 5.0 and "5.0" are one identifier).

Module Input:
    - Rows of raw cell values (str, int, float, numpy scalars, None, NaN)

Module Output:
    - Ordered, duplicate-free list of identifiers (int when integral, else float)
"""

import math
import numbers
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional, Sequence, Union

from DEDUP.core.logging_config import get_logger

logger = get_logger(__name__)

Identifier = Union[int, float]


def _from_float(value: float) -> Optional[Identifier]:
    if not math.isfinite(value):
        return None
    if value.is_integer():
        return int(value)
    return value


def normalize_identifier(value: Any) -> Optional[Identifier]:
    """
    Convert a single raw cell value into an identifier.

    Integer-looking strings are parsed with int() so long numeric IDs keep
    every digit; everything else numeric goes through float().

    Args:
        value: Raw cell value

    Returns:
        Optional[Identifier]: Normalized identifier, or None if the cell is
            empty, non-numeric or not finite

    Example:
        >>> normalize_identifier(" 42 ")
        42
        >>> normalize_identifier("4.50")
        4.5
        >>> normalize_identifier("abc") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        text = value.strip()
        # int()/float() accept digit separators, spreadsheets do not
        if not text or "_" in text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return _from_float(float(text))
        except ValueError:
            return None

    if isinstance(value, numbers.Integral):
        return int(value)

    if isinstance(value, Decimal):
        if not value.is_finite():
            return None
        if value == value.to_integral_value():
            return int(value)
        return float(value)

    if isinstance(value, numbers.Real):
        return _from_float(float(value))

    # Anything else (dates, bytes, ...) only counts if its text is numeric
    try:
        return normalize_identifier(str(Decimal(str(value))))
    except (InvalidOperation, ValueError):
        return None


def extract_identifiers(rows: Iterable[Sequence[Any]]) -> List[Identifier]:
    """
    Build the candidate set from a raw tabular dataset.

    Args:
        rows: Sequence of rows, each an ordered sequence of raw cell values

    Returns:
        List[Identifier]: Unique identifiers in first-seen order. Empty when
            no cell holds a finite number.

    Example:
        >>> extract_identifiers([["5", "x"], ["7", ""], ["5", "9"]])
        [5, 7, 9]
    """
    seen = {}
    cells_scanned = 0

    for row in rows:
        if row is None:
            continue
        for cell in row:
            cells_scanned += 1
            identifier = normalize_identifier(cell)
            if identifier is not None and identifier not in seen:
                seen[identifier] = None

    logger.info(
        f"Extracted {len(seen)} unique identifiers from {cells_scanned} cells"
    )
    return list(seen)
