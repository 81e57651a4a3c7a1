"""Canonicalization of raw text fields used by every import stage.

All functions here are pure and idempotent: ``f(f(s)) == f(s)``. They never
fail; a value that normalizes to an empty string is rejected later by the
row validator, not here.
"""

import re
from typing import Any

_WHITESPACE = re.compile(r'\s+')
_REPEATED_SEPARATORS = re.compile(r'([-_])\1+')
# Leading zeros of a numeric run, keeping at least one digit ("007" -> "7", "0" -> "0")
_LEADING_ZEROS = re.compile(r'(?<!\d)0+(?=\d)')
# Trailing sheet indicator: "01OF02", "1 OF 2", "SHEET 1 OF 2", "SH. 2 OF 3"
_SHEET_SUFFIX = re.compile(
    r'(?<![A-Z0-9])(?:(?:SHEET|SHT|SH)\.?\s*)?\d+\s*OF\s*\d+$'
)


def to_text(value: Any) -> str:
    """Render a raw cell as text. ``None`` becomes an empty string."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_label(value: Any) -> str:
    """Trim and collapse internal whitespace. Case is preserved."""
    return _WHITESPACE.sub(' ', to_text(value)).strip()


def fold_label(value: Any) -> str:
    """Whitespace-normalized, upper-cased label for case-insensitive comparison."""
    return normalize_label(value).upper()


def normalize_drawing(value: Any) -> str:
    """Normalize a drawing reference for exact matching.

    Upper-cases, collapses whitespace and repeated ``-``/``_`` separators and
    strips leading zeros from numeric segments of the base identifier. A
    trailing sheet suffix is kept as-is (apart from case and whitespace), so
    ``"P-91010 1 of 2"`` and ``"P-91010 2 of 2"`` stay distinct.

    Examples:
        normalize_drawing("  p-001 ") -> "P-1"
        normalize_drawing("P-91010_1   01of02") -> "P-91010_1 01OF02"
        normalize_drawing("PW-55401 Sheet 1 of 2") -> "PW-55401 SHEET 1 OF 2"
    """
    text = fold_label(value)
    if not text:
        return ""

    text = _REPEATED_SEPARATORS.sub(r'\1', text)

    match = _SHEET_SUFFIX.search(text)
    if match:
        base, suffix = text[:match.start()], text[match.start():]
    else:
        base, suffix = text, ""

    return _LEADING_ZEROS.sub('', base) + suffix

