"""Size normalization using Pint for unit-aware canonicalization of nominal sizes."""

import re
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import Any, Optional, Tuple

from pint import UnitRegistry

from .normalizer import to_text

# Initialize Pint unit registry
ureg = UnitRegistry()

NO_SIZE = "NOSIZE"


class UnitNormalizer:
    """Normalizes nominal sizes so equivalent notations compare equal.

    Inch sizes collapse to a canonical decimal ("1/2", '0.5"', ".50 IN" -> "0.5").
    Metric sizes convert to millimetres ("5CM" -> "50MM"). Reducer sizes are
    normalized part by part and joined with "X" ("2 x 1-1/2" -> "2X1.5").
    """

    # Reducer separators: "2X1", "2 x 1", "2×1", "2 BY 1"
    REDUCER_SPLIT = re.compile(r'\s*(?:X|×|\bBY\b)\s*', re.IGNORECASE)

    # Number forms: mixed fraction, simple fraction, decimal
    MIXED_FRACTION = re.compile(r'^(\d+)[\s-]+(\d+)\s*/\s*(\d+)$')
    FRACTION = re.compile(r'^(\d+)\s*/\s*(\d+)$')
    DECIMAL = re.compile(r'^(\d+\.?\d*|\.\d+)$')

    # Unit suffixes, longest first
    INCH_SUFFIXES = ('INCHES', 'INCH', 'IN', "''", '"')
    METRIC_SUFFIXES = (('MM', 'millimeter'), ('CM', 'centimeter'))

    MAX_DECIMAL_PLACES = 4

    def __init__(self):
        """Initialize the unit normalizer."""
        self.ureg = ureg

    def normalize_size(self, value: Any) -> str:
        """Normalize a size string.

        Args:
            value: Raw size cell (string, number or None)

        Returns:
            Canonical size, or "NOSIZE" when empty

        Examples:
            normalize_size("1/2\"") -> "0.5"
            normalize_size("1-1/2") -> "1.5"
            normalize_size("2 x 1") -> "2X1"
            normalize_size("5 cm") -> "50MM"
            normalize_size("") -> "NOSIZE"
        """
        text = to_text(value).strip()
        if not text:
            return NO_SIZE

        # Removing quotes or spaces can expose a number, so repeat until stable
        normalized = self._normalize_once(text)
        while normalized != text:
            text, normalized = normalized, self._normalize_once(normalized)
        return normalized

    def _normalize_once(self, text: str) -> str:
        parts = [p for p in self.REDUCER_SPLIT.split(text) if p.strip()]
        if len(parts) > 1 and all(self._is_numeric_part(p) for p in parts):
            return "X".join(self._normalize_part(part) for part in parts)

        return self._normalize_part(text)

    def _normalize_part(self, part: str) -> str:
        """Normalize one side of a (possibly reducer) size."""
        text = part.strip().upper()

        number_text, unit = self._split_unit(text)
        magnitude = self._parse_number(number_text)

        if magnitude is None:
            return self._fallback(text)

        try:
            if unit is None:
                return self._format_decimal(magnitude)

            millimetres = self._to_millimetres(magnitude, unit)
            if millimetres is None:
                return self._fallback(text)
            return f"{self._format_decimal(millimetres)}MM"
        except InvalidOperation:
            # Too many digits for the decimal context
            return self._fallback(text)

    def _is_numeric_part(self, part: str) -> bool:
        number_text, _ = self._split_unit(part.strip().upper())
        return self._parse_number(number_text) is not None

    def _split_unit(self, text: str) -> Tuple[str, Optional[str]]:
        """Strip a unit suffix. Returns (number text, pint unit name or None for inches)."""
        for suffix in self.INCH_SUFFIXES:
            if text.endswith(suffix):
                return text[:-len(suffix)].strip(), None
        for suffix, pint_unit in self.METRIC_SUFFIXES:
            if text.endswith(suffix):
                return text[:-len(suffix)].strip(), pint_unit
        return text, None

    def _parse_number(self, text: str) -> Optional[Fraction]:
        """Parse a mixed fraction, fraction or decimal into an exact Fraction."""
        match = self.MIXED_FRACTION.match(text)
        if match:
            whole, num, den = (int(g) for g in match.groups())
            if den == 0:
                return None
            return whole + Fraction(num, den)

        match = self.FRACTION.match(text)
        if match:
            num, den = (int(g) for g in match.groups())
            if den == 0:
                return None
            return Fraction(num, den)

        if self.DECIMAL.match(text):
            return Fraction(Decimal(text))

        return None

    def _to_millimetres(self, magnitude: Fraction, pint_unit: str) -> Optional[Fraction]:
        """Convert a metric magnitude to millimetres with Pint."""
        try:
            quantity = float(magnitude) * getattr(self.ureg, pint_unit)
            converted = quantity.to(self.ureg.millimeter).magnitude
        except Exception:
            return None
        return Fraction(Decimal(repr(converted))).limit_denominator(10 ** self.MAX_DECIMAL_PLACES)

    def _format_decimal(self, magnitude: Fraction) -> str:
        """Render a Fraction as a trimmed decimal ("0.5", "2", "0.3333")."""
        quantized = (Decimal(magnitude.numerator) / Decimal(magnitude.denominator)).quantize(
            Decimal(1).scaleb(-self.MAX_DECIMAL_PLACES)
        )
        return format(quantized.normalize(), "f")

    def _fallback(self, text: str) -> str:
        """Unparseable sizes: upper-case with quotes and whitespace removed."""
        return re.sub(r'["\'\s]', '', text) or NO_SIZE


_default_normalizer = UnitNormalizer()


def normalize_size(value: Any) -> str:
    """Module-level shortcut using a shared UnitNormalizer."""
    return _default_normalizer.normalize_size(value)
