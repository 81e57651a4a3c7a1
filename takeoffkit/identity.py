"""Identity keys and the row rules shared by preview and import.

The preview validator and the executor's revalidation both call into this
module and nothing else for type membership, quantity parsing and identity
key computation, so the two paths cannot compute different keys for the
same row.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from .models import ParsedRow
from .normalizer import fold_label, normalize_drawing, to_text
from .schema import COMPONENT_TYPES
from .unit_normalizer import normalize_size

_TYPES_BY_FOLDED_NAME = {fold_label(name): name for name in COMPONENT_TYPES}

# Types whose key is the commodity code alone: {key field: ...}
SINGLE_ID_TYPES = {
    "spool": "spool_id",
    "field_weld": "weld_number",
}
# Types that are always one record per drawing + commodity + size
UNSEQUENCED_TYPES = {"instrument", "threaded_pipe"}
# Unsequenced types whose rows in one file merge into a single record
AGGREGATE_TYPES = {"threaded_pipe"}


def canonical_component_type(value: Any) -> Optional[str]:
    """Case-insensitive lookup in the supported type set.

    Returns the canonical spelling (e.g. "Field_Weld") or None.
    """
    return _TYPES_BY_FOLDED_NAME.get(fold_label(value))


def parse_quantity(value: Any) -> Optional[int]:
    """Parse a non-negative integer quantity.

    Integral decimals are accepted ("2", "2.0", 2.0). Anything else, including
    negative or fractional values, returns None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None

    text = to_text(value).strip()
    if not text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite() or number < 0 or number != number.to_integral_value():
        return None
    return int(number)


@dataclass(frozen=True)
class IdentityKey:
    """Deterministic key of one candidate record.

    ``drawing_norm``, ``size`` and ``seq`` are None for the fields a type does
    not use. Keys are scoped by component type.
    """
    component_type: str
    commodity_code: str
    drawing_norm: Optional[str] = None
    size: Optional[str] = None
    seq: Optional[int] = None

    @property
    def aggregates(self) -> bool:
        """True when rows sharing this key merge into one record."""
        return self.component_type in AGGREGATE_TYPES

    @property
    def aggregate_id(self) -> str:
        return f"{self.drawing_norm}-{self.size}-{self.commodity_code}-AGG"

    def to_record(self) -> Dict[str, Any]:
        """The JSON form persisted on the record."""
        key_field = SINGLE_ID_TYPES.get(self.component_type)
        if key_field:
            return {key_field: self.commodity_code}
        record = {
            "drawing_norm": self.drawing_norm,
            "commodity_code": self.commodity_code,
            "size": self.size,
        }
        if self.aggregates:
            record["pipe_id"] = self.aggregate_id
        elif self.seq is not None:
            record["seq"] = self.seq
        return record

    @classmethod
    def from_record(cls, component_type: str, record: Dict[str, Any]) -> "IdentityKey":
        """Rebuild a key from a stored record's type and identity JSON."""
        component_type = component_type.lower()
        key_field = SINGLE_ID_TYPES.get(component_type)
        if key_field:
            return cls(component_type=component_type, commodity_code=str(record.get(key_field, "")))
        seq = record.get("seq")
        return cls(
            component_type=component_type,
            commodity_code=str(record.get("commodity_code", "")),
            drawing_norm=record.get("drawing_norm"),
            size=record.get("size"),
            seq=None if component_type in UNSEQUENCED_TYPES or seq is None else int(seq),
        )

    def __str__(self) -> str:
        if self.drawing_norm is None:
            return f"{self.component_type}:{self.commodity_code}"
        if self.aggregates:
            return f"{self.component_type}:{self.aggregate_id}"
        text = f"{self.component_type}:{self.drawing_norm}-{self.size}-{self.commodity_code}"
        if self.seq is not None:
            text += f"-{self.seq:03d}"
        return text


def compute_identity_keys(row: ParsedRow) -> List[IdentityKey]:
    """All identity keys a row produces, after quantity expansion.

    Spool and Field_Weld rows yield one key from the commodity code alone.
    Instrument and Threaded_Pipe rows yield one key without a sequence; for
    threaded pipe the quantity is linear feet, summed over the rows sharing
    the key. Every other type yields ``quantity`` keys with sequence 1..N.
    Zero quantity yields none.
    """
    if row.quantity <= 0:
        return []

    component_type = row.component_type.lower()
    commodity_code = fold_label(row.commodity_code)

    if component_type in SINGLE_ID_TYPES:
        return [IdentityKey(component_type=component_type, commodity_code=commodity_code)]

    drawing_norm = normalize_drawing(row.drawing)
    size = normalize_size(row.size)

    if component_type in UNSEQUENCED_TYPES:
        return [IdentityKey(component_type, commodity_code, drawing_norm, size)]

    return [
        IdentityKey(component_type, commodity_code, drawing_norm, size, seq)
        for seq in range(1, row.quantity + 1)
    ]
