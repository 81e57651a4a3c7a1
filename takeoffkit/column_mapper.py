from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .errors import MappingError
from .models import FieldMapping, MatchTier
from .normalizer import fold_label
from .schema import COLUMN_SYNONYMS, EXPECTED_FIELDS, FIELD_SCHEMAS, REQUIRED_FIELDS


@dataclass
class MappingConflict:
    """Two or more raw headers resolved to the same canonical field."""
    canonical_field: str
    raw_headers: List[str]

    def to_dict(self) -> Dict[str, object]:
        return {"canonicalField": self.canonical_field, "rawHeaders": list(self.raw_headers)}


@dataclass
class ColumnMappingResult:
    """Mapping for one file's header row."""
    mappings: List[FieldMapping] = field(default_factory=list)
    unmapped_headers: List[str] = field(default_factory=list)
    missing_required_fields: List[str] = field(default_factory=list)
    conflicts: List[MappingConflict] = field(default_factory=list)
    unmapped_indexes: List[int] = field(default_factory=list)

    @property
    def has_all_required_fields(self) -> bool:
        return not self.missing_required_fields

    @property
    def is_ambiguous(self) -> bool:
        return bool(self.conflicts)

    @property
    def is_blocking(self) -> bool:
        return self.is_ambiguous or not self.has_all_required_fields

    def index_for(self, canonical_field: str) -> Optional[int]:
        """Column index mapped to ``canonical_field``, or None."""
        for mapping in self.mappings:
            if mapping.canonical_field == canonical_field:
                return mapping.column_index
        return None

    def mapping_for(self, canonical_field: str) -> Optional[FieldMapping]:
        for mapping in self.mappings:
            if mapping.canonical_field == canonical_field:
                return mapping
        return None

    def require_importable(self) -> None:
        """Raise MappingError if the file cannot proceed to row validation."""
        if self.conflicts:
            described = "; ".join(
                f"{c.canonical_field} <- {', '.join(repr(h) for h in c.raw_headers)}"
                for c in self.conflicts
            )
            raise MappingError(f"Ambiguous column mapping: {described}", mapping_result=self)
        if self.missing_required_fields:
            raise MappingError(
                f"Missing required columns: {', '.join(self.missing_required_fields)}",
                mapping_result=self,
            )

    def to_dict(self) -> Dict[str, object]:
        return {
            "mappings": [m.to_dict() for m in self.mappings],
            "unmappedHeaders": list(self.unmapped_headers),
            "missingRequiredFields": list(self.missing_required_fields),
            "conflicts": [c.to_dict() for c in self.conflicts],
            "hasAllRequiredFields": self.has_all_required_fields,
        }


class ColumnMapper:
    """Maps raw header strings to canonical fields with three confidence tiers.

    Per header, first match wins:

    1. exact (100): byte-for-byte equal to a canonical field name
    2. case-insensitive (95): equal after whitespace collapsing and upper-casing
    3. synonym (85): listed in the synonym table for a canonical field

    Headers that match nothing are kept as unmapped; their values travel with
    each row as opaque attributes.
    """

    def __init__(self, expected_fields: Sequence[str] = EXPECTED_FIELDS,
                 required_fields: Sequence[str] = REQUIRED_FIELDS,
                 synonyms=COLUMN_SYNONYMS):
        """Initialize the mapper with its field and synonym tables."""
        self.expected_fields = tuple(expected_fields)
        self.required_fields = tuple(required_fields)

        # Create forward lookups: folded name/synonym -> canonical field
        self._folded_to_field = {fold_label(name): name for name in self.expected_fields}
        self._synonym_to_field = {}
        for canonical_field, variations in synonyms.items():
            for variation in variations:
                self._synonym_to_field.setdefault(fold_label(variation), canonical_field)

    def match_header(self, header: str) -> Optional[FieldMapping]:
        """Match a single header. Returns a mapping at column index 0, or None."""
        return self._match(header, 0)

    def _match(self, header: str, column_index: int) -> Optional[FieldMapping]:
        if header is None:
            return None

        # Tier 1: exact
        if header in self.expected_fields:
            return FieldMapping(header, header, MatchTier.EXACT, column_index)

        folded = fold_label(header)
        if not folded:
            return None

        # Tier 2: case-insensitive
        if folded in self._folded_to_field:
            return FieldMapping(header, self._folded_to_field[folded], MatchTier.CASE_INSENSITIVE, column_index)

        # Tier 3: synonym
        if folded in self._synonym_to_field:
            return FieldMapping(header, self._synonym_to_field[folded], MatchTier.SYNONYM, column_index)

        return None

    def map_columns(self, headers: Sequence[str]) -> ColumnMappingResult:
        """Map an ordered header row.

        Args:
            headers: Raw header strings in file order

        Returns:
            ColumnMappingResult. When two headers resolve to the same canonical
            field, neither is kept as a mapping and the collision is recorded
            in ``conflicts``.
        """
        candidates: Dict[str, List[FieldMapping]] = {}
        unmapped: List[str] = []
        unmapped_indexes: List[int] = []

        for index, header in enumerate(headers):
            mapping = self._match(header, index)
            if mapping is None:
                unmapped.append(header)
                unmapped_indexes.append(index)
            else:
                candidates.setdefault(mapping.canonical_field, []).append(mapping)

        mappings: List[FieldMapping] = []
        conflicts: List[MappingConflict] = []
        for canonical_field, found in candidates.items():
            if len(found) > 1:
                conflicts.append(MappingConflict(canonical_field, [m.raw_header for m in found]))
            else:
                mappings.append(found[0])

        mappings.sort(key=lambda m: m.column_index)
        mapped_fields = set(candidates)
        missing = [f for f in self.required_fields if f not in mapped_fields]

        return ColumnMappingResult(
            mappings=mappings,
            unmapped_headers=unmapped,
            missing_required_fields=missing,
            conflicts=conflicts,
            unmapped_indexes=unmapped_indexes,
        )

    def get_mapping_report(self, headers: Sequence[str]) -> Dict[str, object]:
        """Generate a report of column mappings for display."""
        result = self.map_columns(headers)
        report = result.to_dict()
        report["expectedFields"] = [
            FIELD_SCHEMAS.get(name, {"id": name, "label": name, "required": name in self.required_fields})
            for name in self.expected_fields
        ]
        return report
