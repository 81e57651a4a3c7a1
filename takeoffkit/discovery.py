"""Dimension discovery: which grouping values a file references and which already exist."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List
from uuid import UUID

from .models import DimensionDiscovery, ParsedRow, empty_dimension_counts
from .schema import DIMENSION_TYPES

logger = logging.getLogger(__name__)


@dataclass
class DimensionDiscoveryResult:
    """All discovered dimension values, sorted by type then name."""
    entries: List[DimensionDiscovery] = field(default_factory=list)

    def for_type(self, dimension_type: str) -> List[DimensionDiscovery]:
        return [e for e in self.entries if e.dimension_type == dimension_type]

    def get(self, dimension_type: str, name: str):
        for entry in self.entries:
            if entry.dimension_type == dimension_type and entry.name == name:
                return entry
        return None

    def to_create(self) -> Dict[str, List[str]]:
        """Names with status ``will_create``, per dimension type."""
        result = {dimension_type: [] for dimension_type in DIMENSION_TYPES.values()}
        for entry in self.entries:
            if not entry.exists:
                result[entry.dimension_type].append(entry.name)
        return result

    def counts(self) -> Dict[str, Dict[str, int]]:
        """{"exists": {type: n}, "will_create": {type: n}}"""
        counts = {"exists": empty_dimension_counts(), "will_create": empty_dimension_counts()}
        for entry in self.entries:
            counts[entry.status][entry.dimension_type] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "counts": self.counts(),
        }


def unique_dimension_values(rows: Iterable[ParsedRow]) -> Dict[str, List[str]]:
    """Unique non-empty dimension names per type, sorted."""
    values = {dimension_type: set() for dimension_type in DIMENSION_TYPES.values()}
    for row in rows:
        for dimension_type, names in values.items():
            name = row.dimension_value(dimension_type)
            if name:
                names.add(name)
    return {dimension_type: sorted(names) for dimension_type, names in values.items()}


def discover_dimensions(rows: Iterable[ParsedRow], project_id: UUID, db) -> DimensionDiscoveryResult:
    """Classify every referenced dimension value as ``exists`` or ``will_create``.

    Makes one batched ``db.find_dimensions`` call per dimension type that has
    any values. Must be called inside an open transaction on ``db``.

    Args:
        rows: Valid rows of the file
        project_id: Project whose dimensions are checked
        db: DatabaseClient implementation

    Returns:
        DimensionDiscoveryResult
    """
    entries: List[DimensionDiscovery] = []

    for dimension_type, names in unique_dimension_values(rows).items():
        if not names:
            continue
        existing: Dict[str, UUID] = db.find_dimensions(project_id, dimension_type, names)
        entries.extend(
            DimensionDiscovery(dimension_type, name, existing.get(name))
            for name in names
        )
        logger.debug(
            f"{dimension_type}: {len(existing)} existing, {len(names) - len(existing)} to create"
        )

    return DimensionDiscoveryResult(entries=entries)
