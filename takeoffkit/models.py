"""Data types shared by the preview path and the import executor."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from .errors import PayloadValidationError
from .normalizer import normalize_label
from .schema import DIMENSION_TYPES


# =============================================================================
# RAW INPUT
# =============================================================================

@dataclass
class RawTable:
    """A file after structural parsing: ordered headers plus string cells.

    Rows exclude the header and blank lines. ``rows[i]`` is file row ``i + 1``.
    """
    headers: List[str]
    rows: List[List[str]]
    file_name: str = ""
    file_size: int = 0

    @property
    def total_rows(self) -> int:
        return len(self.rows)


# =============================================================================
# COLUMN MAPPING
# =============================================================================

class MatchTier(str, Enum):
    """Column mapping tiers, strongest first."""
    EXACT = "exact"
    CASE_INSENSITIVE = "case-insensitive"
    SYNONYM = "synonym"

    @property
    def confidence(self) -> int:
        return _TIER_CONFIDENCE[self]


_TIER_CONFIDENCE = {
    MatchTier.EXACT: 100,
    MatchTier.CASE_INSENSITIVE: 95,
    MatchTier.SYNONYM: 85,
}


@dataclass(frozen=True)
class FieldMapping:
    """One raw header mapped to one canonical field."""
    raw_header: str
    canonical_field: str
    match_tier: MatchTier
    column_index: int

    @property
    def confidence(self) -> int:
        return self.match_tier.confidence

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rawHeader": self.raw_header,
            "canonicalField": self.canonical_field,
            "confidence": self.confidence,
            "matchTier": self.match_tier.value,
        }


# =============================================================================
# PARSED ROWS
# =============================================================================

@dataclass(frozen=True)
class ParsedRow:
    """One accepted input row.

    Required and optional canonical values are typed fields; unmapped columns
    ride along in ``unmapped`` keyed by their raw header. ``drawing``,
    ``commodity_code`` and ``size`` hold the cleaned cell text; identity keys
    are always derived from them through :mod:`takeoffkit.identity`.
    """
    row_number: int
    drawing: str
    component_type: str
    quantity: int
    commodity_code: str
    size: str = ""
    spec: str = ""
    description: str = ""
    comments: str = ""
    area: str = ""
    system: str = ""
    test_package: str = ""
    unmapped: Dict[str, str] = field(default_factory=dict)

    def dimension_value(self, dimension_type: str) -> str:
        """Name of the row's dimension of ``dimension_type`` ('' when unset)."""
        return {
            "area": self.area,
            "system": self.system,
            "test_package": self.test_package,
        }[dimension_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rowNumber": self.row_number,
            "drawing": self.drawing,
            "type": self.component_type,
            "qty": self.quantity,
            "cmdtyCode": self.commodity_code,
            "size": self.size,
            "spec": self.spec,
            "description": self.description,
            "comments": self.comments,
            "area": self.area,
            "system": self.system,
            "testPackage": self.test_package,
            "unmappedAttributes": dict(self.unmapped),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParsedRow":
        """Build a row from its payload form. Expects a structurally valid dict."""
        return cls(
            row_number=int(data["rowNumber"]),
            drawing=normalize_label(data.get("drawing")),
            component_type=normalize_label(data.get("type")),
            quantity=data["qty"],
            commodity_code=normalize_label(data.get("cmdtyCode")),
            size=normalize_label(data.get("size")),
            spec=normalize_label(data.get("spec")),
            description=normalize_label(data.get("description")),
            comments=normalize_label(data.get("comments")),
            area=normalize_label(data.get("area")),
            system=normalize_label(data.get("system")),
            test_package=normalize_label(data.get("testPackage")),
            unmapped={str(k): "" if v is None else str(v)
                      for k, v in (data.get("unmappedAttributes") or {}).items()},
        )


# =============================================================================
# VALIDATION RESULTS
# =============================================================================

class ValidationStatus(str, Enum):
    VALID = "valid"
    SKIPPED = "skipped"
    ERROR = "error"


class ValidationCategory(str, Enum):
    MISSING_REQUIRED_FIELD = "missing_required_field"
    UNSUPPORTED_TYPE = "unsupported_type"
    INVALID_OR_ZERO_QUANTITY = "invalid_or_zero_quantity"
    DUPLICATE_IDENTITY_KEY = "duplicate_identity_key"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome for exactly one input row: valid, skipped or error.

    Build instances with :meth:`valid`, :meth:`skipped` or :meth:`error`;
    the constructor rejects inconsistent combinations.
    """
    row_number: int
    status: ValidationStatus
    reason: Optional[str] = None
    category: Optional[ValidationCategory] = None
    data: Optional[ParsedRow] = None

    def __post_init__(self):
        if self.status is ValidationStatus.VALID:
            if self.data is None or self.reason is not None or self.category is not None:
                raise ValueError("valid results carry row data and no reason")
        else:
            if self.data is not None or not self.reason or self.category is None:
                raise ValueError(f"{self.status.value} results carry a reason and category, not row data")

    @classmethod
    def valid(cls, row: ParsedRow) -> "ValidationResult":
        return cls(row_number=row.row_number, status=ValidationStatus.VALID, data=row)

    @classmethod
    def skipped(cls, row_number: int, category: ValidationCategory, reason: str) -> "ValidationResult":
        return cls(row_number=row_number, status=ValidationStatus.SKIPPED, reason=reason, category=category)

    @classmethod
    def error(cls, row_number: int, category: ValidationCategory, reason: str) -> "ValidationResult":
        return cls(row_number=row_number, status=ValidationStatus.ERROR, reason=reason, category=category)

    @property
    def is_blocking(self) -> bool:
        return self.status is ValidationStatus.ERROR

    def to_dict(self) -> Dict[str, Any]:
        result = {"rowNumber": self.row_number, "status": self.status.value}
        if self.reason is not None:
            result["reason"] = self.reason
            result["category"] = self.category.value
        return result


# =============================================================================
# DIMENSIONS
# =============================================================================

@dataclass(frozen=True)
class DimensionDiscovery:
    """One unique dimension value found in the file."""
    dimension_type: str
    name: str
    record_id: Optional[UUID] = None

    @property
    def exists(self) -> bool:
        return self.record_id is not None

    @property
    def status(self) -> str:
        return "exists" if self.exists else "will_create"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.dimension_type,
            "value": self.name,
            "status": self.status,
            "recordId": str(self.record_id) if self.record_id else None,
        }


# =============================================================================
# PAYLOAD
# =============================================================================

def empty_dimension_counts() -> Dict[str, int]:
    return {dimension_type: 0 for dimension_type in DIMENSION_TYPES.values()}


@dataclass
class ImportPayload:
    """Client-validated unit of work sent to the executor."""
    project_id: UUID
    rows: List[ParsedRow]
    field_mappings: List[Dict[str, Any]] = field(default_factory=list)
    dimensions_to_create: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": str(self.project_id),
            "rows": [row.to_dict() for row in self.rows],
            "fieldMappings": list(self.field_mappings),
            "dimensionsToCreate": {k: list(v) for k, v in self.dimensions_to_create.items()},
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def size_in_bytes(self) -> int:
        return len(self.to_json().encode("utf-8"))

    @classmethod
    def from_dict(cls, data: Any) -> "ImportPayload":
        """Validate the payload's structure and build it.

        Raises:
            PayloadValidationError: With one detail per problem found
        """
        details = _payload_structure_errors(data)
        if details:
            raise PayloadValidationError("Payload validation failed", details)

        return cls(
            project_id=UUID(str(data["projectId"])),
            rows=[ParsedRow.from_dict(row) for row in data["rows"]],
            field_mappings=list(data.get("fieldMappings") or []),
            dimensions_to_create={
                dimension_type: [normalize_label(name) for name in names]
                for dimension_type, names in (data.get("dimensionsToCreate") or {}).items()
            },
        )


def _payload_structure_errors(data: Any) -> List[Dict[str, Any]]:
    """Collect structural problems of a raw payload dict."""
    if not isinstance(data, dict):
        return [{"row": 0, "issue": "Payload must be a JSON object"}]

    errors: List[Dict[str, Any]] = []

    try:
        UUID(str(data.get("projectId")))
    except ValueError:
        errors.append({"row": 0, "issue": "Missing or invalid projectId"})

    if not isinstance(data.get("fieldMappings", []), list):
        errors.append({"row": 0, "issue": "fieldMappings must be an array"})

    dimensions = data.get("dimensionsToCreate", {})
    if not isinstance(dimensions, dict):
        errors.append({"row": 0, "issue": "dimensionsToCreate must be an object"})
    else:
        for dimension_type, names in dimensions.items():
            if dimension_type not in DIMENSION_TYPES.values():
                errors.append({"row": 0, "issue": f"Unknown dimension type: {dimension_type}"})
            elif not isinstance(names, list) or not all(isinstance(n, str) for n in names):
                errors.append({"row": 0, "issue": f"dimensionsToCreate.{dimension_type} must be an array of strings"})

    rows = data.get("rows")
    if not isinstance(rows, list):
        errors.append({"row": 0, "issue": "Missing or invalid rows array"})
        return errors

    for index, row in enumerate(rows):
        position = index + 1
        if not isinstance(row, dict):
            errors.append({"row": position, "issue": "Row must be an object"})
            continue
        row_number = row.get("rowNumber")
        if isinstance(row_number, bool) or not isinstance(row_number, int) or row_number < 1:
            errors.append({"row": position, "issue": "rowNumber must be a positive integer"})
            row_number = position
        qty = row.get("qty")
        if isinstance(qty, bool) or not isinstance(qty, int):
            errors.append({
                "row": row_number,
                "issue": f"Invalid qty data type: expected integer, got {type(qty).__name__}",
                "context": str(row.get("drawing", "")),
            })
        for key in ("drawing", "type", "cmdtyCode", "size", "spec", "description",
                    "comments", "area", "system", "testPackage"):
            value = row.get(key)
            if value is not None and not isinstance(value, str):
                errors.append({"row": row_number, "issue": f"{key} must be a string"})
        unmapped = row.get("unmappedAttributes")
        if unmapped is not None and not isinstance(unmapped, dict):
            errors.append({"row": row_number, "issue": "unmappedAttributes must be an object"})

    return errors


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class ComponentRecord:
    """A record ready for insertion."""
    project_id: UUID
    component_type: str
    drawing_id: UUID
    identity_key: Dict[str, Any]
    attributes: Dict[str, Any]
    row_number: int
    progress_template_id: Optional[UUID] = None
    area_id: Optional[UUID] = None
    system_id: Optional[UUID] = None
    test_package_id: Optional[UUID] = None


@dataclass
class ImportResult:
    """Executor outcome. On failure every count is zero."""
    success: bool
    records_created: int = 0
    containers_created: int = 0
    containers_reused: int = 0
    dimensions_created: Dict[str, int] = field(default_factory=empty_dimension_counts)
    records_by_category: Dict[str, int] = field(default_factory=dict)
    duration_ms: int = 0
    error: Optional[str] = None
    details: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def failure(cls, error: str, details: Optional[List[Dict[str, Any]]] = None,
                duration_ms: int = 0) -> "ImportResult":
        return cls(
            success=False,
            duration_ms=duration_ms,
            error=error,
            details=details if details is not None else [{"row": 0, "issue": error}],
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": self.success,
            "recordsCreated": self.records_created,
            "containersCreated": self.containers_created,
            "containersReused": self.containers_reused,
            "dimensionsCreated": dict(self.dimensions_created),
            "recordsByCategory": dict(self.records_by_category),
            "durationMs": self.duration_ms,
        }
        if not self.success:
            result["error"] = self.error
            result["details"] = list(self.details)
        return result
