"""Read-only import preview and payload assembly.

``build_preview`` runs the column mapper, the row validator and dimension
discovery over a RawTable and returns everything a user needs to confirm an
import. It reads from the store (existing identity keys, existing dimensions)
but never writes. ``build_import_payload`` turns a confirmed preview into the
ImportPayload sent to the executor.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set
from uuid import UUID

from .column_mapper import ColumnMapper, ColumnMappingResult
from .config import ImportSettings
from .discovery import DimensionDiscoveryResult, discover_dimensions
from .errors import BlockingRowsError, PayloadTooLargeError, StructuralError, TakeoffImportError
from .identity import IdentityKey, compute_identity_keys
from .models import ImportPayload, ParsedRow, RawTable, ValidationResult, ValidationStatus
from .validator import (
    RowValidator,
    collect_identity_keys,
    collect_identity_keys_async,
    drain_cooperatively,
    finalize_rows,
    finalize_rows_async,
)

logger = logging.getLogger(__name__)


@dataclass
class ValidationSummary:
    """Counts and groupings over one file's validation results."""
    total_rows: int
    valid_count: int
    skipped_count: int
    error_count: int
    by_category: Dict[str, int] = field(default_factory=dict)
    errors: List[ValidationResult] = field(default_factory=list)
    skipped: List[ValidationResult] = field(default_factory=list)
    valid_rows: List[ParsedRow] = field(default_factory=list)

    @property
    def can_import(self) -> bool:
        return self.error_count == 0 and self.valid_count > 0

    @classmethod
    def from_results(cls, results: List[ValidationResult]) -> "ValidationSummary":
        by_status: Dict[ValidationStatus, List[ValidationResult]] = {s: [] for s in ValidationStatus}
        by_category: Dict[str, int] = {}
        for result in results:
            by_status[result.status].append(result)
            if result.category is not None:
                by_category[result.category.value] = by_category.get(result.category.value, 0) + 1

        return cls(
            total_rows=len(results),
            valid_count=len(by_status[ValidationStatus.VALID]),
            skipped_count=len(by_status[ValidationStatus.SKIPPED]),
            error_count=len(by_status[ValidationStatus.ERROR]),
            by_category=by_category,
            errors=by_status[ValidationStatus.ERROR],
            skipped=by_status[ValidationStatus.SKIPPED],
            valid_rows=[r.data for r in by_status[ValidationStatus.VALID]],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRows": self.total_rows,
            "validCount": self.valid_count,
            "skippedCount": self.skipped_count,
            "errorCount": self.error_count,
            "canImport": self.can_import,
            "byCategory": dict(self.by_category),
            "errors": [r.to_dict() for r in self.errors],
            "skipped": [r.to_dict() for r in self.skipped],
        }


@dataclass
class ImportPreview:
    """Everything shown to the user before an import is confirmed."""
    project_id: UUID
    file_name: str
    file_size: int
    mapping: ColumnMappingResult
    results: List[ValidationResult]
    summary: ValidationSummary
    discovery: DimensionDiscoveryResult
    sample_rows: List[ParsedRow]
    records_by_type: Dict[str, int]

    @property
    def total_rows(self) -> int:
        return self.summary.total_rows

    @property
    def valid_count(self) -> int:
        return self.summary.valid_count

    @property
    def skipped_count(self) -> int:
        return self.summary.skipped_count

    @property
    def error_count(self) -> int:
        return self.summary.error_count

    @property
    def can_import(self) -> bool:
        return self.summary.can_import

    @property
    def total_records(self) -> int:
        return sum(self.records_by_type.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": str(self.project_id),
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "mapping": self.mapping.to_dict(),
            "summary": self.summary.to_dict(),
            "dimensions": self.discovery.to_dict(),
            "sampleRows": [row.to_dict() for row in self.sample_rows],
            "recordsByType": dict(self.records_by_type),
            "totalRecords": self.total_records,
        }


def _prepare(table: RawTable, settings: ImportSettings, mapper: Optional[ColumnMapper]) -> RowValidator:
    if table.total_rows > settings.max_rows:
        raise StructuralError(f"Too many rows: {table.total_rows} (max {settings.max_rows})")
    mapping = (mapper or ColumnMapper()).map_columns(table.headers)
    mapping.require_importable()
    return RowValidator(mapping, table.headers)


class _NoStore:
    """Stand-in store for offline previews: nothing exists yet."""

    def find_dimensions(self, project_id, dimension_type, names):
        return {}


def _read_existing_keys(db, project_id: UUID, keys: List[IdentityKey]) -> Set[IdentityKey]:
    """One batched read of the keys already in the store."""
    if db is None:
        return set()
    with db.transaction():
        return db.find_existing_identity_keys(project_id, keys)


def _discover(db, project_id: UUID, rows: List[ParsedRow]) -> DimensionDiscoveryResult:
    if db is None:
        return discover_dimensions(rows, project_id, _NoStore())
    with db.transaction():
        return discover_dimensions(rows, project_id, db)


def _records_by_type(rows: List[ParsedRow]) -> Dict[str, int]:
    """Records the valid rows will create, per lower-cased type."""
    records_by_type: Dict[str, int] = {}
    for _ in _count_steps(rows, records_by_type):
        pass
    return records_by_type


def _count_steps(rows: List[ParsedRow], records_by_type: Dict[str, int]) -> Iterator[int]:
    aggregates: Set[IdentityKey] = set()
    for row in rows:
        component_type = row.component_type.lower()
        keys = [key for key in compute_identity_keys(row) if key not in aggregates]
        aggregates.update(key for key in keys if key.aggregates)
        records_by_type[component_type] = records_by_type.get(component_type, 0) + len(keys)
        yield max(len(keys), 1)


def _assemble(table: RawTable, project_id: UUID, settings: ImportSettings, validator: RowValidator,
              results: List[ValidationResult], discovery: DimensionDiscoveryResult,
              records_by_type: Dict[str, int]) -> ImportPreview:
    summary = ValidationSummary.from_results(results)
    preview = ImportPreview(
        project_id=project_id,
        file_name=table.file_name,
        file_size=table.file_size,
        mapping=validator.mapping,
        results=results,
        summary=summary,
        discovery=discovery,
        sample_rows=summary.valid_rows[:settings.sample_size],
        records_by_type=records_by_type,
    )

    logger.debug(
        f"Preview of {table.file_name or 'file'}: {summary.valid_count} valid, "
        f"{summary.skipped_count} skipped, {summary.error_count} error "
        f"({preview.total_records} records)"
    )
    return preview


def build_preview(table: RawTable, project_id: UUID, db=None,
                  settings: Optional[ImportSettings] = None,
                  mapper: Optional[ColumnMapper] = None) -> ImportPreview:
    """Build the read-only preview of importing ``table`` into ``project_id``.

    Args:
        table: Parsed file
        project_id: Target project
        db: DatabaseClient to check existing keys and dimensions against;
            None previews against an empty store
        settings: Import limits (default: ImportSettings())
        mapper: Column mapper (default: ColumnMapper())

    Returns:
        ImportPreview

    Raises:
        StructuralError: If the table has more rows than allowed
        MappingError: If a required column is missing or a header is ambiguous
    """
    settings = settings or ImportSettings()
    validator = _prepare(table, settings, mapper)
    staged = validator.parse_rows(table.rows)

    keys = collect_identity_keys([item for item in staged if isinstance(item, ParsedRow)])
    existing_keys = _read_existing_keys(db, project_id, keys)
    results = finalize_rows(staged, existing_keys)

    valid_rows = [r.data for r in results if r.status is ValidationStatus.VALID]
    discovery = _discover(db, project_id, valid_rows)
    return _assemble(table, project_id, settings, validator, results, discovery, _records_by_type(valid_rows))


async def build_preview_async(table: RawTable, project_id: UUID, db=None,
                              settings: Optional[ImportSettings] = None,
                              mapper: Optional[ColumnMapper] = None) -> ImportPreview:
    """Same as :func:`build_preview`, without blocking the event loop.

    Row checks, key expansion and the duplicate scan yield every
    ``settings.yield_every`` rows or keys. Store reads run in the loop's
    default executor; each opens and closes its own read transaction in the
    worker thread.
    """
    settings = settings or ImportSettings()
    loop = asyncio.get_running_loop()
    validator = _prepare(table, settings, mapper)
    staged = await validator.parse_rows_async(table.rows, settings.yield_every)

    keys = await collect_identity_keys_async(
        [item for item in staged if isinstance(item, ParsedRow)], settings.yield_every
    )
    existing_keys = await loop.run_in_executor(None, functools.partial(_read_existing_keys, db, project_id, keys))
    results = await finalize_rows_async(staged, existing_keys, settings.yield_every)

    valid_rows = [r.data for r in results if r.status is ValidationStatus.VALID]
    discovery = await loop.run_in_executor(None, functools.partial(_discover, db, project_id, valid_rows))

    records_by_type: Dict[str, int] = {}
    await drain_cooperatively(_count_steps(valid_rows, records_by_type), settings.yield_every)
    return _assemble(table, project_id, settings, validator, results, discovery, records_by_type)


def build_import_payload(preview: ImportPreview, project_id: Optional[UUID] = None,
                         settings: Optional[ImportSettings] = None) -> ImportPayload:
    """Build the payload for a confirmed preview.

    Skipped rows are left out; the executor only ever sees valid rows.

    Raises:
        BlockingRowsError: If any row is an error
        TakeoffImportError: If there are no valid rows
        PayloadTooLargeError: If the serialized payload is over the ceiling
    """
    settings = settings or ImportSettings()

    if preview.error_count:
        raise BlockingRowsError(
            f"Cannot import while {preview.error_count} row(s) have errors",
            error_rows=preview.summary.errors,
        )
    if not preview.valid_count:
        raise TakeoffImportError("No valid rows to import")

    payload = ImportPayload(
        project_id=project_id or preview.project_id,
        rows=list(preview.summary.valid_rows),
        field_mappings=[m.to_dict() for m in preview.mapping.mappings],
        dimensions_to_create=preview.discovery.to_create(),
    )

    size_in_bytes = payload.size_in_bytes()
    if size_in_bytes > settings.max_payload_bytes:
        raise PayloadTooLargeError(size_in_bytes, settings.max_payload_bytes)

    logger.debug(f"Payload: {len(payload.rows)} rows, {size_in_bytes} bytes")
    return payload
