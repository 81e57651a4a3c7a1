"""
Transactional takeoff import engine.

This module turns a confirmed ImportPayload into persisted records:
- Dimensions (areas, systems, test packages): created on demand, reused by name
- Containers (drawings): reused by normalized reference, created otherwise
- Components: one record per identity key, after quantity expansion;
  threaded pipe rows sharing a key merge into one aggregate record

Key principles:
- All writes of one import happen in one transaction
- Rows are revalidated from scratch against current store state
- Failure is a value: the executor returns ImportResult(success=False)
  with zero counts instead of raising
- No retries; a failed import is re-submitted in full by the caller
"""

import json
import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple, Union
from uuid import UUID

from ..config import ImportSettings
from ..errors import BlockingRowsError, PayloadTooLargeError, PayloadValidationError
from ..identity import IdentityKey, compute_identity_keys
from ..models import ComponentRecord, ImportPayload, ImportResult, ParsedRow, empty_dimension_counts
from ..normalizer import normalize_drawing
from ..schema import DIMENSION_TYPES
from ..validator import collect_identity_keys, revalidate_rows

logger = logging.getLogger(__name__)


class DatabaseClient:
    """
    Abstract database client interface.

    Implement this interface with your actual database client (e.g., psycopg2).
    Every read and write runs inside a transaction opened with
    begin_transaction() (or the transaction() context manager). Upserts must
    be conflict tolerant: a name inserted concurrently by another writer
    resolves to the existing identifier instead of failing or duplicating.
    """

    def begin_transaction(self) -> None:
        """Begin a database transaction."""
        raise NotImplementedError

    def commit_transaction(self) -> None:
        """Commit the current transaction."""
        raise NotImplementedError

    def rollback_transaction(self) -> None:
        """Rollback the current transaction."""
        raise NotImplementedError

    @contextmanager
    def transaction(self) -> Iterator["DatabaseClient"]:
        """Run a block in a transaction: commit on success, rollback on error."""
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.rollback_transaction()
            raise
        self.commit_transaction()

    def find_existing_identity_keys(
        self,
        project_id: UUID,
        keys: Iterable[IdentityKey]
    ) -> Set[IdentityKey]:
        """
        Batched lookup of identity keys already stored for a project.

        Args:
            project_id: Project (container scope) ID
            keys: Candidate keys

        Returns:
            The subset of ``keys`` that already exist
        """
        raise NotImplementedError

    def find_dimensions(
        self,
        project_id: UUID,
        dimension_type: str,
        names: Iterable[str]
    ) -> Dict[str, UUID]:
        """
        Batched existence lookup of dimension names of one type.

        Returns:
            Name -> ID for every name that exists
        """
        raise NotImplementedError

    def upsert_dimensions(
        self,
        project_id: UUID,
        dimension_type: str,
        names: Iterable[str]
    ) -> Tuple[Dict[str, UUID], List[str]]:
        """
        Create missing dimensions of one type and resolve all of them.

        Returns:
            (name -> ID for every name, names created by this call)
        """
        raise NotImplementedError

    def find_drawings(
        self,
        project_id: UUID,
        drawing_norms: Iterable[str]
    ) -> Dict[str, UUID]:
        """
        Batched lookup of drawings by normalized reference.

        Returns:
            Normalized reference -> drawing ID for every drawing that exists
        """
        raise NotImplementedError

    def upsert_drawings(
        self,
        project_id: UUID,
        drawings: Dict[str, str]
    ) -> Tuple[Dict[str, UUID], List[str]]:
        """
        Create missing drawings and resolve all of them.

        Args:
            project_id: Project ID
            drawings: Normalized reference -> raw reference (stored for display)

        Returns:
            (normalized reference -> drawing ID, normalized references created)
        """
        raise NotImplementedError

    def get_progress_templates(self) -> Dict[str, UUID]:
        """
        Progress template per component type.

        Returns:
            Lower-cased component type -> template ID
        """
        raise NotImplementedError

    def insert_components(
        self,
        records: List[ComponentRecord]
    ) -> int:
        """
        Insert one batch of component records.

        Must raise if any record's identity key already exists.

        Returns:
            Number of records inserted
        """
        raise NotImplementedError


def _record_attributes(row: ParsedRow) -> Dict[str, Any]:
    """Attributes persisted with every record generated from ``row``."""
    return {
        "spec": row.spec or None,
        "description": row.description or None,
        "size": row.size or None,
        "cmdty_code": row.commodity_code,
        "comments": row.comments or None,
        "original_qty": row.quantity,
        "unmapped": dict(row.unmapped),
    }


def _rollback(db: DatabaseClient) -> None:
    """Roll back the current transaction; a failing rollback is logged, not raised."""
    try:
        db.rollback_transaction()
    except Exception as e:
        logger.error(f"Rollback failed: {e}", exc_info=True)


def _chunks(items: List[Any], size: int) -> Iterator[List[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def execute_import(
    payload: ImportPayload,
    db: DatabaseClient,
    settings: Optional[ImportSettings] = None,
    debug: bool = False
) -> ImportResult:
    """
    Execute a confirmed import as one atomic unit of work.

    Process:
    1. Check row count and payload size (before any write)
    2. Revalidate every row with the shared row rules
    3. Reject keys that already exist in the store
    4. Upsert dimensions and build name -> ID lookups
    5. Upsert drawings and build normalized reference -> ID lookup
    6. Generate one record per identity key
    7. Insert records in batches
    8. Commit, or roll back everything on any failure

    Args:
        payload: Confirmed payload (valid rows only)
        db: Database client implementation
        settings: Limits and batch size (default: ImportSettings())
        debug: If True, log every decision

    Returns:
        ImportResult. On failure ``success`` is False, every count is zero and
        ``details`` lists the blocking rows.
    """
    settings = settings or ImportSettings()
    started = time.monotonic()
    project_id = payload.project_id

    # Fail fast, before any write
    if len(payload.rows) > settings.max_rows:
        return ImportResult.failure(
            f"Too many rows: {len(payload.rows)} (max {settings.max_rows})",
            duration_ms=_elapsed_ms(started),
        )
    size_in_bytes = payload.size_in_bytes()
    if size_in_bytes > settings.max_payload_bytes:
        return ImportResult.failure(
            str(PayloadTooLargeError(size_in_bytes, settings.max_payload_bytes)),
            duration_ms=_elapsed_ms(started),
        )
    if not payload.rows:
        return ImportResult.failure("Payload contains no rows to import", duration_ms=_elapsed_ms(started))

    details = revalidate_rows(payload.rows)
    if details:
        return ImportResult.failure("Validation failed", details, duration_ms=_elapsed_ms(started))

    if debug:
        logger.info(f"Importing {len(payload.rows)} rows into project {project_id}")

    # Begin transaction for atomicity
    try:
        db.begin_transaction()
    except Exception as e:
        logger.error(f"Could not begin import transaction: {e}", exc_info=True)
        return ImportResult.failure(f"Import failed: {e}", duration_ms=_elapsed_ms(started))

    try:
        # ========================================================================
        # STEP 1: Reject Identity Keys Already In The Store
        # ========================================================================
        # Checked against current store state, not the preview's snapshot
        existing_keys = db.find_existing_identity_keys(project_id, collect_identity_keys(payload.rows))
        if existing_keys:
            raise BlockingRowsError(
                f"{len(existing_keys)} identity key(s) already exist in the project",
                error_rows=revalidate_rows(payload.rows, existing_keys),
            )

        # ========================================================================
        # STEP 2: Upsert Dimensions
        # ========================================================================
        dimension_lookups: Dict[str, Dict[str, UUID]] = {}
        dimensions_created = empty_dimension_counts()

        for dimension_type in DIMENSION_TYPES.values():
            names = sorted({row.dimension_value(dimension_type) for row in payload.rows} - {""})
            unreferenced = set(payload.dimensions_to_create.get(dimension_type, [])) - set(names)
            if debug and unreferenced:
                logger.info(f"Ignoring unreferenced {dimension_type} names: {sorted(unreferenced)}")
            if not names:
                dimension_lookups[dimension_type] = {}
                continue

            lookup, created = db.upsert_dimensions(project_id, dimension_type, names)
            dimension_lookups[dimension_type] = lookup
            dimensions_created[dimension_type] = len(created)

            if debug:
                logger.info(
                    f"{dimension_type}: {len(created)} created, "
                    f"{len(names) - len(created)} reused"
                )

        # ========================================================================
        # STEP 3: Upsert Drawings
        # ========================================================================
        # First raw spelling wins as the display reference
        drawings: Dict[str, str] = {}
        for row in payload.rows:
            drawings.setdefault(normalize_drawing(row.drawing), row.drawing)

        drawing_lookup, drawings_created = db.upsert_drawings(project_id, drawings)

        if debug:
            logger.info(
                f"Drawings: {len(drawings_created)} created, "
                f"{len(drawings) - len(drawings_created)} reused"
            )

        # ========================================================================
        # STEP 4: Resolve Progress Templates
        # ========================================================================
        templates = db.get_progress_templates()

        # ========================================================================
        # STEP 5: Generate Records
        # ========================================================================
        records: List[ComponentRecord] = []
        records_by_category: Dict[str, int] = {}
        aggregates: Dict[IdentityKey, ComponentRecord] = {}

        for row in payload.rows:
            component_type = row.component_type.lower()
            drawing_id = drawing_lookup[normalize_drawing(row.drawing)]
            attributes = _record_attributes(row)
            dimension_ids = {
                dimension_type: dimension_lookups[dimension_type].get(row.dimension_value(dimension_type))
                for dimension_type in DIMENSION_TYPES.values()
            }

            for key in compute_identity_keys(row):
                aggregate = aggregates.get(key)
                if aggregate is not None:
                    aggregate.attributes["total_linear_feet"] += row.quantity
                    aggregate.attributes["line_numbers"].append(str(row.row_number))
                    continue

                record = ComponentRecord(
                    project_id=project_id,
                    component_type=component_type,
                    drawing_id=drawing_id,
                    identity_key=key.to_record(),
                    attributes=dict(attributes),
                    row_number=row.row_number,
                    progress_template_id=templates.get(component_type),
                    area_id=dimension_ids["area"],
                    system_id=dimension_ids["system"],
                    test_package_id=dimension_ids["test_package"],
                )
                if key.aggregates:
                    # First row of the aggregate supplies the other attributes
                    record.attributes["total_linear_feet"] = row.quantity
                    record.attributes["line_numbers"] = [str(row.row_number)]
                    aggregates[key] = record

                records.append(record)
                records_by_category[component_type] = records_by_category.get(component_type, 0) + 1

        # ========================================================================
        # STEP 6: Batch Insert
        # ========================================================================
        inserted = 0
        for batch_number, batch in enumerate(_chunks(records, settings.batch_size), start=1):
            inserted += db.insert_components(batch)
            if debug:
                logger.info(f"Inserted batch {batch_number} ({len(batch)} records)")

        if inserted != len(records):
            raise RuntimeError(f"Inserted {inserted} of {len(records)} records")

        # Commit transaction
        db.commit_transaction()

    except BlockingRowsError as e:
        _rollback(db)
        logger.warning(f"Import rejected: {e}")
        return ImportResult.failure(str(e), e.error_rows, duration_ms=_elapsed_ms(started))

    except Exception as e:
        # Rollback on any error
        _rollback(db)
        logger.error(f"Takeoff import failed: {e}", exc_info=True)
        return ImportResult.failure(f"Import failed: {e}", duration_ms=_elapsed_ms(started))

    result = ImportResult(
        success=True,
        records_created=inserted,
        containers_created=len(drawings_created),
        containers_reused=len(drawings) - len(drawings_created),
        dimensions_created=dimensions_created,
        records_by_category=records_by_category,
        duration_ms=_elapsed_ms(started),
    )

    if debug:
        logger.info(f"Import complete: {result.records_created} records in {result.duration_ms}ms")

    return result


def handle_import_request(
    raw: Union[str, bytes, Dict[str, Any]],
    db: DatabaseClient,
    settings: Optional[ImportSettings] = None,
    debug: bool = False
) -> ImportResult:
    """
    Server entry point: check, parse and execute a submitted payload.

    Args:
        raw: Request body as JSON text or bytes, or an already decoded dict
        db: Database client implementation
        settings: Limits and batch size (default: ImportSettings())
        debug: Passed through to execute_import

    Returns:
        ImportResult (never raises for a rejected payload)
    """
    settings = settings or ImportSettings()

    if isinstance(raw, dict):
        body = json.dumps(raw, ensure_ascii=False).encode("utf-8")
        data = raw
    else:
        body = raw.encode("utf-8") if isinstance(raw, str) else raw
        data = None

    if len(body) > settings.max_payload_bytes:
        return ImportResult.failure(str(PayloadTooLargeError(len(body), settings.max_payload_bytes)))

    if data is None:
        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            return ImportResult.failure(f"Invalid JSON payload: {e}")

    try:
        payload = ImportPayload.from_dict(data)
    except PayloadValidationError as e:
        return ImportResult.failure(str(e), e.details)

    return execute_import(payload, db, settings=settings, debug=debug)
