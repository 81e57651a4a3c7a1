"""Row validation and categorization.

Each input row is classified as valid, skipped or error. Checks run in a
fixed order and the first failing check decides the row:

1. required values present             -> error   missing_required_field
2. component type supported            -> skipped unsupported_type
3. quantity is a positive integer      -> skipped invalid_or_zero_quantity
4. identity keys computed (quantity expansion)
5. keys unique in the file and store   -> error   duplicate_identity_key

Validation is pure: the same rows, mapping and set of existing keys always
give the same results. It runs once for the preview and again, from the
payload, inside the import executor.
"""

import asyncio
import logging
from typing import Any, Collection, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .column_mapper import ColumnMappingResult
from .identity import IdentityKey, canonical_component_type, compute_identity_keys, parse_quantity
from .models import ParsedRow, ValidationCategory, ValidationResult, ValidationStatus
from .normalizer import normalize_drawing, normalize_label
from .schema import REQUIRED_FIELDS

logger = logging.getLogger(__name__)

# canonical field -> ParsedRow attribute
_OPTIONAL_FIELDS = {
    "SIZE": "size",
    "SPEC": "spec",
    "DESCRIPTION": "description",
    "COMMENTS": "comments",
    "AREA": "area",
    "SYSTEM": "system",
    "TEST_PACKAGE": "test_package",
}


def check_row(row_number: int, drawing: Any, component_type: Any, quantity: Any,
              commodity_code: Any) -> Tuple[Optional[ValidationResult], Optional[str], Optional[int]]:
    """Apply checks 1-3 to one row's required values.

    Returns:
        (result, canonical type, quantity). ``result`` is None when the row
        passed; otherwise it is the skipped/error result and the other two
        values are None.
    """
    values = {
        "DRAWING": normalize_drawing(drawing),
        "TYPE": normalize_label(component_type),
        "QTY": normalize_label(quantity),
        "CMDTY CODE": normalize_label(commodity_code),
    }
    for required_field in REQUIRED_FIELDS:
        if not values[required_field]:
            return ValidationResult.error(
                row_number,
                ValidationCategory.MISSING_REQUIRED_FIELD,
                f"Required field {required_field} is empty",
            ), None, None

    canonical_type = canonical_component_type(component_type)
    if canonical_type is None:
        return ValidationResult.skipped(
            row_number,
            ValidationCategory.UNSUPPORTED_TYPE,
            f"Unsupported component type: {values['TYPE']}",
        ), None, None

    parsed_quantity = parse_quantity(quantity)
    if parsed_quantity is None:
        return ValidationResult.skipped(
            row_number,
            ValidationCategory.INVALID_OR_ZERO_QUANTITY,
            f"QTY must be a non-negative integer, got {values['QTY']!r}",
        ), None, None
    if parsed_quantity == 0:
        return ValidationResult.skipped(
            row_number,
            ValidationCategory.INVALID_OR_ZERO_QUANTITY,
            "Component quantity is 0",
        ), None, None

    return None, canonical_type, parsed_quantity


def find_duplicates(candidates: Iterable[Tuple[int, List[IdentityKey]]],
                    existing_keys: Collection[IdentityKey] = frozenset()) -> Dict[int, List[str]]:
    """Find rows whose keys collide within the sequence or with ``existing_keys``.

    Rows sharing an aggregate key (threaded pipe) merge into one record and
    do not collide with each other; they still collide with the store.

    Args:
        candidates: (row number, keys) pairs in file order
        existing_keys: Keys already present in the store

    Returns:
        Row number -> list of human-readable collision descriptions. Both rows
        of an intra-file collision are reported, each naming the other.
    """
    clashes: Dict[int, List[str]] = {}
    for _ in _duplicate_steps(candidates, existing_keys, clashes):
        pass
    return clashes


def _duplicate_steps(candidates: Iterable[Tuple[int, List[IdentityKey]]],
                     existing_keys: Collection[IdentityKey],
                     clashes: Dict[int, List[str]]) -> Iterator[int]:
    """Duplicate scan filling ``clashes``; yields the keys checked per row."""
    first_seen: Dict[IdentityKey, int] = {}

    for row_number, keys in candidates:
        for key in keys:
            if key in existing_keys:
                clashes.setdefault(row_number, []).append(
                    f"Duplicate identity key {key}: already exists in the project"
                )
                continue
            other = first_seen.get(key)
            if other is None:
                first_seen[key] = row_number
            elif other != row_number and not key.aggregates:
                clashes.setdefault(row_number, []).append(
                    f"Duplicate identity key {key} (also in row {other})"
                )
                clashes.setdefault(other, []).append(
                    f"Duplicate identity key {key} (also in row {row_number})"
                )
        yield max(len(keys), 1)


async def drain_cooperatively(steps: Iterable[int], yield_every: int) -> None:
    """Run a step generator, yielding to the event loop every ``yield_every`` units of work."""
    done = 0
    for work in steps:
        done += work
        if done >= yield_every:
            done = 0
            await asyncio.sleep(0)


class RowValidator:
    """Validates mapped file rows against the shared row rules."""

    def __init__(self, mapping: ColumnMappingResult, headers: Sequence[str]):
        """Initialize the validator for one file's header mapping.

        Args:
            mapping: Column mapping; must not be blocking
            headers: Raw header row (names the unmapped attributes)
        """
        mapping.require_importable()
        self.mapping = mapping
        self._required_indexes = {f: mapping.index_for(f) for f in REQUIRED_FIELDS}
        self._optional_indexes = {
            attr: mapping.index_for(canonical)
            for canonical, attr in _OPTIONAL_FIELDS.items()
        }
        self._unmapped_columns = [
            (index, headers[index]) for index in mapping.unmapped_indexes
            if headers[index] is not None and str(headers[index]).strip()
        ]

    @staticmethod
    def _cell(cells: Sequence[Any], index: Optional[int]) -> str:
        if index is None or index >= len(cells):
            return ""
        value = cells[index]
        return "" if value is None else str(value)

    def parse_row(self, row_number: int, cells: Sequence[Any]):
        """Checks 1-3 for one row.

        Returns:
            A skipped/error ValidationResult, or a ParsedRow ready for the
            duplicate check.
        """
        required = {f: self._cell(cells, i) for f, i in self._required_indexes.items()}
        result, component_type, quantity = check_row(
            row_number,
            drawing=required["DRAWING"],
            component_type=required["TYPE"],
            quantity=required["QTY"],
            commodity_code=required["CMDTY CODE"],
        )
        if result is not None:
            return result

        optional = {
            attr: normalize_label(self._cell(cells, index))
            for attr, index in self._optional_indexes.items()
        }
        unmapped = {
            str(header): self._cell(cells, index)
            for index, header in self._unmapped_columns
            if self._cell(cells, index) != ""
        }

        return ParsedRow(
            row_number=row_number,
            drawing=normalize_label(required["DRAWING"]),
            component_type=component_type,
            quantity=quantity,
            commodity_code=normalize_label(required["CMDTY CODE"]),
            unmapped=unmapped,
            **optional,
        )

    def parse_rows(self, rows: Iterable[Sequence[Any]]) -> List[Any]:
        """Checks 1-3 for every row, numbered from 1 in file order."""
        return [self.parse_row(number, cells) for number, cells in enumerate(rows, start=1)]

    async def parse_rows_async(self, rows: Iterable[Sequence[Any]], yield_every: int = 500) -> List[Any]:
        """Same as :meth:`parse_rows`, yielding to the event loop every ``yield_every`` rows."""
        staged = []
        for number, cells in enumerate(rows, start=1):
            staged.append(self.parse_row(number, cells))
            if number % yield_every == 0:
                await asyncio.sleep(0)
        return staged

    def validate(self, rows: Iterable[Sequence[Any]],
                 existing_keys: Collection[IdentityKey] = frozenset()) -> List[ValidationResult]:
        """Validate every row. Returns one result per row, in file order."""
        return finalize_rows(self.parse_rows(rows), existing_keys)

    async def validate_async(self, rows: Iterable[Sequence[Any]],
                             existing_keys: Collection[IdentityKey] = frozenset(),
                             yield_every: int = 500) -> List[ValidationResult]:
        """Same as :meth:`validate`, cooperatively yielding while rows are parsed and checked."""
        staged = await self.parse_rows_async(rows, yield_every)
        return await finalize_rows_async(staged, existing_keys, yield_every)


def _keyed_rows(staged: Sequence[Any]) -> Iterator[Tuple[int, List[IdentityKey]]]:
    for item in staged:
        if isinstance(item, ParsedRow):
            yield item.row_number, compute_identity_keys(item)


def _finalize_steps(staged: Sequence[Any], existing_keys: Collection[IdentityKey],
                    results: List[ValidationResult]) -> Iterator[int]:
    """Duplicate check over parsed rows, appending the final results to ``results``."""
    clashes: Dict[int, List[str]] = {}
    yield from _duplicate_steps(_keyed_rows(staged), existing_keys, clashes)

    for item in staged:
        if isinstance(item, ValidationResult):
            results.append(item)
        elif item.row_number in clashes:
            results.append(ValidationResult.error(
                item.row_number,
                ValidationCategory.DUPLICATE_IDENTITY_KEY,
                "; ".join(_unique(clashes[item.row_number])),
            ))
        else:
            results.append(ValidationResult.valid(item))
        yield 1

    logger.debug(
        f"Validated {len(results)} rows: "
        f"{sum(r.status is ValidationStatus.VALID for r in results)} valid, "
        f"{sum(r.status is ValidationStatus.SKIPPED for r in results)} skipped, "
        f"{sum(r.status is ValidationStatus.ERROR for r in results)} error"
    )


def finalize_rows(staged: Sequence[Any], existing_keys: Collection[IdentityKey]) -> List[ValidationResult]:
    """Run the duplicate check over parsed rows and build the final results."""
    results: List[ValidationResult] = []
    for _ in _finalize_steps(staged, existing_keys, results):
        pass
    return results


async def finalize_rows_async(staged: Sequence[Any], existing_keys: Collection[IdentityKey],
                              yield_every: int = 500) -> List[ValidationResult]:
    """Same as :func:`finalize_rows`, yielding every ``yield_every`` identity keys or rows."""
    results: List[ValidationResult] = []
    await drain_cooperatively(_finalize_steps(staged, existing_keys, results), yield_every)
    return results


def _unique(messages: List[str]) -> List[str]:
    seen = set()
    ordered = []
    for message in messages:
        if message not in seen:
            seen.add(message)
            ordered.append(message)
    return ordered


def revalidate_rows(rows: Sequence[ParsedRow],
                    existing_keys: Collection[IdentityKey] = frozenset()) -> List[Dict[str, Any]]:
    """Executor-side revalidation of payload rows.

    Every row in a payload should already be valid, so anything that is not
    valid here (including rows the preview would only skip) is reported as a
    blocking detail.

    Returns:
        Error details ``{"row", "issue", "context"}``; empty when all rows pass.
    """
    details: List[Dict[str, Any]] = []
    candidates: List[Tuple[int, List[IdentityKey]]] = []

    for row in rows:
        result, _, _ = check_row(
            row.row_number, row.drawing, row.component_type, row.quantity, row.commodity_code
        )
        if result is not None:
            details.append({"row": row.row_number, "issue": result.reason, "context": row.drawing})
        else:
            candidates.append((row.row_number, compute_identity_keys(row)))

    drawings = {row.row_number: row.drawing for row in rows}
    for row_number, messages in sorted(find_duplicates(candidates, existing_keys).items()):
        for message in _unique(messages):
            details.append({"row": row_number, "issue": message, "context": drawings.get(row_number, "")})

    return details


def _collect_steps(rows: Iterable[ParsedRow], keys: List[IdentityKey]) -> Iterator[int]:
    for row in rows:
        row_keys = [] if canonical_component_type(row.component_type) is None else compute_identity_keys(row)
        keys.extend(row_keys)
        yield max(len(row_keys), 1)


def collect_identity_keys(rows: Iterable[ParsedRow]) -> List[IdentityKey]:
    """All keys produced by ``rows`` (for a batched store lookup)."""
    keys: List[IdentityKey] = []
    for _ in _collect_steps(rows, keys):
        pass
    return keys


async def collect_identity_keys_async(rows: Iterable[ParsedRow], yield_every: int = 500) -> List[IdentityKey]:
    """Same as :func:`collect_identity_keys`, yielding every ``yield_every`` keys."""
    keys: List[IdentityKey] = []
    await drain_cooperatively(_collect_steps(rows, keys), yield_every)
    return keys
