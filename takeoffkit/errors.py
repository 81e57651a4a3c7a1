"""Exception types raised before the import executor runs.

The executor itself never raises for an import failure; it returns an
``ImportResult`` with ``success=False``.
"""

from typing import Any, Dict, List, Optional


class TakeoffImportError(ValueError):
    """Base class for every import rejection."""


class StructuralError(TakeoffImportError):
    """The file cannot be read as a table (size, encoding, shape)."""

    def __init__(self, message: str, row_number: Optional[int] = None):
        super().__init__(message)
        self.row_number = row_number


class MappingError(TakeoffImportError):
    """Headers cannot be mapped: a required field is missing or a field is ambiguous."""

    def __init__(self, message: str, mapping_result=None):
        super().__init__(message)
        self.mapping_result = mapping_result


class BlockingRowsError(TakeoffImportError):
    """A payload was requested while blocking (error) rows remain."""

    def __init__(self, message: str, error_rows: Optional[List[Any]] = None):
        super().__init__(message)
        self.error_rows = error_rows or []


class PayloadTooLargeError(TakeoffImportError):
    """Serialized payload is over the transport ceiling."""

    def __init__(self, size_in_bytes: int, max_bytes: int):
        super().__init__(
            f"Payload too large: {size_in_bytes / (1024 * 1024):.2f}MB "
            f"(max {max_bytes / (1024 * 1024):.2f}MB)"
        )
        self.size_in_bytes = size_in_bytes
        self.max_bytes = max_bytes


class PayloadValidationError(TakeoffImportError):
    """Payload failed structural validation on receipt."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.details = details or []
