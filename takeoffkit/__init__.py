from .parser import TakeoffParser
from .adapters import CsvAdapter, ExcelAdapter
from .column_mapper import ColumnMapper, ColumnMappingResult
from .config import ImportSettings
from .errors import (
    TakeoffImportError,
    StructuralError,
    MappingError,
    BlockingRowsError,
    PayloadTooLargeError,
    PayloadValidationError,
)
from .identity import IdentityKey, compute_identity_keys
from .models import ImportPayload, ImportResult, ParsedRow, RawTable, ValidationResult
from .normalizer import normalize_drawing, normalize_label
from .preview import ImportPreview, build_import_payload, build_preview, build_preview_async
from .unit_normalizer import UnitNormalizer, normalize_size
from .validator import RowValidator
from .schema import REQUIRED_FIELDS, EXPECTED_FIELDS, COLUMN_SYNONYMS, COMPONENT_TYPES

__all__ = [
    "TakeoffParser", "CsvAdapter", "ExcelAdapter",
    "ColumnMapper", "ColumnMappingResult", "ImportSettings",
    "TakeoffImportError", "StructuralError", "MappingError", "BlockingRowsError",
    "PayloadTooLargeError", "PayloadValidationError",
    "IdentityKey", "compute_identity_keys",
    "ImportPayload", "ImportResult", "ParsedRow", "RawTable", "ValidationResult",
    "normalize_drawing", "normalize_label", "normalize_size", "UnitNormalizer",
    "ImportPreview", "build_preview", "build_preview_async", "build_import_payload",
    "RowValidator",
    "REQUIRED_FIELDS", "EXPECTED_FIELDS", "COLUMN_SYNONYMS", "COMPONENT_TYPES",
]
