"""Takeoff schema definitions for canonical fields, synonyms and component types."""

from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Tuple

# Required canonical fields, in display order
REQUIRED_FIELDS: Tuple[str, ...] = (
    "DRAWING",
    "TYPE",
    "QTY",
    "CMDTY CODE",
)

# Optional grouping attributes that become dimension records on import
DIMENSION_FIELDS: Tuple[str, ...] = (
    "AREA",
    "SYSTEM",
    "TEST_PACKAGE",
)

# All canonical fields in order
EXPECTED_FIELDS: Tuple[str, ...] = REQUIRED_FIELDS + (
    "SIZE",
    "SPEC",
    "DESCRIPTION",
    "COMMENTS",
) + DIMENSION_FIELDS

# Tier 3 synonyms, keyed by canonical field. Loaded once, never mutated.
COLUMN_SYNONYMS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "DRAWING": ("DRAWINGS", "DRAWING NUMBER", "DWG", "DWG NO", "DWG NUM"),
    "TYPE": ("COMPONENT TYPE", "COMP TYPE"),
    "QTY": ("QUANTITY", "COUNT", "CNT"),
    "CMDTY CODE": ("COMMODITY CODE", "CMDTY", "COMMODITY", "CODE", "PART CODE"),
    "SIZE": ("NOM SIZE", "NOMINAL SIZE", "NOMSIZE"),
    "SPEC": ("SPECIFICATION", "MATERIAL SPEC", "MAT SPEC"),
    "DESCRIPTION": ("DESC", "ITEM DESCRIPTION"),
    "COMMENTS": ("COMMENT", "NOTES", "NOTE", "REMARKS"),
    "AREA": ("AREAS", "LOCATION", "ZONE"),
    "SYSTEM": ("SYSTEMS", "SYS"),
    "TEST_PACKAGE": ("TEST PACKAGE", "TEST PKG", "PKG", "PACKAGE"),
})

# Supported component types (closed set)
COMPONENT_TYPES: Tuple[str, ...] = (
    "Spool",
    "Field_Weld",
    "Valve",
    "Instrument",
    "Support",
    "Pipe",
    "Fitting",
    "Flange",
    "Tubing",
    "Hose",
    "Misc_Component",
    "Threaded_Pipe",
)

# Dimension field -> dimension type name used in payloads, results and storage
DIMENSION_TYPES: Mapping[str, str] = MappingProxyType({
    "AREA": "area",
    "SYSTEM": "system",
    "TEST_PACKAGE": "test_package",
})

# Dimension type -> storage table
DIMENSION_TABLES: Mapping[str, str] = MappingProxyType({
    "area": "areas",
    "system": "systems",
    "test_package": "test_packages",
})

# Canonical field descriptions for reports and the preview
CANONICAL_FIELDS: List[Dict[str, Any]] = [
    {
        "id": "DRAWING",
        "label": "Drawing",
        "required": True,
        "description": "Drawing or sheet reference the component is attached to. "
                       "Sheet suffixes (e.g. '01of02') make distinct drawings."
    },
    {
        "id": "TYPE",
        "label": "Component Type",
        "required": True,
        "description": "Component classification. Must be one of the supported types."
    },
    {
        "id": "QTY",
        "label": "Quantity",
        "required": True,
        "description": "Number of physical components. Quantities above one are "
                       "expanded into sequenced records."
    },
    {
        "id": "CMDTY CODE",
        "label": "Commodity Code",
        "required": True,
        "description": "Commodity/classification code. Part of the identity key; "
                       "used as the spool ID or weld number for those types."
    },
    {
        "id": "SIZE",
        "label": "Size",
        "required": False,
        "description": "Nominal size. Fractional and decimal inch notation normalize "
                       "to the same value."
    },
    {
        "id": "SPEC",
        "label": "Spec",
        "required": False,
        "description": "Material specification code."
    },
    {
        "id": "DESCRIPTION",
        "label": "Description",
        "required": False,
        "description": "Free-text component description."
    },
    {
        "id": "COMMENTS",
        "label": "Comments",
        "required": False,
        "description": "Free-text notes."
    },
    {
        "id": "AREA",
        "label": "Area",
        "required": False,
        "description": "Physical area. Created on import if missing."
    },
    {
        "id": "SYSTEM",
        "label": "System",
        "required": False,
        "description": "System. Created on import if missing."
    },
    {
        "id": "TEST_PACKAGE",
        "label": "Test Package",
        "required": False,
        "description": "Test package. Created on import if missing."
    },
]

FIELD_SCHEMAS: Mapping[str, Dict[str, Any]] = MappingProxyType({
    field["id"]: field for field in CANONICAL_FIELDS
})

__all__ = [
    "REQUIRED_FIELDS",
    "DIMENSION_FIELDS",
    "EXPECTED_FIELDS",
    "COLUMN_SYNONYMS",
    "COMPONENT_TYPES",
    "DIMENSION_TYPES",
    "DIMENSION_TABLES",
    "CANONICAL_FIELDS",
    "FIELD_SCHEMAS",
]
