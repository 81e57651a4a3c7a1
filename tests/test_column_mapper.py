"""
Unit tests for the three-tier column mapper.

These tests verify that:
1. Exact matches always score 100, case-insensitive 95, synonyms 85
2. Unmatched headers are kept as unmapped, not rejected
3. Missing required fields and ambiguous headers are distinct blocking errors
"""

import pytest

from takeoffkit.column_mapper import ColumnMapper
from takeoffkit.errors import MappingError
from takeoffkit.models import MatchTier
from takeoffkit.schema import COLUMN_SYNONYMS, EXPECTED_FIELDS, REQUIRED_FIELDS


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def mapper():
    return ColumnMapper()


# =============================================================================
# TIER TESTS
# =============================================================================

class TestMatchTiers:
    """Confidence per match tier."""

    @pytest.mark.parametrize("header", EXPECTED_FIELDS)
    def test_exact_canonical_name_is_100(self, mapper, header):
        mapping = mapper.match_header(header)
        assert mapping.canonical_field == header
        assert mapping.match_tier is MatchTier.EXACT
        assert mapping.confidence == 100

    def test_exact_wins_even_when_listed_as_another_fields_synonym(self):
        synonyms = dict(COLUMN_SYNONYMS)
        synonyms["TYPE"] = ("DRAWING",)
        mapping = ColumnMapper(synonyms=synonyms).match_header("DRAWING")
        assert mapping.canonical_field == "DRAWING"
        assert mapping.confidence == 100

    @pytest.mark.parametrize("header,expected", [
        ("drawing", "DRAWING"),
        ("Cmdty Code", "CMDTY CODE"),
        (" qty ", "QTY"),
        ("test_package", "TEST_PACKAGE"),
        ("CMDTY   CODE", "CMDTY CODE"),
    ])
    def test_case_insensitive_is_95(self, mapper, header, expected):
        mapping = mapper.match_header(header)
        assert mapping.canonical_field == expected
        assert mapping.match_tier is MatchTier.CASE_INSENSITIVE
        assert mapping.confidence == 95

    @pytest.mark.parametrize("header,expected", [
        ("DRAWINGS", "DRAWING"),
        ("Dwg No", "DRAWING"),
        ("Quantity", "QTY"),
        ("commodity code", "CMDTY CODE"),
        ("Test Pkg", "TEST_PACKAGE"),
        ("Nominal Size", "SIZE"),
        ("Remarks", "COMMENTS"),
    ])
    def test_synonym_is_85(self, mapper, header, expected):
        mapping = mapper.match_header(header)
        assert mapping.canonical_field == expected
        assert mapping.match_tier is MatchTier.SYNONYM
        assert mapping.confidence == 85

    @pytest.mark.parametrize("header", ["Line No", "Weight (kg)", "", "   ", None])
    def test_unknown_header_is_unmatched(self, mapper, header):
        assert mapper.match_header(header) is None

    def test_synonym_table_is_immutable(self):
        with pytest.raises(TypeError):
            COLUMN_SYNONYMS["DRAWING"] = ("SHEET",)


# =============================================================================
# HEADER ROW MAPPING TESTS
# =============================================================================

class TestMapColumns:
    """Mapping a full header row."""

    def test_scenario_drawings_synonym(self, mapper):
        result = mapper.map_columns(["DRAWINGS", "TYPE", "QTY", "CMDTY CODE"])

        drawing = result.mapping_for("DRAWING")
        assert drawing.raw_header == "DRAWINGS"
        assert drawing.confidence == 85
        assert [m.confidence for m in result.mappings] == [85, 100, 100, 100]
        assert result.has_all_required_fields
        assert not result.is_blocking

    def test_column_indexes_follow_header_order(self, mapper):
        result = mapper.map_columns(["QTY", "Line No", "CMDTY CODE", "TYPE", "DRAWING"])

        assert result.index_for("QTY") == 0
        assert result.index_for("CMDTY CODE") == 2
        assert result.index_for("DRAWING") == 4
        assert result.index_for("SIZE") is None

    def test_unmapped_headers_are_kept(self, mapper):
        result = mapper.map_columns(["DRAWING", "Line No", "TYPE", "QTY", "CMDTY CODE", "Weight"])

        assert result.unmapped_headers == ["Line No", "Weight"]
        assert result.unmapped_indexes == [1, 5]
        assert not result.is_blocking

    def test_missing_required_field(self, mapper):
        result = mapper.map_columns(["DRAWING", "TYPE", "QTY", "SIZE"])

        assert result.missing_required_fields == ["CMDTY CODE"]
        assert not result.conflicts
        assert result.is_blocking
        with pytest.raises(MappingError, match="Missing required columns: CMDTY CODE"):
            result.require_importable()

    def test_all_required_fields_missing(self, mapper):
        result = mapper.map_columns(["Foo", "Bar"])
        assert result.missing_required_fields == list(REQUIRED_FIELDS)

    def test_two_headers_for_one_field_is_ambiguous(self, mapper):
        result = mapper.map_columns(["DRAWING", "DWG", "TYPE", "QTY", "CMDTY CODE"])

        assert len(result.conflicts) == 1
        assert result.conflicts[0].canonical_field == "DRAWING"
        assert result.conflicts[0].raw_headers == ["DRAWING", "DWG"]
        assert result.index_for("DRAWING") is None
        # A conflicting field is not also reported as missing
        assert result.missing_required_fields == []
        assert result.is_ambiguous
        with pytest.raises(MappingError, match="Ambiguous column mapping"):
            result.require_importable()

    def test_ambiguity_on_optional_field_still_blocks(self, mapper):
        result = mapper.map_columns(["DRAWING", "TYPE", "QTY", "CMDTY CODE", "Notes", "Remarks"])

        assert result.conflicts[0].canonical_field == "COMMENTS"
        assert result.is_blocking

    def test_mapping_error_carries_result(self, mapper):
        result = mapper.map_columns(["DRAWING"])
        with pytest.raises(MappingError) as exc_info:
            result.require_importable()
        assert exc_info.value.mapping_result is result

    def test_mapping_report(self, mapper):
        report = mapper.get_mapping_report(["DWG", "TYPE", "QTY", "CMDTY CODE", "Line No"])

        assert report["hasAllRequiredFields"] is True
        assert report["unmappedHeaders"] == ["Line No"]
        assert report["mappings"][0] == {
            "rawHeader": "DWG",
            "canonicalField": "DRAWING",
            "confidence": 85,
            "matchTier": "synonym",
        }
        assert [f["id"] for f in report["expectedFields"]] == list(EXPECTED_FIELDS)
