"""Tests for payload serialization and result invariants."""

from uuid import uuid4

import pytest

from takeoffkit.errors import PayloadValidationError
from takeoffkit.models import (
    FieldMapping,
    ImportPayload,
    ImportResult,
    MatchTier,
    ParsedRow,
    ValidationCategory,
    ValidationResult,
    ValidationStatus,
)


def make_row(row_number=1, **kwargs) -> ParsedRow:
    defaults = dict(drawing="P-001", component_type="Valve", quantity=2, commodity_code="V-100", size="2")
    defaults.update(kwargs)
    return ParsedRow(row_number=row_number, **defaults)


# =============================================================================
# PAYLOAD TESTS
# =============================================================================

class TestImportPayload:
    """Wire form of the payload sent to the executor."""

    def test_from_dict_restores_to_dict(self):
        payload = ImportPayload(
            project_id=uuid4(),
            rows=[make_row(1, area="B-68", unmapped={"Line No": "L-7"}), make_row(2, commodity_code="V-200")],
            field_mappings=[FieldMapping("DWG", "DRAWING", MatchTier.SYNONYM, 0).to_dict()],
            dimensions_to_create={"area": ["B-68"]},
        )
        assert ImportPayload.from_dict(payload.to_dict()) == payload

    def test_wire_field_names(self):
        data = ImportPayload(project_id=uuid4(), rows=[make_row(test_package="TP-1")]).to_dict()
        row = data["rows"][0]

        assert set(data) == {"projectId", "rows", "fieldMappings", "dimensionsToCreate"}
        assert row["cmdtyCode"] == "V-100"
        assert row["testPackage"] == "TP-1"
        assert row["qty"] == 2

    def test_size_in_bytes_counts_utf8(self):
        ascii_payload = ImportPayload(project_id=uuid4(), rows=[make_row(description="Gate")])
        accented = ImportPayload(project_id=ascii_payload.project_id, rows=[make_row(description="Gaté")])

        assert accented.size_in_bytes() == ascii_payload.size_in_bytes() + 1

    def test_invalid_project_id(self):
        with pytest.raises(PayloadValidationError) as exc_info:
            ImportPayload.from_dict({"projectId": "not-a-uuid", "rows": []})
        assert exc_info.value.details == [{"row": 0, "issue": "Missing or invalid projectId"}]

    def test_not_an_object(self):
        with pytest.raises(PayloadValidationError) as exc_info:
            ImportPayload.from_dict(["rows"])
        assert exc_info.value.details[0]["issue"] == "Payload must be a JSON object"

    def test_collects_every_row_problem(self):
        data = {
            "projectId": str(uuid4()),
            "rows": [
                {"rowNumber": 3, "drawing": "P-1", "type": "Valve", "qty": 1.5, "cmdtyCode": "V"},
                {"rowNumber": 0, "drawing": "P-1", "type": "Valve", "qty": True, "cmdtyCode": 7},
            ],
            "dimensionsToCreate": {"unit": ["U-1"]},
        }
        with pytest.raises(PayloadValidationError) as exc_info:
            ImportPayload.from_dict(data)

        issues = [(d["row"], d["issue"]) for d in exc_info.value.details]
        assert (0, "Unknown dimension type: unit") in issues
        assert (3, "Invalid qty data type: expected integer, got float") in issues
        assert (2, "rowNumber must be a positive integer") in issues
        assert (2, "Invalid qty data type: expected integer, got bool") in issues
        assert (2, "cmdtyCode must be a string") in issues

    def test_labels_are_cleaned_on_receipt(self):
        data = ImportPayload(project_id=uuid4(), rows=[make_row()]).to_dict()
        data["rows"][0]["drawing"] = "  P-001 \n"

        assert ImportPayload.from_dict(data).rows[0].drawing == "P-001"


# =============================================================================
# RESULT TESTS
# =============================================================================

class TestValidationResult:
    """Exactly one of valid / skipped / error with consistent fields."""

    def test_valid_carries_row(self):
        result = ValidationResult.valid(make_row(4))

        assert result.row_number == 4
        assert result.status is ValidationStatus.VALID
        assert not result.is_blocking
        assert result.to_dict() == {"rowNumber": 4, "status": "valid"}

    def test_error_is_blocking(self):
        result = ValidationResult.error(2, ValidationCategory.MISSING_REQUIRED_FIELD, "Required field DRAWING is empty")

        assert result.is_blocking
        assert result.to_dict()["category"] == "missing_required_field"

    def test_valid_without_row_is_rejected(self):
        with pytest.raises(ValueError):
            ValidationResult(row_number=1, status=ValidationStatus.VALID)

    def test_skipped_without_reason_is_rejected(self):
        with pytest.raises(ValueError):
            ValidationResult(row_number=1, status=ValidationStatus.SKIPPED,
                             category=ValidationCategory.UNSUPPORTED_TYPE)

    def test_error_with_row_data_is_rejected(self):
        with pytest.raises(ValueError):
            ValidationResult(row_number=1, status=ValidationStatus.ERROR, reason="x",
                             category=ValidationCategory.DUPLICATE_IDENTITY_KEY, data=make_row())


class TestImportResult:

    def test_failure_has_zero_counts(self):
        result = ImportResult.failure("Import failed: boom")

        assert not result.success
        assert result.records_created == 0
        assert result.dimensions_created == {"area": 0, "system": 0, "test_package": 0}
        assert result.details == [{"row": 0, "issue": "Import failed: boom"}]

    def test_success_to_dict_omits_error(self):
        data = ImportResult(success=True, records_created=3).to_dict()
        assert "error" not in data and "details" not in data


class TestMatchTier:

    @pytest.mark.parametrize("tier,confidence", [
        (MatchTier.EXACT, 100),
        (MatchTier.CASE_INSENSITIVE, 95),
        (MatchTier.SYNONYM, 85),
    ])
    def test_confidence(self, tier, confidence):
        assert tier.confidence == confidence
