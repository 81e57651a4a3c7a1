"""Tests for drawing, label and size normalization."""

import random

import pytest

from takeoffkit.normalizer import fold_label, normalize_drawing, normalize_label, to_text
from takeoffkit.unit_normalizer import NO_SIZE, UnitNormalizer, normalize_size


DRAWING_SAMPLES = [
    "  p-001 ",
    "P-001",
    "P-1",
    "P--001__A",
    "P-91010_1   01of02",
    "P-91010 1 of 2",
    "P-91010 2 of 2",
    "PW-55401 Sheet 1 of 2",
    "pw-55401 sh. 02 of 03",
    "ISO 0042-00A",
    "P-0",
    "",
    None,
]

SIZE_SAMPLES = [
    "1/2\"", "0.5", ".50 IN", "1-1/2", "1 1/2 INCH", "2 x 1", "2X1-1/2",
    "5 cm", "50MM", "", None, 2, 2.0, "HEX", "NOSIZE", "3/0", "1/3",
    "\"", "'", "9 .", ".2 1", "2\"x1 .", "1" * 40, "1" * 40 + " cm",
]

SIZE_ALPHABET = "0123456789./- \"'xXcmMINby\t"


def make_random_sizes(count=5000, seed=20240611):
    """Random size-like strings from a fixed seed."""
    rng = random.Random(seed)
    return [
        "".join(rng.choice(SIZE_ALPHABET) for _ in range(rng.randint(1, 8)))
        for _ in range(count)
    ]


# =============================================================================
# TEXT HELPERS
# =============================================================================

class TestLabels:
    """Whitespace and case handling for free-text labels."""

    def test_to_text_renders_integral_floats_without_decimal(self):
        assert to_text(2.0) == "2"
        assert to_text(2.5) == "2.5"
        assert to_text(None) == ""

    def test_normalize_label_collapses_whitespace_and_keeps_case(self):
        assert normalize_label("  Area\t B-68  ") == "Area B-68"

    def test_fold_label_upper_cases(self):
        assert fold_label(" cmdty   code ") == "CMDTY CODE"


# =============================================================================
# DRAWING NORMALIZATION
# =============================================================================

class TestDrawingNormalization:
    """Canonical drawing references."""

    def test_upper_cases_and_trims(self):
        assert normalize_drawing("  p-1a ") == "P-1A"

    def test_strips_leading_zeros_from_numeric_segments(self):
        assert normalize_drawing("P-001") == "P-1"
        assert normalize_drawing("ISO 0042-00A") == "ISO 42-0A"

    def test_keeps_a_lone_zero(self):
        assert normalize_drawing("P-0") == "P-0"

    def test_keeps_inner_and_trailing_zeros(self):
        assert normalize_drawing("P-100") == "P-100"
        assert normalize_drawing("P-91010") == "P-91010"

    def test_collapses_repeated_separators(self):
        assert normalize_drawing("P--001__A") == "P-1_A"

    def test_collapses_internal_whitespace(self):
        assert normalize_drawing("P-91010_1   01of02") == "P-91010_1 01OF02"

    def test_sheet_suffix_is_preserved(self):
        assert normalize_drawing("PW-55401 Sheet 1 of 2") == "PW-55401 SHEET 1 OF 2"
        assert normalize_drawing("pw-55401 sh. 02 of 03") == "PW-55401 SH. 02 OF 03"

    def test_sheet_suffixes_stay_distinct(self):
        first = normalize_drawing("P-91010 1 of 2")
        second = normalize_drawing("P-91010 2 of 2")
        assert first != second
        assert first != normalize_drawing("P-91010")

    def test_equivalent_spellings_match(self):
        assert normalize_drawing("p-001") == normalize_drawing("P-1") == normalize_drawing(" P-01 ")

    def test_empty_values_normalize_to_empty(self):
        assert normalize_drawing("") == ""
        assert normalize_drawing("   ") == ""
        assert normalize_drawing(None) == ""

    @pytest.mark.parametrize("value", DRAWING_SAMPLES)
    def test_idempotent(self, value):
        once = normalize_drawing(value)
        assert normalize_drawing(once) == once


# =============================================================================
# SIZE NORMALIZATION
# =============================================================================

class TestSizeNormalization:
    """Unit-aware size canonicalization."""

    def test_fraction_and_decimal_inches_collapse(self):
        assert normalize_size("1/2\"") == "0.5"
        assert normalize_size("0.5") == "0.5"
        assert normalize_size(".50 IN") == "0.5"

    def test_mixed_fractions(self):
        assert normalize_size("1-1/2") == "1.5"
        assert normalize_size("1 1/2 INCH") == "1.5"

    def test_whole_numbers_have_no_decimal_point(self):
        assert normalize_size("2\"") == "2"
        assert normalize_size(2) == "2"
        assert normalize_size(2.0) == "2"
        assert normalize_size("2.000") == "2"

    def test_reducer_sizes_normalize_each_side(self):
        assert normalize_size("2 x 1") == "2X1"
        assert normalize_size("2\" X 1-1/2\"") == "2X1.5"
        assert normalize_size("2 by 1") == "2X1"

    def test_metric_sizes_convert_to_millimetres(self):
        assert normalize_size("5 cm") == "50MM"
        assert normalize_size("50mm") == "50MM"

    def test_empty_size_is_nosize(self):
        assert normalize_size("") == NO_SIZE
        assert normalize_size(None) == NO_SIZE
        assert normalize_size("   ") == NO_SIZE

    def test_unparseable_sizes_are_kept_upper_cased(self):
        assert normalize_size("hex") == "HEX"
        assert normalize_size("Sch 40") == "SCH40"

    def test_zero_denominator_is_not_a_number(self):
        assert normalize_size("3/0") == "3/0"

    def test_repeating_decimals_are_rounded(self):
        assert normalize_size("1/3") == "0.3333"

    def test_instance_and_module_function_agree(self):
        assert UnitNormalizer().normalize_size("3/4\"") == normalize_size("3/4\"") == "0.75"

    @pytest.mark.parametrize("value", SIZE_SAMPLES)
    def test_idempotent(self, value):
        once = normalize_size(value)
        assert normalize_size(once) == once

    def test_quote_only_size_is_nosize(self):
        assert normalize_size('"') == NO_SIZE
        assert normalize_size("'") == NO_SIZE
        assert normalize_size(' " ') == NO_SIZE

    def test_number_exposed_by_removing_spaces_is_parsed(self):
        assert normalize_size("9 .") == "9"
        assert normalize_size(".2 1") == "0.21"
        assert normalize_size('2"x1 .') == "2X1"

    def test_too_many_digits_are_kept_as_text(self):
        assert normalize_size("1" * 40) == "1" * 40
        assert normalize_size("1" * 40 + " cm") == "1" * 40 + "CM"

    def test_idempotent_on_random_sizes(self):
        unstable = []
        for value in make_random_sizes():
            once = normalize_size(value)
            if normalize_size(once) != once or not once:
                unstable.append((value, once, normalize_size(once)))
        assert unstable == []
