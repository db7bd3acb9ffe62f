"""Tests for ICD-9 code parsing, validation, conversion and ordering."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from icdkit.codes.parse import (
    check_codes,
    compare,
    get_invalid,
    is_major,
    is_valid,
    kind_of,
    parse,
    sort_codes,
    to_decimal,
    to_short,
)
from icdkit.errors import Icd9Error, InvalidCodeError, MalformedCodeError
from icdkit.models import CodeError, CodeKind


# ── Parsing ──────────────────────────────────────────────────────────────────

def test_parse_short_and_decimal_agree():
    """Short and decimal spellings parse to the same code."""
    assert parse("4280") == parse("428.0")
    assert parse("V1046") == parse("V10.46")
    assert parse("E8490") == parse("E849.0")


def test_parse_fields():
    code = parse("428.01")
    assert code.kind is CodeKind.NUMERIC
    assert code.major == "428"
    assert code.minor == "01"
    assert code.short == "42801"
    assert code.decimal == "428.01"
    assert code.depth == 2


def test_lowercase_prefix_and_whitespace():
    """Prefixes are case-insensitive and surrounding whitespace is ignored."""
    code = parse("  v10.46 ")
    assert code.short == "V1046"
    assert code.raw == "  v10.46 "


def test_three_character_short_code_is_major():
    """'020' is major 020, never 002.0."""
    code = parse("020")
    assert code.is_major
    assert code.minor is None
    assert to_decimal("020") == "020"


def test_majors_are_zero_padded():
    assert parse("20").major == "020"
    assert parse("1.2").decimal == "001.2"
    assert parse("V1").major == "V01"
    assert parse("E1").major == "E001"


def test_e_code_minor():
    assert parse("E8490").decimal == "E849.0"
    assert parse("E849").is_major
    assert kind_of("E849") is CodeKind.E


@pytest.mark.parametrize("raw", ["", "   ", "ABC", "42A0", "428.0.1", "428.123", "4280123", "V", "V1.2.3"])
def test_malformed_codes(raw):
    with pytest.raises(MalformedCodeError):
        parse(raw)


@pytest.mark.parametrize("raw", ["V00", "V92", "V99", "E849.01", "E84901"])
def test_invalid_codes(raw):
    with pytest.raises(InvalidCodeError):
        parse(raw)


def test_errors_are_value_errors():
    """Callers can catch the whole family as ValueError."""
    with pytest.raises(ValueError):
        parse("nope")
    assert issubclass(MalformedCodeError, Icd9Error)
    assert issubclass(InvalidCodeError, ValueError)


def test_non_string_is_malformed():
    with pytest.raises(MalformedCodeError):
        parse(428)


def test_form_hints():
    """A point in a code hinted short is malformed; an over-long major hinted decimal is too."""
    assert not is_valid("428.0", "short")
    assert not is_valid("4280", "decimal")
    assert is_valid("428", "decimal")
    with pytest.raises(ValueError):
        parse("428", form="sideways")


def test_is_valid_never_raises():
    assert is_valid("V10.46")
    assert not is_valid(None)
    assert not is_valid(428)
    assert not is_valid("V99")


# ── Conversion ───────────────────────────────────────────────────────────────

@pytest.mark.parametrize("short", ["0010", "4280", "42801", "V1046", "V01", "E8490", "E849", "001"])
def test_short_decimal_round_trip(short):
    assert to_short(to_decimal(short)) == short


def test_conversion_helpers():
    assert to_short("428.0") == "4280"
    assert to_decimal("V1046") == "V10.46"
    assert is_major("V10")
    assert not is_major("V10.4")


def test_str_is_decimal():
    assert str(parse("42801")) == "428.01"


def test_equality_ignores_raw():
    a, b = parse("428.0"), parse("4280")
    assert a.raw != b.raw
    assert a == b
    assert len({a, b}) == 1


# ── Ordering ─────────────────────────────────────────────────────────────────

def test_compare():
    assert compare("428", "428.0") == -1
    assert compare("4280", "428.0") == 0
    assert compare("428.1", "428.09") == 1
    assert compare("428.0", "428.00") == -1


def test_kind_order():
    """Numeric codes sort before V codes, V codes before E codes."""
    assert compare("999", "V01") == -1
    assert compare("V91", "E000") == -1
    assert compare("E000", "001") == 1


def test_sort_codes_keeps_type_and_duplicates():
    codes = ["E8490", "V10", "4281", "428", "42800", "4280", "428"]
    assert sort_codes(codes) == ["428", "428", "4280", "42800", "4281", "V10", "E8490"]
    parsed = [parse(c) for c in ["V10", "428"]]
    assert sort_codes(parsed) == [parse("428"), parse("V10")]


# ── Batch validation ─────────────────────────────────────────────────────────

def test_check_codes_reports_each_item():
    """One bad item never stops the batch."""
    results = check_codes(["4280", "bad", "V99", "4281"], defined={"4280"})
    assert [r.error for r in results] == [None, CodeError.MALFORMED, CodeError.INVALID, CodeError.UNDEFINED]
    assert results[0].ok
    assert results[3].code == parse("4281")
    assert results[1].code is None


def test_check_codes_without_reference():
    results = check_codes(["4281", "V10.4"])
    assert all(r.ok for r in results)


def test_check_codes_non_string():
    results = check_codes([None])
    assert results[0].error is CodeError.MALFORMED
    assert results[0].raw == "None"


def test_get_invalid():
    assert get_invalid(["4280", "x", "V00", "E849"]) == ["x", "V00"]
