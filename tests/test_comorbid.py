"""Tests for present-on-arrival handling and comorbidity mapping."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pytest
from pydantic import ValidationError

from icdkit.codes.parse import parse
from icdkit.comorbid.mapper import (
    ComorbidityMap,
    diff_comorbidity,
    load_records,
    map_comorbidities,
    parse_pattern,
)
from icdkit.comorbid.poa import parse_poa, poa_passes
from icdkit.errors import MalformedCodeError, RangeOrderError
from icdkit.models import CodeError, PoaFilter, PoaFlag, VisitCodeRecord


CHF_MAP = {"CHF": ["428"]}

CHF_RECORDS = [
    (1, "4280", "Y"),
    (1, "4011", "N"),
    (2, "4280", "X"),
]


# ── Present on arrival ───────────────────────────────────────────────────────

@pytest.mark.parametrize("token, flag", [
    ("Y", PoaFlag.YES),
    ("y", PoaFlag.YES),
    (" n ", PoaFlag.NO),
    ("X", PoaFlag.NOT_APPLICABLE),
    ("E", PoaFlag.EXEMPT),
    ("W", PoaFlag.UNKNOWN),
    ("1", PoaFlag.EXEMPT),
    ("U", PoaFlag.UNKNOWN),
    (None, PoaFlag.MISSING),
    ("", PoaFlag.MISSING),
    (float("nan"), PoaFlag.MISSING),
    ("not_applicable", PoaFlag.NOT_APPLICABLE),
])
def test_parse_poa(token, flag):
    assert parse_poa(token) is flag


def test_parse_poa_unknown_token():
    with pytest.raises(ValueError):
        parse_poa("Q")


def test_poa_filters():
    """NOT_YES and NOT_NO both keep missing flags."""
    assert poa_passes(PoaFlag.YES, PoaFilter.YES)
    assert not poa_passes(PoaFlag.MISSING, PoaFilter.YES)
    assert poa_passes(PoaFlag.NO, PoaFilter.NO)
    assert poa_passes(PoaFlag.MISSING, PoaFilter.NOT_YES)
    assert not poa_passes(PoaFlag.YES, PoaFilter.NOT_YES)
    assert poa_passes(PoaFlag.MISSING, PoaFilter.NOT_NO)
    assert not poa_passes(PoaFlag.NO, PoaFilter.NOT_NO)
    assert poa_passes(PoaFlag.NO, None)


# ── Records ──────────────────────────────────────────────────────────────────

def test_visit_code_record_normalizes():
    record = VisitCodeRecord(visit_id="a", code="428.0", poa="y")
    assert record.code.short == "4280"
    assert record.poa is PoaFlag.YES
    assert VisitCodeRecord(visit_id=1, code="4280").poa is PoaFlag.MISSING


def test_visit_code_record_rejects_bad_code():
    with pytest.raises(ValidationError):
        VisitCodeRecord(visit_id=1, code="bad")


def test_load_records_rejects_bad_rows():
    """A bad code is reported, not fatal."""
    rows = [(1, "4280", "Y"), (1, "bad"), (2, "V99", "N"), {"visit_id": 3, "code": "V10.46"}]
    records, rejected = load_records(rows)
    assert [r.visit_id for r in records] == [1, 3]
    assert records[1].poa is PoaFlag.MISSING
    assert [r.error for r in rejected] == [CodeError.MALFORMED, CodeError.INVALID]


# ── Maps ─────────────────────────────────────────────────────────────────────

def test_parse_pattern():
    assert str(parse_pattern("390-459")) == "390-459"
    single = parse_pattern("428.0")
    assert single.start == single.end == parse("4280")


def test_map_rejects_malformed_pattern():
    with pytest.raises(MalformedCodeError):
        ComorbidityMap({"X": ["abc"]})
    with pytest.raises(MalformedCodeError):
        ComorbidityMap({"X": ["401-402-403"]})


def test_map_rejects_reversed_range():
    with pytest.raises(RangeOrderError):
        ComorbidityMap({"X": ["405-401"]})


def test_groups_for_single_code_covers_subtree():
    cmap = ComorbidityMap({"CHF": ["428", "402.01"], "HTN": ["401-405"]})
    assert cmap.groups_for(parse("42821")) == {"CHF"}
    assert cmap.groups_for(parse("40201")) == {"CHF", "HTN"}
    assert cmap.groups_for(parse("4011")) == {"HTN"}
    assert cmap.groups_for(parse("V10")) == frozenset()


def test_map_is_read_only():
    cmap = ComorbidityMap(CHF_MAP)
    assert list(cmap) == ["CHF"]
    with pytest.raises(TypeError):
        cmap["HTN"] = ()


# ── Mapping visits ───────────────────────────────────────────────────────────

def test_poa_yes_filter():
    result = map_comorbidities(CHF_RECORDS, CHF_MAP, poa_filter=PoaFilter.YES)
    assert result.as_sets() == {1: {"CHF"}}


def test_poa_not_no_filter():
    result = map_comorbidities(CHF_RECORDS, CHF_MAP, poa_filter="not_no")
    assert result.as_sets() == {1: {"CHF"}, 2: {"CHF"}}


def test_no_filter_keeps_everything():
    result = map_comorbidities(CHF_RECORDS, CHF_MAP)
    assert result.as_sets() == {1: {"CHF"}, 2: {"CHF"}}


def test_visit_without_matches_gets_false_row():
    result = map_comorbidities([(1, "4011"), (2, "4280")], CHF_MAP)
    assert result.visit_ids == [1, 2]
    assert result.matrix.shape == (2, 1)
    assert result.matrix.dtype == np.bool_
    assert not result.matrix[0, 0]
    assert result.as_sets() == {1: set(), 2: {"CHF"}}


def test_visit_order():
    """First occurrence by default, sorted on request."""
    records = [(3, "4280"), (1, "4011"), (2, "4280"), (3, "4011")]
    assert map_comorbidities(records, CHF_MAP).visit_ids == [3, 1, 2]
    assert map_comorbidities(records, CHF_MAP, sort_visits=True).visit_ids == [1, 2, 3]


def test_sort_mixed_visit_id_types():
    """Integer and string ids sort together without error."""
    records = [("b", "4280"), (2, "4280"), ("a", "4011"), (1, "4280")]
    result = map_comorbidities(records, CHF_MAP, sort_visits=True)
    assert result.visit_ids == [1, 2, "a", "b"]
    assert result.flagged("a") == set()


def test_bad_row_does_not_abort_mapping():
    """Rows with unreadable codes are skipped and reported on the result."""
    rows = [(1, "4280", "Y"), (2, "bad", "Y"), (3, "4280", "Y"), (4, "V99")]
    result = map_comorbidities(rows, CHF_MAP)
    assert result.as_sets() == {1: {"CHF"}, 3: {"CHF"}}
    assert [r.error for r in result.rejected] == [CodeError.MALFORMED, CodeError.INVALID]
    assert result.rejected[0].raw == "bad"


def test_clean_rows_have_no_rejections():
    assert map_comorbidities(CHF_RECORDS, CHF_MAP).rejected == []


def test_result_rows_and_flagged():
    cmap = {"CHF": ["428"], "HTN": ["401-405"]}
    result = map_comorbidities([("a", "40201"), ("b", "4280")], cmap)
    assert result.groups == ["CHF", "HTN"]
    assert result.as_rows() == [
        {"visit_id": "a", "CHF": False, "HTN": True},
        {"visit_id": "b", "CHF": True, "HTN": False},
    ]
    assert result.flagged("b") == {"CHF"}


def test_records_as_models():
    records = [VisitCodeRecord(visit_id=7, code="428.1", poa="N")]
    assert map_comorbidities(records, CHF_MAP, poa_filter=PoaFilter.NO).as_sets() == {7: {"CHF"}}


# ── Map comparison ───────────────────────────────────────────────────────────

def test_diff_shared_groups():
    a = {"CHF": ["428", "4280"], "HTN": ["401"]}
    b = {"CHF": ["428.0", "4281"], "Renal": ["585"]}
    diff = diff_comorbidity(a, b)
    assert list(diff) == ["CHF"]
    assert diff["CHF"].only_in_a == {"428"}
    assert diff["CHF"].only_in_b == {"4281"}
    assert diff["CHF"].in_both == {"4280"}


def test_diff_expands_ranges():
    diff = diff_comorbidity({"X": ["401-402"]}, {"X": ["401"]})["X"]
    assert diff.in_both == {"401"}
    assert len(diff.only_in_a) == 221
    assert diff.only_in_b == set()


def test_map_codes_only_real():
    """Single codes are kept only when defined; ranges keep their defined members."""
    defined = {"428", "4280", "4011"}
    cmap = ComorbidityMap({"X": ["428", "401-402", "4289"]})
    assert cmap.codes("X") >= {"428", "4289", "401", "4011"}
    assert cmap.codes("X", only_real=True, defined=defined) == {"428", "4011"}


def test_map_codes_only_real_needs_reference():
    with pytest.raises(ValueError):
        ComorbidityMap(CHF_MAP).codes("CHF", only_real=True)


def test_diff_only_real():
    defined = {"428", "4280", "4281", "4011"}
    diff = diff_comorbidity(
        {"CHF": ["428-428.1"]},
        {"CHF": ["428.0", "4289"]},
        only_real=True,
        defined=defined,
    )["CHF"]
    assert diff.in_both == {"4280"}
    assert diff.only_in_a == {"4281"}
    assert diff.only_in_b == set()


def test_diff_only_real_needs_reference():
    with pytest.raises(ValueError):
        diff_comorbidity(CHF_MAP, CHF_MAP, only_real=True)


def test_diff_missing_group():
    with pytest.raises(KeyError):
        diff_comorbidity({"CHF": ["428"]}, {"CHF": ["428"]}, names=["HTN"])
