"""
Comorbidity mapping.

A comorbidity map names clinical groups ("CHF", "Renal") and lists the ICD-9
patterns belonging to each: single codes ("428", "428.0") or ranges
("390-459"). A single code stands for its whole subtree, so "428" flags
428.0 and 428.21 as well. Given (visit, code, POA) records, the mapper ORs
every code's group hits per visit into a visit x group boolean matrix.

Maps come from third-party reference data; they are compiled once into an
immutable ComorbidityMap and never modified.
"""

import logging
from collections.abc import Mapping
from types import MappingProxyType

import numpy as np

from icdkit.codes.hierarchy import expand_range
from icdkit.codes.parse import check_codes, in_reference, parse
from icdkit.comorbid.poa import poa_passes
from icdkit.errors import MalformedCodeError
from icdkit.models import (
    CodeCheck,
    CodeRange,
    ComorbidityDiff,
    ComorbidityResult,
    IcdCode,
    PoaFilter,
    VisitCodeRecord,
)

logger = logging.getLogger(__name__)


def parse_pattern(pattern, form: str = "auto") -> CodeRange:
    """Read a map pattern ("428", "428.0", "390-459") as a CodeRange."""
    if isinstance(pattern, CodeRange):
        return pattern
    if isinstance(pattern, IcdCode):
        return CodeRange.build(pattern, pattern)
    if not isinstance(pattern, str):
        raise MalformedCodeError(f"Comorbidity pattern must be a string, got {pattern!r}", value=pattern)

    text = pattern.strip()
    if "-" in text:
        left, _, right = text.partition("-")
        if "-" in right:
            raise MalformedCodeError(f"More than one '-' in range pattern {pattern!r}", value=pattern)
        return CodeRange.build(parse(left, form), parse(right, form))

    code = parse(text, form)
    return CodeRange.build(code, code)


class ComorbidityMap(Mapping):
    """Immutable group name -> tuple of CodeRange patterns.

    Construction fails on the first malformed pattern. Group order follows
    the input mapping and fixes the column order of the result matrix.
    """

    def __init__(self, groups: Mapping, form: str = "auto"):
        compiled = {}
        for name, patterns in groups.items():
            if isinstance(patterns, (str, IcdCode, CodeRange)):
                patterns = [patterns]
            compiled[str(name)] = tuple(parse_pattern(p, form) for p in patterns)
        self._groups = MappingProxyType(compiled)
        self._memo: dict[IcdCode, frozenset[str]] = {}

    def __getitem__(self, name: str) -> tuple[CodeRange, ...]:
        return self._groups[name]

    def __iter__(self):
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)

    def __repr__(self) -> str:
        return f"ComorbidityMap({list(self._groups)})"

    def groups_for(self, code: IcdCode) -> frozenset[str]:
        """Names of every group with a pattern covering `code`."""
        hit = self._memo.get(code)
        if hit is None:
            hit = frozenset(
                name for name, patterns in self._groups.items()
                if any(p.contains(code) for p in patterns)
            )
            self._memo[code] = hit
        return hit

    def codes(self, name: str, only_real: bool = False, defined=None) -> set[str]:
        """Short codes listed for a group: single codes as given, ranges expanded."""
        if only_real and defined is None:
            raise ValueError("only_real=True needs a reference of defined codes (defined=...)")
        out = set()
        for pattern in self._groups[name]:
            if pattern.start == pattern.end:
                if not only_real or in_reference(pattern.start, defined):
                    out.add(pattern.start.short)
                continue
            out.update(c.short for c in expand_range(
                pattern.start, pattern.end, only_real=only_real, defined=defined,
            ))
        return out


def _as_map(cmap) -> ComorbidityMap:
    if isinstance(cmap, ComorbidityMap):
        return cmap
    return ComorbidityMap(cmap)


def _row_fields(row) -> tuple:
    if isinstance(row, Mapping):
        return row["visit_id"], row["code"], row.get("poa")
    if len(row) == 2:
        return row[0], row[1], None
    return row[0], row[1], row[2]


def _load_row(row, form: str) -> tuple[VisitCodeRecord | None, CodeCheck]:
    visit_id, raw_code, poa = _row_fields(row)
    check = check_codes([raw_code], form)[0]
    if not check.ok:
        return None, check
    return VisitCodeRecord(visit_id=visit_id, code=check.code, poa=poa), check


def load_records(rows, form: str = "auto") -> tuple[list[VisitCodeRecord], list[CodeCheck]]:
    """
    Build VisitCodeRecords from raw rows.

    Each row is (visit_id, code), (visit_id, code, poa) or a dict with those
    keys. Rows whose code does not parse are returned in `rejected` instead
    of aborting the batch. An unrecognized POA token raises ValueError.
    """
    records = []
    rejected = []
    for row in rows:
        record, check = _load_row(row, form)
        if record is None:
            rejected.append(check)
        else:
            records.append(record)

    if rejected:
        logger.warning(f"Rejected {len(rejected)} of {len(records) + len(rejected)} rows with unreadable codes")
    return records, rejected


def _visit_order(visit):
    # total order over mixed id types: group by type name, then by value
    return (type(visit).__name__, visit)


def map_comorbidities(
    records,
    cmap,
    poa_filter: PoaFilter | str | None = None,
    sort_visits: bool = False,
) -> ComorbidityResult:
    """
    Flag comorbidity groups per visit.

    Args:
        records: VisitCodeRecords, or raw rows as accepted by `load_records`
        cmap: ComorbidityMap or a plain {name: patterns} mapping
        poa_filter: keep only records whose POA flag passes (None keeps all)
        sort_visits: order rows by visit id instead of first occurrence

    Returns:
        ComorbidityResult. Raw rows with unreadable codes are skipped and
        listed in `rejected`. Records failing the POA filter are dropped
        first, so a visit whose records all fail is absent; a visit with
        records but no matching code gets an all-false row.
    """
    cmap = _as_map(cmap)
    if poa_filter is not None and not isinstance(poa_filter, PoaFilter):
        poa_filter = PoaFilter(str(poa_filter).lower())

    groups = list(cmap)
    column = {name: i for i, name in enumerate(groups)}
    hits: dict = {}
    rejected = []
    dropped = 0

    for record in records:
        if not isinstance(record, VisitCodeRecord):
            record, check = _load_row(record, "auto")
            if record is None:
                rejected.append(check)
                continue
        if not poa_passes(record.poa, poa_filter):
            dropped += 1
            continue
        flagged = hits.setdefault(record.visit_id, set())
        flagged.update(cmap.groups_for(record.code))

    visit_ids = list(hits)
    if sort_visits:
        visit_ids = sorted(visit_ids, key=_visit_order)

    matrix = np.zeros((len(visit_ids), len(groups)), dtype=bool)
    for row, visit in enumerate(visit_ids):
        for name in hits[visit]:
            matrix[row, column[name]] = True

    if rejected:
        logger.warning(f"Skipped {len(rejected)} rows with unreadable codes")
    logger.debug(
        f"Mapped {len(visit_ids)} visits against {len(groups)} groups "
        f"({dropped} records dropped by POA filter {poa_filter})"
    )
    return ComorbidityResult(visit_ids=visit_ids, groups=groups, matrix=matrix, rejected=rejected)


def diff_comorbidity(map_a, map_b, names=None, only_real: bool = False, defined=None) -> dict[str, ComorbidityDiff]:
    """
    Compare two comorbidity maps group by group.

    Both maps are normalized to short codes (ranges expanded) before the set
    differences are taken. `names` defaults to the groups the maps share, in
    the order of `map_a`; a requested name missing from either map raises
    KeyError.
    """
    map_a, map_b = _as_map(map_a), _as_map(map_b)
    if names is None:
        names = [n for n in map_a if n in map_b]
    elif isinstance(names, str):
        names = [names]

    out = {}
    for name in names:
        if name not in map_a or name not in map_b:
            raise KeyError(f"Comorbidity group {name!r} is not in both maps")
        codes_a = map_a.codes(name, only_real=only_real, defined=defined)
        codes_b = map_b.codes(name, only_real=only_real, defined=defined)
        out[name] = ComorbidityDiff(
            only_in_a=codes_a - codes_b,
            only_in_b=codes_b - codes_a,
            in_both=codes_a & codes_b,
        )
    return out
