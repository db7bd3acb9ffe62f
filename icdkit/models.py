"""
Pydantic data models shared by every icdkit component.

Codes are parsed once into `IcdCode` values and passed around in that form;
ranges, visit records, lookup entries and the comorbidity result matrix are
all typed here so each stage can validate its input at the boundary.
"""

from __future__ import annotations

from collections.abc import Hashable
from enum import Enum

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from icdkit.errors import RangeKindMismatchError, RangeOrderError


# ---------------------------------------------------------------------------
# Codes
# ---------------------------------------------------------------------------

class CodeKind(str, Enum):
    NUMERIC = "numeric"
    V = "v"
    E = "e"

    @property
    def rank(self) -> int:
        return _KIND_RANK[self]

    @property
    def max_minor(self) -> int:
        """Number of minor digits a code of this kind may carry."""
        return 1 if self is CodeKind.E else 2


_KIND_RANK = {CodeKind.NUMERIC: 0, CodeKind.V: 1, CodeKind.E: 2}


class IcdCode(BaseModel):
    """A single validated ICD-9-CM code.

    `major` is always the canonical 3-digit (or V + 2, E + 3) root and
    `minor` the 0-2 digit refinement, `None` for a bare major. Two codes
    compare equal when kind, major and minor agree, whatever `raw` was.
    Build these with `icdkit.codes.parse.parse`, not directly.
    """
    model_config = ConfigDict(frozen=True)

    raw: str = ""
    kind: CodeKind
    major: str
    minor: str | None = None

    @property
    def short(self) -> str:
        return self.major + (self.minor or "")

    @property
    def decimal(self) -> str:
        if self.minor is None:
            return self.major
        return f"{self.major}.{self.minor}"

    @property
    def is_major(self) -> bool:
        return self.minor is None

    @property
    def depth(self) -> int:
        return len(self.minor or "")

    def sort_key(self) -> tuple[int, int, str]:
        # "" < "0" < "00" < "09" < "1": a code sorts just before its own subtree
        digits = self.major if self.kind is CodeKind.NUMERIC else self.major[1:]
        return (self.kind.rank, int(digits), self.minor or "")

    def last_descendant(self) -> IcdCode:
        """The greatest code in this code's subtree (itself for a leaf)."""
        width = self.kind.max_minor
        minor = (self.minor or "").ljust(width, "9")
        if minor == (self.minor or ""):
            return self
        return self.with_minor(minor)

    def with_minor(self, minor: str | None) -> IcdCode:
        return IcdCode(raw=self.major + (minor or ""), kind=self.kind, major=self.major, minor=minor or None)

    def __eq__(self, other):
        if not isinstance(other, IcdCode):
            return NotImplemented
        return (self.kind, self.major, self.minor) == (other.kind, other.major, other.minor)

    def __hash__(self):
        return hash((self.kind, self.major, self.minor))

    def __lt__(self, other: IcdCode) -> bool:
        return self.sort_key() < other.sort_key()

    def __le__(self, other: IcdCode) -> bool:
        return self.sort_key() <= other.sort_key()

    def __str__(self) -> str:
        return self.decimal


def _check_range(start: IcdCode, end: IcdCode) -> None:
    if start.kind is not end.kind:
        raise RangeKindMismatchError(
            f"Range endpoints {start.decimal!r} and {end.decimal!r} are of different kinds",
            value=(start.raw, end.raw),
        )
    if start.sort_key() > end.sort_key():
        raise RangeOrderError(
            f"Range start {start.decimal!r} sorts after end {end.decimal!r}",
            value=(start.raw, end.raw),
        )


class CodeRange(BaseModel):
    """An inclusive (start, end) pair of codes of one kind.

    Containment is child-exact: a code is inside the range when it sorts at
    or after `start` and its whole subtree ends no later than the subtree of
    `end`. A bare major endpoint therefore covers all of its children.
    """
    model_config = ConfigDict(frozen=True)

    start: IcdCode
    end: IcdCode

    @model_validator(mode="after")
    def _validate_order(self) -> CodeRange:
        _check_range(self.start, self.end)
        return self

    @classmethod
    def build(cls, start: IcdCode, end: IcdCode) -> CodeRange:
        """Like the constructor, but raises the typed range errors unwrapped."""
        _check_range(start, end)
        return cls(start=start, end=end)

    @property
    def kind(self) -> CodeKind:
        return self.start.kind

    def contains(self, code: IcdCode) -> bool:
        if code.kind is not self.kind:
            return False
        if code.sort_key() < self.start.sort_key():
            return False
        return code.last_descendant().sort_key() <= self.end.last_descendant().sort_key()

    def __str__(self) -> str:
        if self.start == self.end:
            return self.start.decimal
        return f"{self.start.decimal}-{self.end.decimal}"


class CodeError(str, Enum):
    MALFORMED = "malformed"    # not readable as a code
    INVALID = "invalid"        # code-shaped, outside the code space
    UNDEFINED = "undefined"    # valid, but not in the reference table (warning level)


class CodeCheck(BaseModel):
    """Per-item outcome of batch validation."""
    raw: str
    code: IcdCode | None = None
    error: CodeError | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Visits and present-on-arrival
# ---------------------------------------------------------------------------

class PoaFlag(str, Enum):
    YES = "yes"
    NO = "no"
    NOT_APPLICABLE = "not_applicable"
    EXEMPT = "exempt"
    UNKNOWN = "unknown"
    MISSING = "missing"


class PoaFilter(str, Enum):
    YES = "yes"          # flag == YES
    NO = "no"            # flag == NO
    NOT_YES = "not_yes"  # anything but YES, missing included
    NOT_NO = "not_no"    # anything but NO, missing included


class VisitCodeRecord(BaseModel):
    """One diagnosis code attached to one visit.

    `code` and `poa` accept raw strings; they are normalized once here and
    the record is read-only afterwards.
    """
    model_config = ConfigDict(frozen=True)

    visit_id: Hashable
    code: IcdCode
    poa: PoaFlag = PoaFlag.MISSING

    @field_validator("code", mode="before")
    @classmethod
    def _parse_code(cls, value):
        if isinstance(value, str):
            from icdkit.codes.parse import parse
            return parse(value)
        return value

    @field_validator("poa", mode="before")
    @classmethod
    def _parse_poa(cls, value):
        if isinstance(value, PoaFlag):
            return value
        from icdkit.comorbid.poa import parse_poa
        return parse_poa(value)


# ---------------------------------------------------------------------------
# Comorbidity output
# ---------------------------------------------------------------------------

class ComorbidityResult(BaseModel):
    """Visit x group boolean matrix, rows in `visit_ids` order.

    `rejected` holds the raw rows skipped for unreadable codes.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    visit_ids: list[Hashable]
    groups: list[str]
    matrix: np.ndarray
    rejected: list[CodeCheck] = Field(default_factory=list)

    def as_sets(self) -> dict[Hashable, set[str]]:
        """Visit id -> names of the groups flagged for it (possibly empty)."""
        return {
            visit: {g for g, hit in zip(self.groups, row) if hit}
            for visit, row in zip(self.visit_ids, self.matrix)
        }

    def as_rows(self) -> list[dict]:
        return [
            {"visit_id": visit, **{g: bool(hit) for g, hit in zip(self.groups, row)}}
            for visit, row in zip(self.visit_ids, self.matrix)
        ]

    def flagged(self, visit_id: Hashable) -> set[str]:
        row = self.matrix[self.visit_ids.index(visit_id)]
        return {g for g, hit in zip(self.groups, row) if hit}


class ComorbidityDiff(BaseModel):
    """Short codes for one group, split by which map lists them."""
    only_in_a: set[str] = Field(default_factory=set)
    only_in_b: set[str] = Field(default_factory=set)
    in_both: set[str] = Field(default_factory=set)


# ---------------------------------------------------------------------------
# Lookup table
# ---------------------------------------------------------------------------

class LookupEntry(BaseModel):
    """A code and its description from the tabular list."""
    model_config = ConfigDict(frozen=True)

    code: IcdCode
    description: str


class BuilderConfig(BaseModel):
    """Tunables for parsing the RTF tabular list.

    The defaults reproduce the parse of the last published (2011) document.
    """
    fourth_window: int = Field(default=37, ge=1, description="Lines scanned for fourth-digit suffixes")
    fifth_window: int = Field(default=20, ge=1, description="Lines scanned for fifth-digit suffixes")
    v30_window: int = Field(default=3, ge=1, description="Lines scanned for the V30-V39 fifth digits")
    max_line_length: int = Field(default=3000, ge=1, description="Longer joined lines are junk and dropped")
    huge_range_span: int = Field(default=10, ge=0, description="Warn when a footnote range spans more majors")
    apply_quirks: bool = True
