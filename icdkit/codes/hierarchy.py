"""
Hierarchy and range engine.

Every syntactically valid code sits in an implicit tree:
major (428) -> first minor digit (428.0) -> second minor digit (428.01).
"Real" codes are the subset present in a reference of defined codes,
usually a LookupTable built from the tabular list; no reference is bundled,
so anything that needs real codes takes one explicitly as `defined`.

Range expansion is child-exact: the result holds exactly the codes whose
whole subtree lies inside the requested span, never a coarser ancestor.
"100.99" to "101.01" gives 100.99, 101.00 and 101.01; neither 100 nor 101.0
appear, since both have children outside the span.
"""

from icdkit.codes.parse import coerce, in_reference
from icdkit.models import CodeKind, CodeRange, IcdCode


def _require_reference(only_real: bool, defined) -> None:
    if only_real and defined is None:
        raise ValueError("only_real=True needs a reference of defined codes (defined=...)")


def _major(kind: CodeKind, number: int) -> IcdCode:
    if kind is CodeKind.NUMERIC:
        major = f"{number:03d}"
    elif kind is CodeKind.V:
        major = f"V{number:02d}"
    else:
        major = f"E{number:03d}"
    return IcdCode(raw=major, kind=kind, major=major)


def major_of(code, form: str = "auto") -> IcdCode:
    code = coerce(code, form)
    if code.is_major:
        return code
    return code.with_minor(None)


def parent(code, form: str = "auto") -> IcdCode | None:
    """The code with one fewer minor digit, or None for a bare major."""
    code = coerce(code, form)
    if code.is_major:
        return None
    return code.with_minor(code.minor[:-1])


def last_descendant(code, form: str = "auto") -> IcdCode:
    return coerce(code, form).last_descendant()


def children(code, only_real: bool = False, defined=None, form: str = "auto") -> list[IcdCode]:
    """
    Immediate children of a code, in ascending order.

    Syntactic children are the ten one-digit extensions; with `only_real`
    only those found in `defined` are kept. Leaf codes (two minor digits, or
    an E code with one) have no children.
    """
    _require_reference(only_real, defined)
    code = coerce(code, form)
    if code.depth >= code.kind.max_minor:
        return []
    stem = code.minor or ""
    kids = [code.with_minor(stem + str(digit)) for digit in range(10)]
    if only_real:
        kids = [k for k in kids if in_reference(k, defined)]
    return kids


def _subtree(code: IcdCode):
    yield code
    for kid in children(code):
        yield from _subtree(kid)


def descendants(
    code,
    only_real: bool = False,
    defined=None,
    include_self: bool = True,
    form: str = "auto",
) -> list[IcdCode]:
    """The whole subtree of `code` in canonical order."""
    _require_reference(only_real, defined)
    code = coerce(code, form)
    out = list(_subtree(code))
    if not include_self:
        out = out[1:]
    if only_real:
        out = [c for c in out if in_reference(c, defined)]
    return out


def expand_range(start, end, only_real: bool = False, defined=None, form: str = "auto") -> list[IcdCode]:
    """
    Expand a range of codes into the discrete codes it covers.

    Walks the full syntactic space from `start` through the subtree of
    `end`, keeping each code that sorts at or after `start` and whose own
    subtree finishes no later than `end`'s. A major endpoint therefore
    brings all of its children.

    Args:
        start, end: codes (or strings) of the same kind, start <= end
        only_real: keep only codes present in `defined`, order preserved
        defined: reference of defined codes, required with only_real

    Raises:
        RangeKindMismatchError: endpoints of different kinds
        RangeOrderError: start sorts after end
    """
    _require_reference(only_real, defined)
    code_range = CodeRange.build(coerce(start, form), coerce(end, form))
    start, end = code_range.start, code_range.end

    low = start.sort_key()
    limit = end.last_descendant().sort_key()
    first, last = start.sort_key()[1], end.sort_key()[1]

    out = []
    for number in range(first, last + 1):
        for code in _subtree(_major(start.kind, number)):
            if code.sort_key() < low:
                continue
            if code.last_descendant().sort_key() > limit:
                continue
            out.append(code)

    if only_real:
        out = [c for c in out if in_reference(c, defined)]
    return out


def is_defined(code, defined, form: str = "auto") -> bool:
    return in_reference(coerce(code, form), defined)


def is_billable(code, defined, form: str = "auto") -> bool:
    """A defined code with no defined children (a leaf of the real tree)."""
    code = coerce(code, form)
    if not in_reference(code, defined):
        return False
    return not children(code, only_real=True, defined=defined)


def condense(codes, defined=None, form: str = "auto") -> list[IcdCode]:
    """
    Collapse complete sets of siblings into their parent.

    Works from the deepest level up, so a major whose every child ends up
    present (after their own condensing) collapses too. With `defined`,
    "every child" means every defined child; otherwise all ten.
    """
    remaining = {coerce(c, form) for c in codes}
    only_real = defined is not None

    for depth in (2, 1):
        parents = {parent(c) for c in remaining if c.depth == depth}
        for p in sorted(parents):
            kids = children(p, only_real=only_real, defined=defined)
            if kids and all(k in remaining for k in kids):
                remaining.difference_update(kids)
                remaining.add(p)

    return sorted(remaining)
