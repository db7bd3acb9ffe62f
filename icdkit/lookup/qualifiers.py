"""
Fourth- and fifth-digit qualifier footnotes.

Rather than listing every code, the tabular list often gives a block like

    The following fifth-digit subclassification is for use with categories 640-649:
    0 unspecified as to episode of care or not applicable
    1 delivered, with or without mention of antepartum condition
    ...

and expects the reader to combine each parent code in the range with each
digit. This module finds those blocks and turns them into (code, suffix)
pairs; the builder joins suffixes onto parent descriptions. It also reads the
`[0,1,3]` annotations that restrict which fifth digits a code accepts.

A block whose range cannot be read raises UnresolvedQualifierReference
internally; the stage logs it, records it in `problems` and moves on.
"""

import logging
import re

from icdkit.codes.hierarchy import descendants, expand_range, major_of
from icdkit.codes.parse import parse
from icdkit.errors import UnresolvedQualifierReference
from icdkit.models import BuilderConfig, IcdCode

logger = logging.getLogger(__name__)


# Codes as written in the document, any width of major
DECIMAL_CODE = (
    r"(?:[Ee][0-9]{1,3}(?:\.[0-9]?)?"
    r"|[Vv][0-9]{1,2}(?:\.[0-9]{0,2})?"
    r"|[0-9]{1,3}(?:\.[0-9]{0,2})?)"
)

DIGITS = frozenset("0123456789")

QUALIFIER_SUBSET = re.compile(r"\[[-, 0-9]+\]")
FOURTH_HEADER = re.compile(r"fourth-digit.+categor")
FIFTH_HEADER = re.compile(r"ifth-digit subclas|fifth-digits are for use with codes")
STAGE_BACKREF = re.compile(r"fifth +digit +to +identify +stage")
V30_HEADER = "The following two fifths-digits are for use with the fourth-digit .0"
ZERO_FOURTH = re.compile(r"Use 0 as fourth digit for category ([0-9]{3})$")

_CODE_IN_LINE = re.compile(rf"({DECIMAL_CODE}) (.*)")
_SUFFIX_LINE = re.compile(r"^([0-9])\s(.*)")
_RANGE_SPLIT = re.compile(r"[, :;]")
_HAS_DIGIT = re.compile(r"[0-9]")


def _note(problems: list | None, message: str) -> None:
    logger.warning(message)
    if problems is not None:
        problems.append(message)


# ---------------------------------------------------------------------------
# Range text
# ---------------------------------------------------------------------------

def _decimal(text: str) -> IcdCode:
    try:
        return parse(text, "decimal")
    except ValueError as e:
        raise UnresolvedQualifierReference(f"Unreadable code {text!r} in qualifier range", value=text) from e


def _expand(first: str, last: str) -> list[IcdCode]:
    try:
        return expand_range(_decimal(first), _decimal(last))
    except ValueError as e:
        raise UnresolvedQualifierReference(f"Bad qualifier range {first}-{last}: {e}", value=(first, last)) from e


def parse_digit_range(row: str, huge_range_span: int = 10) -> list[IcdCode]:
    """
    Every code a qualifier header row applies to.

    Handles explicit ranges ("640-649"), single codes ("250"), lists
    ("711, 712, 715") and minor lists off a base code
    ("345.0, .1, .4-.9"). Each single code brings its whole subtree; the
    caller keeps only the depth it needs.

    Raises:
        UnresolvedQualifierReference: no codes in the row, or one that doesn't parse
    """
    tokens = [t.strip("()[]") for t in _RANGE_SPLIT.split(row) if _HAS_DIGIT.search(t)]
    tokens = [t for t in tokens if t]
    if not tokens:
        raise UnresolvedQualifierReference(f"No code range in qualifier header {row!r}", value=row)

    out = []
    if any(t.startswith(".") for t in tokens[1:]):
        base = major_of(_decimal(tokens[0])).decimal
        for minor in tokens[1:]:
            if "-" in minor:
                first, _, last = minor.partition("-")
                out.extend(_expand(base + first, base + last))
            else:
                out.extend(descendants(_decimal(base + minor)))
        tokens = tokens[:1]

    for token in tokens:
        if "-" in token:
            first, _, last = token.partition("-")
            start, end = _decimal(first), _decimal(last)
            if end.sort_key()[1] - start.sort_key()[1] > huge_range_span:
                logger.warning(f"Probable formatting misinterpretation, huge range expansion: {token!r}")
            out.extend(_expand(first, last))
        else:
            out.extend(descendants(_decimal(token)))
    return out


def parse_qualifier_subset(text: str) -> frozenset[str]:
    """Digits allowed by an annotation such as "[0,1,3]" or "[0-2,4]"."""
    allowed = set()
    for group in QUALIFIER_SUBSET.findall(text):
        for part in group.strip("[]").split(","):
            part = part.strip()
            if not part:
                continue
            if "-" in part:
                first, _, last = part.partition("-")
                allowed.update(str(d) for d in range(int(first), int(last) + 1))
            else:
                allowed.add(str(int(part)))
    return frozenset(allowed)


def _suffixes(lines: list[str], header: int, window: int) -> dict[str, str]:
    """Digit -> suffix text from the lines under a header, stopping when digits go backwards."""
    found = {}
    last = -1
    for line in lines[header + 1:header + 1 + window]:
        match = _SUFFIX_LINE.match(line)
        if not match:
            continue
        digit = int(match.group(1))
        if digit <= last:
            break
        found[match.group(1)] = match.group(2).strip()
        last = digit
    return found


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def invalid_qualifiers(lines: list[str], problems: list | None = None) -> dict[IcdCode, frozenset[str]]:
    """
    Parent code -> digits its `[...]` annotation rules out.

    The annotation sits on the line after the code it restricts.
    """
    out = {}
    for i, line in enumerate(lines):
        if not QUALIFIER_SUBSET.search(line):
            continue
        match = _CODE_IN_LINE.search(lines[i - 1]) if i > 0 else None
        if match is None:
            _note(problems, f"Qualifier subset {line!r} has no code on the line above")
            continue
        try:
            code = _decimal(match.group(1))
        except UnresolvedQualifierReference as e:
            _note(problems, str(e))
            continue
        invalid = DIGITS - parse_qualifier_subset(line)
        if invalid:
            out[code] = out.get(code, frozenset()) | invalid
    return out


def invalid_qualifier_codes(invalid: dict[IcdCode, frozenset[str]]) -> set[IcdCode]:
    """Expand `invalid_qualifiers` output to the concrete codes to drop."""
    return {
        parent.with_minor((parent.minor or "") + digit)
        for parent, digits in invalid.items()
        if parent.depth < parent.kind.max_minor
        for digit in digits
    }


def resolve_stage_backrefs(lines: list[str]) -> list[str]:
    """
    "Requires fifth digit to identify stage:" names no codes; borrow the line above.

    The result reads e.g. "Requires fifth digit to identify stage: 634 Spontaneous abortion".
    """
    out = list(lines)
    for i, line in enumerate(lines):
        if i > 0 and STAGE_BACKREF.search(line):
            out[i] = f"{line} {lines[i - 1]}"
    return out


def zero_fourth_digit_lines(lines: list[str], problems: list | None = None) -> list[str]:
    """
    Extra code lines for "Use 0 as fourth digit for category 672".

    Each becomes "672.0 <description of 672>" so the primary extraction picks
    it up like any other code line.
    """
    extra = []
    for line in lines:
        match = ZERO_FOURTH.search(line)
        if not match:
            continue
        category = match.group(1)
        parent_re = re.compile(rf"^{category} (.+)")
        parents = [m.group(1) for m in map(parent_re.match, lines) if m]
        if not parents:
            _note(problems, f"No description line for category {category} in {line!r}")
            continue
        extra.extend(f"{category}.0 {desc}" for desc in parents)
    return extra


def _headers(lines: list[str], pattern: re.Pattern) -> list[int]:
    return [i for i, line in enumerate(lines) if pattern.search(line)]


def _apply_block(
    lines: list[str],
    header: int,
    window: int,
    depth: int,
    config: BuilderConfig,
    problems: list | None,
) -> list[tuple[IcdCode, str]]:
    try:
        codes = parse_digit_range(lines[header], config.huge_range_span)
    except UnresolvedQualifierReference as e:
        _note(problems, f"Skipping qualifier block at line {header}: {e}")
        return []

    suffixes = _suffixes(lines, header, window)
    if not suffixes:
        logger.debug(f"No digit lines under qualifier header {lines[header]!r}")
        return []
    return [
        (code, suffixes[code.minor[-1]])
        for code in codes
        if code.depth == depth and code.minor[-1] in suffixes
    ]


def fourth_digit_lookup(
    lines: list[str],
    config: BuilderConfig | None = None,
    problems: list | None = None,
) -> list[tuple[IcdCode, str]]:
    """(four-digit code, suffix) pairs from every fourth-digit category block."""
    config = config or BuilderConfig()
    out = []
    for header in _headers(lines, FOURTH_HEADER):
        out.extend(_apply_block(lines, header, config.fourth_window, 1, config, problems))
    logger.debug(f"Fourth-digit lookup has {len(out)} entries")
    return out


def fifth_digit_lookup(
    lines: list[str],
    config: BuilderConfig | None = None,
    problems: list | None = None,
) -> list[tuple[IcdCode, str]]:
    """
    (five-digit code, suffix) pairs from every fifth-digit block.

    Includes the stage back-references (run `resolve_stage_backrefs` first)
    and the V30-V39 block, whose two fifth digits apply only under the
    fourth digit 0.
    """
    config = config or BuilderConfig()
    out = []
    headers = sorted(set(_headers(lines, FIFTH_HEADER)) | set(_headers(lines, STAGE_BACKREF)))
    for header in headers:
        out.extend(_apply_block(lines, header, config.fifth_window, 2, config, problems))

    for header, line in enumerate(lines):
        if V30_HEADER not in line:
            continue
        suffixes = _suffixes(lines, header, config.v30_window)
        newborns = expand_range("V30", "V37") + descendants("V39")
        out.extend(
            (code, suffixes[code.minor[-1]])
            for code in newborns
            if code.depth == 2 and code.minor[0] == "0" and code.minor[-1] in suffixes
        )

    logger.debug(f"Fifth-digit lookup has {len(out)} entries")
    return out
