"""
Build the ICD-9-CM lookup table from the CDC's RTF tabular list.

The parse runs as a sequence of stages over a list of lines:

1. prepare: join paragraphs, decode escapes, strip markup (rtf_text)
2. pull the major and sub-chapter heading tables
3. drop exclusion notes and chapter range headings
4. read `[0,1,3]` fifth-digit restrictions (qualifiers)
5. read fourth/fifth-digit footnote blocks (qualifiers)
6. take `<code> <description>` lines as the base entries
7. add the synthesized fourth/fifth-digit entries
8. settle duplicate descriptions
9. drop restricted digits and apply the fixed corrections (quirks)

Only the layout of the 2011 document (Dtab12.rtf) is supported. Fetching
the file is the caller's business; `build_lookup` takes its lines.
"""

import logging
import re

from icdkit.codes.hierarchy import major_of, parent
from icdkit.codes.parse import parse
from icdkit.lookup import quirks
from icdkit.lookup.qualifiers import (
    DECIMAL_CODE,
    fifth_digit_lookup,
    fourth_digit_lookup,
    invalid_qualifier_codes,
    invalid_qualifiers,
    resolve_stage_backrefs,
    zero_fourth_digit_lines,
)
from icdkit.lookup.rtf_text import prepare_lines
from icdkit.lookup.table import LookupTable
from icdkit.models import BuilderConfig, CodeRange, IcdCode

logger = logging.getLogger(__name__)


MAJOR_CODE = r"(?:[0-9]{3}|[Vv][0-9]{2}|[Ee][0-9]{3})"
STRICT_DECIMAL_CODE = rf"{MAJOR_CODE}(?:\.[0-9]{{0,2}})?"

MAJOR_LINE = re.compile(rf"^({MAJOR_CODE})\s+(.+)")
SUB_CHAPTER_LINE = re.compile(rf"^[-()A-Z,\s]+(?:\s+\(|\()({MAJOR_CODE})(?:-({MAJOR_CODE}))?\)")
BRACKETED_RANGE = re.compile(rf"\(({DECIMAL_CODE})-({DECIMAL_CODE})\)")
CODE_LINE = re.compile(rf"^\s*({STRICT_DECIMAL_CODE}) ")
SPLIT_POINT = re.compile(r"^([VvEe]?[0-9]+) ?\. ?([0-9]) (.*)")
RANGE_HEADING = re.compile(r"^\s*[0-9]{3}-[0-9]{3}")
CODE_DESCRIPTION = re.compile(rf"^({DECIMAL_CODE}) +(.+)")
WHITESPACE = re.compile(r"\s+")


def _title_case(text: str) -> str:
    """ "ILL-DEFINED CONDITIONS" -> "Ill-Defined Conditions" """
    text = text.lower()
    for sep in (" ", "-", "["):
        text = sep.join(word[:1].upper() + word[1:] for word in text.split(sep))
    return text


# ---------------------------------------------------------------------------
# Headings
# ---------------------------------------------------------------------------

def extract_majors(lines: list[str]) -> dict[str, str]:
    """Three-character code -> heading text; the first listing of a major wins."""
    majors = {}
    for line in lines:
        match = MAJOR_LINE.match(line)
        if not match:
            continue
        try:
            code = parse(match.group(1), "decimal")
        except ValueError:
            continue
        majors.setdefault(code.short, match.group(2).strip())
    for code, desc in quirks.MISSING_MAJORS.items():
        majors.setdefault(code, desc)
    return majors


def extract_sub_chapters(lines: list[str], problems: list | None = None) -> dict[str, CodeRange]:
    """Sub-chapter name -> range of majors, from headings like "INTESTINAL INFECTIOUS DISEASES (001-009)"."""
    out = {}
    for line in lines:
        match = SUB_CHAPTER_LINE.match(line)
        if not match:
            continue
        start, end = match.groups()
        name = _title_case(line[:match.start(1)].rstrip("( ").strip())
        if not name or name in quirks.NOT_SUB_CHAPTERS or name in out:
            continue
        try:
            out[name] = CodeRange.build(parse(start, "decimal"), parse(end or start, "decimal"))
        except ValueError as e:
            message = f"Unreadable sub-chapter heading {line!r}: {e}"
            logger.warning(message)
            if problems is not None:
                problems.append(message)
    return out


# ---------------------------------------------------------------------------
# Code lines
# ---------------------------------------------------------------------------

def filter_excludes(lines: list[str]) -> list[str]:
    """Drop exclusion notes and bracketed range headings; unfuse "707.02Upper back"."""
    kept = [
        line for line in lines
        if not BRACKETED_RANGE.search(line) and "Exclude" not in line
    ]
    return [quirks.FUSED_CODE.sub(r"\1 \2", line, count=1) for line in kept]


def extract_codes(lines: list[str]) -> list[tuple[IcdCode, str]]:
    """
    Base (code, description) pairs from lines that start with a code.

    Only the primary description is kept: alternative wordings further down
    a code's entry don't start with the code. Duplicates are left for
    `deduplicate`.
    """
    out = []
    for line in lines:
        if not CODE_LINE.match(line):
            continue
        line = WHITESPACE.sub(" ", line).strip()
        # "040. 1 Rhinoscleroma", "527 .0 Atrophy"
        line = SPLIT_POINT.sub(r"\1.\2 \3", line)
        if RANGE_HEADING.match(line) or line.startswith("2009"):
            continue
        match = CODE_DESCRIPTION.match(line)
        if not match:
            continue
        try:
            code = parse(match.group(1), "decimal")
        except ValueError:
            logger.debug(f"Skipping line with unreadable code: {line!r}")
            continue
        out.append((code, match.group(2).strip()))
    return out


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

def merge_synthesized(
    base: list[tuple[IcdCode, str]],
    fourth: list[tuple[IcdCode, str]],
    fifth: list[tuple[IcdCode, str]],
) -> list[tuple[IcdCode, str]]:
    """
    Base entries plus "<parent description>, <suffix>" entries.

    A fourth-digit code takes its major's description, a fifth-digit code
    its immediate parent's (which may itself be a fourth-digit entry). A
    code with no described parent, or already listed in `base`, is skipped.
    """
    described: dict[IcdCode, str] = {}
    for code, desc in base:
        described.setdefault(code, desc)
    listed = set(described)
    out = list(base)

    for code, suffix in fourth:
        parent_desc = described.get(major_of(code))
        if code in listed or parent_desc is None:
            continue
        out.append((code, f"{parent_desc}, {suffix}"))
    for code, desc in out[len(base):]:
        described.setdefault(code, desc)

    for code, suffix in fifth:
        parent_desc = described.get(parent(code))
        if code in listed or parent_desc is None:
            continue
        out.append((code, f"{parent_desc}, {suffix}"))

    logger.debug(f"Synthesized {len(out) - len(base)} qualifier entries onto {len(base)} base entries")
    return out


def deduplicate(entries: list[tuple[IcdCode, str]]) -> dict[IcdCode, str]:
    """
    One description per code.

    Identical descriptions collapse; otherwise the longest wins, and among
    equally long distinct descriptions the first listed wins.
    """
    grouped: dict[IcdCode, list[str]] = {}
    for code, desc in entries:
        grouped.setdefault(code, []).append(desc)

    out = {}
    for code, descs in grouped.items():
        if len(set(descs)) > 1:
            logger.debug(f"Differing descriptions for {code.decimal}: {descs}")
        out[code] = max(descs, key=len)
    return out


def drop_invalid_qualifiers(table: dict[IcdCode, str], invalid: set[IcdCode]) -> dict[IcdCode, str]:
    return {code: desc for code, desc in table.items() if code not in invalid}


def apply_quirks(table: dict[IcdCode, str]) -> dict[IcdCode, str]:
    """Remove the inapplicable obstetric episodes and set the hand-checked descriptions."""
    out = {
        code: desc for code, desc in table.items()
        if not quirks.INVALID_EPISODE.match(code.decimal)
    }
    for code, desc in quirks.OVERRIDES.items():
        out[parse(code, "decimal")] = desc
    return out


def build_lookup(lines: list[str], config: BuilderConfig | None = None) -> LookupTable:
    """
    Parse the RTF tabular list into a LookupTable.

    Args:
        lines: raw lines of the RTF file, newline characters removed
        config: parse tunables; defaults match the 2011 document

    Returns:
        LookupTable of short code -> description with `majors`,
        `sub_chapters` and any `warnings` about skipped footnote blocks
    """
    config = config or BuilderConfig()
    problems: list[str] = []

    text = prepare_lines(lines, config.max_line_length)
    logger.info(f"Prepared {len(text)} paragraphs from {len(lines)} RTF lines")

    majors = extract_majors(text)
    sub_chapters = extract_sub_chapters(text, problems)
    invalid = invalid_qualifier_codes(invalid_qualifiers(text, problems))

    text = resolve_stage_backrefs(text)
    fourth = fourth_digit_lookup(text, config, problems)
    text = text + zero_fourth_digit_lines(text, problems)
    fifth = fifth_digit_lookup(text, config, problems)

    base = extract_codes(filter_excludes(text))
    table = deduplicate(merge_synthesized(base, fourth, fifth))
    table = drop_invalid_qualifiers(table, invalid)
    if config.apply_quirks:
        table = apply_quirks(table)

    if problems:
        logger.warning(f"Lookup table built with {len(problems)} warning(s)")
    logger.info(f"Lookup table has {len(table)} codes, {len(majors)} majors, {len(sub_chapters)} sub-chapters")
    return LookupTable(table, majors=majors, sub_chapters=sub_chapters, warnings=problems)
