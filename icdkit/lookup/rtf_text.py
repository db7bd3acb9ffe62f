"""
First pass over the RTF tabular list: paragraph joining and markup removal.

The CDC's Dtab RTF is 7-bit ASCII. Every logical line starts with a `\\par`
control word; physical lines that don't are continuations and belong on the
end of the paragraph above. A handful of accented characters are written as
`\\'xx` escapes and decoded before markup is stripped.
"""

import re

from icdkit.models import BuilderConfig


PARAGRAPH_MARK = "\\par"

# The only escapes the tabular list uses
ESCAPES = {
    "\\'e7": "\u00e7",  # c cedilla
    "\\'e8": "\u00e8",  # e grave
    "\\'e9": "\u00e9",  # e acute
    "\\'f1": "\u00f1",  # n tilde
    "\\'f6": "\u00f6",  # o umlaut
}

# Applied in order; later patterns rely on earlier ones having run
_TAB = re.compile(r"\\tab ")
_CONTROL_SYMBOL = re.compile(r"\\[!\"#$%&'()*+,\-./:;<=>?@\[\\\]^_`{|}~]")
_LSDLOCKED = re.compile(r"\\lsdlocked[ A-Za-z0-9]*;")
_BOOKMARK = re.compile(r"\{\\bkmk(?:start|end).*?\}")
_CONTROL_WORD = re.compile(r"\\[-A-Za-z0-9]*[ !\"#$%&'()*+,\-./:;<=>?@^_`{|}~]?")
_BRACE = re.compile(r" *[{}]")
_BLANK = re.compile(r"^\s*$")


def join_paragraphs(lines: list[str]) -> list[str]:
    """Append continuation lines to their paragraph; text before the first `\\par` is dropped."""
    joined = []
    for line in lines:
        if line.startswith(PARAGRAPH_MARK):
            joined.append(line)
        elif joined:
            joined[-1] += line
    return joined


def decode_escapes(line: str) -> str:
    for escape, char in ESCAPES.items():
        line = line.replace(escape, char)
    return line


def strip_rtf(line: str) -> str:
    """Drop RTF markup from one line, keeping `\\tab` as a space."""
    line = _TAB.sub(" ", line)
    line = _CONTROL_SYMBOL.sub("", line)
    line = _LSDLOCKED.sub("", line)
    line = _BOOKMARK.sub("", line)
    line = _CONTROL_WORD.sub("", line)
    line = _BRACE.sub("", line)
    return line.strip()


def prepare_lines(lines: list[str], max_line_length: int | None = None) -> list[str]:
    """
    Turn raw RTF lines into plain text paragraphs.

    Joins continuations, drops the over-long junk paragraphs (the document
    ends in one), decodes escapes, strips markup and removes blank lines.
    """
    if max_line_length is None:
        max_line_length = BuilderConfig().max_line_length
    paragraphs = join_paragraphs(lines)
    paragraphs = [p for p in paragraphs if len(p) <= max_line_length]
    text = (strip_rtf(decode_escapes(p)) for p in paragraphs)
    return [t for t in text if not _BLANK.match(t)]
