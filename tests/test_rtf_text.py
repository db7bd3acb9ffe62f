"""Tests for RTF paragraph joining and markup stripping."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from icdkit.lookup.rtf_text import decode_escapes, join_paragraphs, prepare_lines, strip_rtf
from icdkit.models import BuilderConfig


def test_join_paragraphs():
    """Lines without \\par continue the paragraph above."""
    lines = [r"\par 428\tab Heart", " failure", r"\par 428.0\tab Congestive"]
    assert join_paragraphs(lines) == [r"\par 428\tab Heart failure", r"\par 428.0\tab Congestive"]


def test_join_drops_preamble():
    assert join_paragraphs([r"{\rtf1\ansi", "{\\fonttbl}", r"\par x"]) == [r"\par x"]


def test_decode_escapes():
    assert decode_escapes(r"M\'e9ni\'e8re") == "Ménière"
    assert decode_escapes(r"Ni\'f1o") == "Niño"


def test_strip_control_words_and_braces():
    assert strip_rtf(r"\par }{\b 428\tab Heart failure}") == "428 Heart failure"


def test_strip_stacked_control_words():
    assert strip_rtf(r"\par \pard\plain \s1\ql 0\tab unspecified") == "0 unspecified"


def test_strip_bookmarks():
    assert strip_rtf(r"\par {\*\bkmkstart foo}250.0\tab Diabetes") == "250.0 Diabetes"


def test_prepare_lines():
    lines = [
        r"{\rtf1\ansi",
        r"\par {\b 428\tab Heart}",
        " failure",
        r"\par ",
        r"\par M\'e9ni\'e8re\tab disease",
        "\\par " + "x" * 3000,
    ]
    assert prepare_lines(lines) == ["428 Heart failure", "Ménière disease"]


def test_prepare_lines_length_limit():
    lines = [r"\par 001\tab Cholera", "\\par " + "y" * 50]
    assert prepare_lines(lines, max_line_length=40) == ["001 Cholera"]


def test_prepare_lines_default_cut_off_comes_from_config():
    limit = BuilderConfig().max_line_length
    lines = ["\\par " + "z" * (limit - 5), "\\par " + "z" * (limit - 4)]
    assert prepare_lines(lines) == ["z" * (limit - 5)]
