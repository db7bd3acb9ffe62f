"""
ICD-9-CM code model: parsing, validation, conversion and ordering.

A code is written either "short" (no punctuation, "4280", "V1046", "E8490")
or "decimal" ("428.0", "V10.46", "E849.0"). Both parse to the same
`IcdCode`. The one ambiguity in the short form is settled absolutely: a short
code of three characters or fewer is a bare major, so "020" is major 020 and
never 002.0 or 020 with minor ".20".

Majors are always rendered at full width: "20" parses to major "020",
"V1" to "V01".
"""

import re

from icdkit.errors import InvalidCodeError, MalformedCodeError
from icdkit.models import CodeCheck, CodeError, CodeKind, IcdCode


FORMS = ("auto", "short", "decimal")

# Width of the digit part of a major, by kind
MAJOR_WIDTH = {CodeKind.NUMERIC: 3, CodeKind.V: 2, CodeKind.E: 3}

# Inclusive bounds on the numeric value of a major's digits
MAJOR_BOUNDS = {
    CodeKind.NUMERIC: (0, 999),
    CodeKind.V: (1, 91),
    CodeKind.E: (0, 999),
}

_DIGITS = re.compile(r"[0-9]+")


def _split_kind(text: str) -> tuple[CodeKind, str]:
    head = text[0].upper()
    if head == "V":
        return CodeKind.V, text[1:]
    if head == "E":
        return CodeKind.E, text[1:]
    if "0" <= head <= "9":
        return CodeKind.NUMERIC, text
    raise MalformedCodeError(f"ICD-9 code must start with a digit, V or E: {text!r}", value=text)


def _split_decimal(kind: CodeKind, body: str, raw: str) -> tuple[str, str]:
    if body.count(".") > 1:
        raise MalformedCodeError(f"More than one decimal point in {raw!r}", value=raw)
    major, _, minor = body.partition(".")
    if not _DIGITS.fullmatch(major) or (minor and not _DIGITS.fullmatch(minor)):
        raise MalformedCodeError(f"Non-digit characters in {raw!r}", value=raw)
    if len(major) > MAJOR_WIDTH[kind] or len(minor) > 2:
        raise MalformedCodeError(f"Too many digits in {raw!r}", value=raw)
    return major, minor


def _split_short(kind: CodeKind, body: str, raw: str) -> tuple[str, str]:
    if not _DIGITS.fullmatch(body):
        raise MalformedCodeError(f"Non-digit characters in {raw!r}", value=raw)
    width = MAJOR_WIDTH[kind]
    if len(body) > width + 2:
        raise MalformedCodeError(f"Too many digits in {raw!r}", value=raw)
    if len(body) <= width:
        return body, ""
    return body[:width], body[width:]


def parse(raw: str, form: str = "auto") -> IcdCode:
    """
    Parse one ICD-9 code string.

    Args:
        raw: the code, short or decimal, surrounding whitespace ignored
        form: "short", "decimal" or "auto" (decimal when a point is present)

    Returns:
        IcdCode with a full-width major

    Raises:
        MalformedCodeError: the string is not code-shaped
        InvalidCodeError: code-shaped but outside the ICD-9 space, e.g. V99
            or an E code with two minor digits
    """
    if form not in FORMS:
        raise ValueError(f"form must be one of {FORMS}, got {form!r}")
    if not isinstance(raw, str):
        raise MalformedCodeError(f"ICD-9 code must be a string, got {type(raw).__name__}", value=raw)

    text = raw.strip()
    if not text:
        raise MalformedCodeError("Empty ICD-9 code", value=raw)

    kind, body = _split_kind(text)
    if not body:
        raise MalformedCodeError(f"No digits after prefix in {raw!r}", value=raw)

    if "." in body:
        if form == "short":
            raise MalformedCodeError(f"Decimal point in short code {raw!r}", value=raw)
        major, minor = _split_decimal(kind, body, raw)
    elif form == "decimal":
        major, minor = _split_decimal(kind, body, raw)
    else:
        major, minor = _split_short(kind, body, raw)

    if not major:
        raise MalformedCodeError(f"Missing major in {raw!r}", value=raw)

    low, high = MAJOR_BOUNDS[kind]
    if not low <= int(major) <= high:
        raise InvalidCodeError(f"Major out of range in {raw!r}", value=raw)
    if len(minor) > kind.max_minor:
        raise InvalidCodeError(f"{kind.name} codes take at most {kind.max_minor} minor digit(s): {raw!r}", value=raw)

    major = major.zfill(MAJOR_WIDTH[kind])
    if kind is not CodeKind.NUMERIC:
        major = kind.name + major

    return IcdCode(raw=raw, kind=kind, major=major, minor=minor or None)


def coerce(code, form: str = "auto") -> IcdCode:
    """Return `code` unchanged if already parsed, else parse it."""
    if isinstance(code, IcdCode):
        return code
    return parse(code, form)


def is_valid(raw, form: str = "auto") -> bool:
    """True when `raw` parses. Never raises."""
    try:
        parse(raw, form)
    except ValueError:
        return False
    return True


def to_short(code, form: str = "auto") -> str:
    return coerce(code, form).short


def to_decimal(code, form: str = "auto") -> str:
    return coerce(code, form).decimal


def kind_of(code, form: str = "auto") -> CodeKind:
    return coerce(code, form).kind


def is_major(code, form: str = "auto") -> bool:
    return coerce(code, form).is_major


def compare(a, b, form: str = "auto") -> int:
    """
    Three-way comparison in the canonical total order.

    Numeric < V < E, then the major's number, then the minor with a code
    sorting before its own extensions ("428" < "428.0" < "428.00" < "428.1").
    Returns -1, 0 or 1.
    """
    ka = coerce(a, form).sort_key()
    kb = coerce(b, form).sort_key()
    return (ka > kb) - (ka < kb)


def sort_codes(codes, form: str = "auto") -> list:
    """Sort strings or IcdCodes into canonical order, keeping their type and duplicates."""
    return sorted(codes, key=lambda c: coerce(c, form).sort_key())


def in_reference(code: IcdCode, defined) -> bool:
    """Membership in a reference of defined codes.

    `defined` may be a LookupTable or any container of short strings,
    decimal strings or IcdCodes.
    """
    return code.short in defined or code.decimal in defined or code in defined


def check_codes(raws, form: str = "auto", defined=None) -> list[CodeCheck]:
    """
    Validate a batch of codes, one result per input.

    A bad item is reported in its own CodeCheck and never stops the rest.
    With a `defined` reference, valid codes missing from it are reported as
    UNDEFINED (the parsed code is still returned).
    """
    results = []
    for raw in raws:
        text = raw if isinstance(raw, str) else repr(raw)
        try:
            code = parse(raw, form)
        except InvalidCodeError as e:
            results.append(CodeCheck(raw=text, error=CodeError.INVALID, message=str(e)))
            continue
        except ValueError as e:
            results.append(CodeCheck(raw=text, error=CodeError.MALFORMED, message=str(e)))
            continue

        if defined is not None and not in_reference(code, defined):
            results.append(CodeCheck(
                raw=text, code=code, error=CodeError.UNDEFINED,
                message=f"{code.decimal} is not a defined ICD-9-CM code",
            ))
        else:
            results.append(CodeCheck(raw=text, code=code))
    return results


def get_invalid(raws, form: str = "auto") -> list:
    """The inputs that do not parse, in input order."""
    return [raw for raw in raws if not is_valid(raw, form)]
