"""
Exception and warning types.

Validation helpers (`is_valid`, `check_codes`) never raise; everything else
reports bad input through these types. Each error keeps the offending value
on `.value` so batch callers can report it.
"""


class Icd9Error(Exception):
    """Base class for all ICD-9 errors raised by icdkit."""

    def __init__(self, message: str, value=None):
        super().__init__(message)
        self.value = value


class MalformedCodeError(Icd9Error, ValueError):
    """The string cannot be read as an ICD-9 code at all."""


class InvalidCodeError(Icd9Error, ValueError):
    """The string is code-shaped but falls outside the ICD-9 code space (e.g. V99)."""


class RangeKindMismatchError(Icd9Error, ValueError):
    """Range endpoints are of different kinds (numeric, V or E)."""


class RangeOrderError(Icd9Error, ValueError):
    """Range start sorts after range end."""


class UnresolvedQualifierReference(Icd9Error):
    """A fourth/fifth-digit footnote block has no usable base code or range."""


class UndefinedCodeWarning(UserWarning):
    """A syntactically valid code is not defined in the reference table."""
