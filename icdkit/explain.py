"""
Explain codes: attach human-readable descriptions from a LookupTable.
"""

import warnings

from icdkit.codes.hierarchy import condense as condense_codes
from icdkit.codes.parse import coerce
from icdkit.errors import UndefinedCodeWarning
from icdkit.lookup.table import LookupTable
from icdkit.models import IcdCode


def describe(code, table: LookupTable, form: str = "auto") -> str | None:
    """Description of one code, falling back to the majors table; None if undefined."""
    code = coerce(code, form)
    desc = table.get(code)
    if desc is None and code.is_major:
        desc = table.majors.get(code.short)
    return desc


def explain(codes, table: LookupTable, condense: bool = True, warn: bool = True, form: str = "auto") -> dict[str, str]:
    """
    Short code -> description for a set of codes, in canonical order.

    With `condense`, complete groups of defined children are first replaced
    by their parent, so explaining every 428.x code returns one line for 428.
    Malformed codes raise; codes missing from the table are left out with an
    UndefinedCodeWarning.
    """
    if isinstance(codes, (str, IcdCode)):
        codes = [codes]
    parsed = [coerce(c, form) for c in codes]
    parsed = condense_codes(parsed, defined=table) if condense else sorted(set(parsed))

    out = {}
    for code in parsed:
        desc = describe(code, table)
        if desc is None:
            if warn:
                warnings.warn(f"{code.decimal} is not a defined ICD-9-CM code", UndefinedCodeWarning, stacklevel=2)
            continue
        out[code.short] = desc
    return out
