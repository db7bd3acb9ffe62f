"""
Present-on-arrival (POA) flags.

Claims data carry POA as a one-letter token. Tokens map onto the six flags:

    Y, YES, TRUE            -> YES
    N, NO, FALSE            -> NO
    X, NA, N/A              -> NOT_APPLICABLE
    E, 1, EXEMPT            -> EXEMPT
    U, W, UNKNOWN           -> UNKNOWN
    None, "", NaN           -> MISSING

Matching is case-insensitive and ignores surrounding whitespace.
"""

import math

from icdkit.models import PoaFilter, PoaFlag


POA_TOKENS = {
    "Y": PoaFlag.YES,
    "YES": PoaFlag.YES,
    "TRUE": PoaFlag.YES,
    "N": PoaFlag.NO,
    "NO": PoaFlag.NO,
    "FALSE": PoaFlag.NO,
    "X": PoaFlag.NOT_APPLICABLE,
    "NA": PoaFlag.NOT_APPLICABLE,
    "N/A": PoaFlag.NOT_APPLICABLE,
    "E": PoaFlag.EXEMPT,
    "1": PoaFlag.EXEMPT,
    "EXEMPT": PoaFlag.EXEMPT,
    "U": PoaFlag.UNKNOWN,
    "W": PoaFlag.UNKNOWN,  # clinically undetermined
    "UNKNOWN": PoaFlag.UNKNOWN,
}


def parse_poa(token) -> PoaFlag:
    """Map a raw POA token to a PoaFlag. Raises ValueError for unknown tokens."""
    if isinstance(token, PoaFlag):
        return token
    if token is None or (isinstance(token, float) and math.isnan(token)):
        return PoaFlag.MISSING
    if isinstance(token, bool):
        return PoaFlag.YES if token else PoaFlag.NO

    text = str(token).strip().upper()
    if not text:
        return PoaFlag.MISSING
    try:
        return POA_TOKENS[text]
    except KeyError:
        try:
            return PoaFlag(text.lower())
        except ValueError:
            raise ValueError(f"Unrecognized present-on-arrival token: {token!r}") from None


def poa_passes(flag: PoaFlag, poa_filter: PoaFilter | None) -> bool:
    """Whether a record with `flag` survives `poa_filter` (None keeps everything)."""
    if poa_filter is None:
        return True
    if poa_filter is PoaFilter.YES:
        return flag is PoaFlag.YES
    if poa_filter is PoaFilter.NO:
        return flag is PoaFlag.NO
    if poa_filter is PoaFilter.NOT_YES:
        return flag is not PoaFlag.YES
    return flag is not PoaFlag.NO
