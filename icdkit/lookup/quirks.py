"""
Hand-checked corrections for the 2011 tabular list.

These are the codes the general parse gets wrong because the source
document formats them unlike everything else. Keys are decimal codes.
"""

import re


# Episode-of-care digits 2 and 4 don't apply to these obstetric categories
INVALID_EPISODE = re.compile(r"^65[12356789]\.[0-9][24]$")

OVERRIDES = {
    # 657 has no fourth-digit subdivisions but takes fifth digits directly on .0
    "657.0": "Polyhydramnios",
    "657.00": "Polyhydramnios, unspecified as to episode of care or not applicable",
    "657.01": "Polyhydramnios, delivered, with or without mention of antepartum condition",
    "657.03": "Polyhydramnios, antepartum condition or complication",
    "719.69": "Other symptoms referable to joint, multiple sites",
    "807.19": "Open fracture of multiple ribs, unspecified",
    "E849": "Place of occurrence",
}

# Majors the document lists without the usual heading layout
MISSING_MAJORS = {
    "E849": "Place of occurrence",
}

# The supplementary V and E classifications are chapters, not sub-chapters
NOT_SUB_CHAPTERS = (
    "Supplementary Classification Of Factors Influencing Health Status And Contact With Health Services",
    "Supplementary Classification Of External Causes Of Injury And Poisoning",
)

# Code lines where the description runs straight into the code: "707.02Upper back"
FUSED_CODE = re.compile(r"(70[0-9]\.[0-9]{2}|066\.40)([A-Za-z])")
