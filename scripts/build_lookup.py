"""
Build the ICD-9-CM lookup table from a local copy of the CDC RTF tabular list.

Download and unzip Dtab12.rtf yourself (ftp.cdc.gov, NCHS ICD9-CM/2011);
this script never touches the network.

Usage:
    python scripts/build_lookup.py data/raw/Dtab12.rtf
    python scripts/build_lookup.py data/raw/Dtab12.rtf --output data/icd9cm.json
    python scripts/build_lookup.py data/raw/Dtab12.rtf --no-quirks -v
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from icdkit.lookup.builder import build_lookup
from icdkit.models import BuilderConfig


def main():
    parser = argparse.ArgumentParser(description="Parse the ICD-9-CM RTF tabular list into JSON")
    parser.add_argument("rtf", type=str, help="Path to the RTF file")
    parser.add_argument("--output", type=str, default="data/icd9cm.json", help="Output JSON path")
    parser.add_argument("--no-quirks", action="store_true", help="Skip the hand-checked corrections")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    rtf_path = Path(args.rtf)
    # 7-bit file with its own escapes for the few accented characters
    with open(rtf_path, encoding="ascii", errors="replace") as f:
        lines = f.read().splitlines()
    print(f"Read {len(lines)} lines from {rtf_path}")

    table = build_lookup(lines, BuilderConfig(apply_quirks=not args.no_quirks))

    output_path = project_root / args.output
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(table.to_dict(), f, indent=2, ensure_ascii=False)

    print(f"  Codes:        {len(table)}")
    print(f"  Majors:       {len(table.majors)}")
    print(f"  Sub-chapters: {len(table.sub_chapters)}")
    if table.warnings:
        print(f"  Warnings:     {len(table.warnings)}")
        for w in table.warnings:
            print(f"    - {w}")
    print(f"Saved to {output_path}")


if __name__ == "__main__":
    main()
