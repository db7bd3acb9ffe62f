"""
Flag comorbidities for visits listed in a CSV file.

The CSV needs `visit_id` and `code` columns and may carry a `poa` column.
The map is a JSON object of group name -> list of codes or ranges,
e.g. {"CHF": ["428", "402.01", "402.11"], "Renal": ["585-586"]}.

Usage:
    python scripts/map_comorbid.py visits.csv map.json
    python scripts/map_comorbid.py visits.csv map.json --poa not_no
    python scripts/map_comorbid.py visits.csv map.json --sort --output flags.json
"""

import argparse
import csv
import json
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from icdkit.comorbid.mapper import ComorbidityMap, load_records, map_comorbidities
from icdkit.models import PoaFilter


def main():
    parser = argparse.ArgumentParser(description="Map visit diagnosis codes to comorbidity groups")
    parser.add_argument("visits", type=str, help="CSV with visit_id, code[, poa] columns")
    parser.add_argument("map", type=str, help="JSON comorbidity map")
    parser.add_argument("--poa", type=str, choices=[f.value for f in PoaFilter], default=None,
                        help="Present-on-arrival filter")
    parser.add_argument("--sort", action="store_true", help="Sort rows by visit id")
    parser.add_argument("--output", type=str, default=None, help="Write JSON rows here instead of stdout")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    with open(args.map, encoding="utf-8") as f:
        cmap = ComorbidityMap(json.load(f))

    with open(args.visits, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    records, rejected = load_records(rows)
    print(f"Loaded {len(records)} records ({len(rejected)} rejected) from {args.visits}", file=sys.stderr)
    for check in rejected:
        print(f"  {check.raw!r}: {check.message}", file=sys.stderr)

    result = map_comorbidities(records, cmap, poa_filter=args.poa, sort_visits=args.sort)
    rows_out = result.as_rows()

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(rows_out, f, indent=2, default=str)
        print(f"Saved {len(rows_out)} visits to {args.output}", file=sys.stderr)
    else:
        writer = csv.DictWriter(sys.stdout, fieldnames=["visit_id", *result.groups])
        writer.writeheader()
        writer.writerows(rows_out)


if __name__ == "__main__":
    main()
