"""
Migrate a programme workbook (.xlsx) → data/ directory of CSV files.

Only the sheets the loader reads are exported; any other sheet is reported
and skipped.

Usage:
    python scripts/migrate_xlsx_to_csv.py --src PATH [--out DIR]

Defaults:
    --out  data/  (repo root)
"""

import argparse
import os
import sys

import pandas as pd

KNOWN_SHEETS = (
    "programmes",
    "programme_preclusions",
    "requirement_paths",
    "modules",
    "gmc_mappings",
)


def migrate(src: str, out_dir: str) -> list[str]:
    """Write one CSV per known sheet. Returns the sheet names written."""
    if not os.path.isfile(src):
        print(f"[FATAL] Source file not found: {src}", file=sys.stderr)
        sys.exit(1)

    os.makedirs(out_dir, exist_ok=True)

    xl = pd.ExcelFile(src)
    sheets = xl.sheet_names
    print(f"[INFO] Found {len(sheets)} sheets in '{src}'")

    written = []
    for sheet in sheets:
        if sheet not in KNOWN_SHEETS:
            print(f"[WARN] Skipping unknown sheet '{sheet}'", file=sys.stderr)
            continue
        df = xl.parse(sheet, dtype=str).fillna("")
        dest = os.path.join(out_dir, f"{sheet}.csv")
        df.to_csv(dest, index=False)
        written.append(sheet)
        print(f"[OK]   {sheet} → {dest}  ({len(df)} rows)")

    missing = [s for s in ("programmes", "requirement_paths", "modules") if s not in written]
    if missing:
        print(f"[WARN] Required sheet(s) missing from workbook: {missing}", file=sys.stderr)

    print(f"[INFO] Migration complete. {len(written)} CSVs written to '{out_dir}'")
    return written


if __name__ == "__main__":
    repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    parser = argparse.ArgumentParser(description="Migrate xlsx workbook to CSV directory.")
    parser.add_argument("--src", required=True, help="Source xlsx file")
    parser.add_argument(
        "--out",
        default=os.path.join(repo_root, "data"),
        help="Output directory for CSV files",
    )
    args = parser.parse_args()
    migrate(args.src, args.out)
