"""
Publish gate validator for programme requirement data.

Checks data-quality rules that must pass before a programme's requirement
tree is published. Designed to be importable for tests and runnable as a
standalone CLI.

Usage:
    python scripts/validate_programme.py --programme CS_MAJOR
    python scripts/validate_programme.py --programme CS_MAJOR --path path/to/data
    python scripts/validate_programme.py --all
"""

import argparse
import os
import sys

import pandas as pd


# ── Validation result ─────────────────────────────────────────────────────────

class ValidationResult:
    """Collects errors and warnings for a single programme validation run."""

    def __init__(self, programme_id: str):
        self.programme_id = programme_id
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def error(self, msg: str) -> None:
        self.errors.append(msg)

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        lines = [f"[{status}] Programme '{self.programme_id}'"]
        for e in self.errors:
            lines.append(f"  [ERROR] {e}")
        for w in self.warnings:
            lines.append(f"  [WARN]  {w}")
        if self.passed and not self.warnings:
            lines.append("  All checks passed.")
        return "\n".join(lines)


# ── Individual checks ─────────────────────────────────────────────────────────

def _programme_paths(programme_id: str, paths_df: pd.DataFrame) -> pd.DataFrame:
    return paths_df[paths_df["programme_id"] == programme_id]


def check_programme_exists(programme_id: str, programmes_df: pd.DataFrame, result: ValidationResult) -> None:
    """Programme must exist in the programmes table."""
    if programmes_df is None or len(programmes_df) == 0:
        result.error("No programmes table found or programmes table is empty.")
        return
    if programme_id not in set(programmes_df["id"].tolist()):
        result.error(f"Programme '{programme_id}' not found in programmes table.")


def check_paths_exist(programme_id: str, paths_df: pd.DataFrame, result: ValidationResult) -> None:
    """Programme must have at least one requirement path."""
    if len(_programme_paths(programme_id, paths_df)) == 0:
        result.error(f"No requirement paths defined for programme '{programme_id}'.")


def check_tree_structure(programme_id: str, paths_df: pd.DataFrame, result: ValidationResult) -> None:
    """
    Every non-root path has exactly one existing parent, one level deeper
    than it. Roots sit at depth 0.
    """
    rows = _programme_paths(programme_id, paths_df)
    if len(rows) == 0:
        return

    key_counts = rows["path_key"].value_counts()
    dup_keys = sorted(key_counts[key_counts > 1].index.tolist())
    if dup_keys:
        result.error(f"Duplicate path_key(s): {dup_keys}")

    depth_by_key = {row["path_key"]: row["depth"] for _, row in rows.iterrows()}
    group_by_key = {row["path_key"]: row["group_type"] for _, row in rows.iterrows()}
    for _, row in rows.iterrows():
        key = row["path_key"]
        parent = row["parent_path_key"]
        if not parent:
            if row["depth"] != 0:
                result.error(f"Root path '{key}' has depth {row['depth']}, expected 0.")
            continue
        if parent == key:
            result.error(f"Path '{key}' is its own parent.")
            continue
        if parent not in depth_by_key:
            result.error(f"Path '{key}' references unknown parent '{parent}'.")
            continue
        if row["depth"] != depth_by_key[parent] + 1:
            result.error(
                f"Path '{key}' has depth {row['depth']} but parent '{parent}' has depth {depth_by_key[parent]}."
            )
        if row["group_type"] != group_by_key[parent]:
            result.error(
                f"Path '{key}' is in group '{row['group_type']}' but parent '{parent}' "
                f"is in '{group_by_key[parent]}'."
            )


def check_leaf_rules(programme_id: str, paths_df: pd.DataFrame, result: ValidationResult) -> None:
    """Only LEAF rows carry module codes; readonly rows are leaves; groups have children."""
    rows = _programme_paths(programme_id, paths_df)
    parents = set(rows["parent_path_key"].tolist())
    for _, row in rows.iterrows():
        key = row["path_key"]
        is_leaf = row["logic_type"] == "LEAF"
        if not is_leaf and row["module_codes"]:
            result.error(f"Group path '{key}' ({row['logic_type']}) carries module codes.")
        if row["is_readonly"] and not is_leaf:
            result.error(f"Readonly path '{key}' is not a leaf.")
        if not is_leaf and key not in parents:
            result.error(f"Group path '{key}' ({row['logic_type']}) has no children.")
        if is_leaf and key in parents:
            result.error(f"Leaf path '{key}' has children.")
        if row["logic_type"] == "OR" and key in parents:
            n_children = len(rows[rows["parent_path_key"] == key])
            if n_children < 2:
                result.warn(f"OR path '{key}' has only {n_children} alternative.")
        if is_leaf and row["rule_type"] == "max" and (pd.isna(row["rule_value"]) or not row["rule_value"]):
            result.error(f"Max rule path '{key}' has no rule_value.")
        if is_leaf and len(row["module_types"]) > len(row["module_codes"]):
            result.warn(f"Leaf path '{key}' lists more module_types than module_codes.")


def check_no_orphan_modules(
    programme_id: str,
    paths_df: pd.DataFrame,
    catalog_codes: set[str],
    result: ValidationResult,
) -> None:
    """Exact module codes in leaves must exist in the modules table."""
    rows = _programme_paths(programme_id, paths_df)
    orphans = set()
    excluded_orphans = set()
    for _, row in rows.iterrows():
        types = row["module_types"]
        for i, code in enumerate(row["module_codes"]):
            gmc_type = types[i] if i < len(types) else "exact"
            if gmc_type == "exact" and code not in catalog_codes:
                orphans.add(code)
        excluded_orphans |= set(row["exception_modules"]) - catalog_codes
    if orphans:
        result.error(f"{len(orphans)} exact module(s) not found in modules table: {sorted(orphans)}")
    if excluded_orphans:
        result.warn(f"Exception module(s) not found in modules table: {sorted(excluded_orphans)}")


def check_gmc_mappings(
    programme_id: str,
    paths_df: pd.DataFrame,
    gmc_mappings_df: pd.DataFrame,
    result: ValidationResult,
) -> None:
    """Warn when a non-exact code has no stored mapping (catalog fallback applies)."""
    rows = _programme_paths(programme_id, paths_df)
    mapped = set()
    if gmc_mappings_df is not None and len(gmc_mappings_df) > 0:
        mine = gmc_mappings_df[gmc_mappings_df["programme_id"] == programme_id]
        mapped = set(mine["gmc_code"].tolist())
    unmapped = []
    approvals = []
    for _, row in rows.iterrows():
        types = row["module_types"]
        for i, code in enumerate(row["module_codes"]):
            gmc_type = types[i] if i < len(types) else "exact"
            if gmc_type == "exact":
                continue
            if gmc_type == "other":
                approvals.append(code)
            elif code not in mapped:
                unmapped.append(f"{code} ({gmc_type})")
    if unmapped:
        result.warn(f"Non-exact code(s) without gmc_mappings rows, catalog fallback will be used: {sorted(set(unmapped))}")
    if approvals:
        result.warn(f"'other' code(s) require manual approval: {sorted(set(approvals))}")


def check_dangling_preclusions(
    programme_id: str,
    paths_df: pd.DataFrame,
    preclusion_map: dict[str, list[str]],
    catalog_codes: set[str],
    result: ValidationResult,
) -> None:
    """Warn when a module in this programme precludes a module missing from the catalog."""
    rows = _programme_paths(programme_id, paths_df)
    codes = {code for _, row in rows.iterrows() for code in row["module_codes"]}
    dangling = set()
    for code in codes:
        for other in preclusion_map.get(code, []):
            if other not in catalog_codes:
                dangling.add((code, other))
    if dangling:
        result.warn(f"Preclusion(s) referencing unknown modules: {sorted(dangling)}")


# ── Main validate function ────────────────────────────────────────────────────

def validate_programme(programme_id: str, data: dict) -> ValidationResult:
    """Run all publish gate checks for a programme. Returns a ValidationResult."""
    result = ValidationResult(programme_id)
    paths_df = data["requirement_paths_df"]

    check_programme_exists(programme_id, data["programmes_df"], result)
    check_paths_exist(programme_id, paths_df, result)
    check_tree_structure(programme_id, paths_df, result)
    check_leaf_rules(programme_id, paths_df, result)
    check_no_orphan_modules(programme_id, paths_df, data["catalog_codes"], result)
    check_gmc_mappings(programme_id, paths_df, data.get("gmc_mappings_df"), result)
    check_dangling_preclusions(
        programme_id,
        paths_df,
        data.get("preclusion_map", {}),
        data["catalog_codes"],
        result,
    )
    return result


# ── CLI entry point ───────────────────────────────────────────────────────────

def main(args=None):
    parser = argparse.ArgumentParser(
        description="Validate programme requirement data before publishing.",
    )
    parser.add_argument("--programme", type=str, help="Programme ID to validate.")
    parser.add_argument("--all", action="store_true", help="Validate all programmes.")
    parser.add_argument(
        "--path", type=str,
        default=os.path.join(os.path.dirname(__file__), "..", "data"),
        help="Path to the data directory or workbook.",
    )
    opts = parser.parse_args(args)

    if not opts.programme and not opts.all:
        parser.error("Provide --programme PROGRAMME_ID or --all.")

    # Import data_loader (add backend/ to path)
    backend_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend")
    sys.path.insert(0, backend_dir)
    from data_loader import load_data

    data = load_data(opts.path)

    if opts.all:
        programme_ids = data["programmes_df"]["id"].tolist()
        if not programme_ids:
            print("[INFO] No programmes found in data.")
            return 0
    else:
        programme_ids = [opts.programme.strip()]

    all_passed = True
    for pid in programme_ids:
        result = validate_programme(pid, data)
        print(result.summary())
        if not result.passed:
            all_passed = False

    return 0 if all_passed else 1


if __name__ == "__main__":
    sys.exit(main())
