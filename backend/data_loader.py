import os
import sys
import pandas as pd
from normalizer import normalize_code
from prereq_parser import parse_prereqs, classify_prereq_rule
from requirements import (
    DEFAULT_MODULE_UNITS,
    GMC_TYPES,
    LOGIC_LEAF,
    LOGIC_TYPES,
    PROGRAMME_TYPES,
)


_BOOL_TRUTHY = {"true", "1", "yes", "y"}

REQUIRED_TABLES = ("programmes", "requirement_paths", "modules")
OPTIONAL_TABLES = ("programme_preclusions", "gmc_mappings")

_OPTIONAL_COLUMNS = {
    "programme_preclusions": ["programme_id", "precluded_programme_id", "reason"],
    "gmc_mappings": ["programme_id", "gmc_code", "gmc_type", "module_code"],
}


def _safe_bool_col(df: pd.DataFrame, col: str) -> pd.DataFrame:
    """Normalize a boolean column to Python bool regardless of source format.

    Handles: Python bool, int/float (1/0), and string variants
    (TRUE/FALSE, true/false, 1/0, yes/no, y/n). NaN/blank → False.
    """
    def _coerce(x):
        if x is None:
            return False
        if isinstance(x, bool):
            return x
        if isinstance(x, (int, float)):
            return False if pd.isna(x) else bool(x)
        return str(x).strip().lower() in _BOOL_TRUTHY

    if col in df.columns:
        df[col] = df[col].apply(_coerce)
    else:
        df[col] = False
    return df


def _safe_num(val, default=None):
    if val is None or isinstance(val, (list, dict)):
        return default
    if isinstance(val, str) and not val.strip():
        return default
    try:
        num = float(val)
    except (TypeError, ValueError):
        return default
    if pd.isna(num):
        return default
    return int(num) if num.is_integer() else num


def _split_list(val) -> list[str]:
    """';'-separated cell (or an already-split list) → list of stripped strings."""
    if val is None:
        return []
    if isinstance(val, (list, tuple)):
        items = val
    else:
        if isinstance(val, float) and pd.isna(val):
            return []
        items = str(val).split(";")
    return [str(item).strip() for item in items if str(item).strip()]


def _clean_str(val) -> str:
    if val is None or (isinstance(val, float) and pd.isna(val)):
        return ""
    return str(val).strip()


def _normalize_module_code(raw) -> str:
    raw = _clean_str(raw)
    return normalize_code(raw) or raw.upper()


def _normalize_programme_type(raw) -> str:
    """Normalize programme kind to one of: major, secondMajor, minor."""
    k = _clean_str(raw).lower().replace("-", " ").replace("_", " ")
    if k in {"major", "maj", "first major", "primary major"}:
        return "major"
    if k in {"secondmajor", "second major", "2nd major", "double major"}:
        return "secondMajor"
    if k in {"minor", "min"}:
        return "minor"
    return k


def _normalize_programmes_df(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    if "id" not in df.columns and "programme_id" in df.columns:
        df = df.rename(columns={"programme_id": "id"})
    for col in ("id", "name", "type"):
        if col not in df.columns:
            df[col] = ""
    df["id"] = df["id"].apply(_clean_str)
    df["name"] = df["name"].apply(_clean_str)
    df["name"] = df.apply(lambda r: r["name"] or r["id"], axis=1) if len(df) else df["name"]
    df["type"] = df["type"].apply(_normalize_programme_type)
    df["required_units"] = df.get("required_units", pd.Series([None] * len(df), index=df.index)).apply(
        lambda v: _safe_num(v, 0)
    )
    df["double_count_cap"] = df.get("double_count_cap", pd.Series([None] * len(df), index=df.index)).apply(
        lambda v: _safe_num(v, 0)
    )
    df = _safe_bool_col(df, "honours")

    bad_types = df[~df["type"].isin(PROGRAMME_TYPES)]
    if len(bad_types) > 0:
        print(
            f"[WARN] {len(bad_types)} programme(s) with unknown type: "
            f"{sorted(bad_types['id'].tolist())}",
            file=sys.stderr,
        )
    df = df[df["id"] != ""]
    return df[["id", "name", "type", "required_units", "double_count_cap", "honours"]].reset_index(drop=True)


def _normalize_paths_df(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    for col in (
        "id", "programme_id", "path_key", "parent_path_key", "display_label",
        "logic_type", "rule_type", "group_type", "raw_tag_name",
    ):
        if col not in df.columns:
            df[col] = ""
        df[col] = df[col].apply(_clean_str)

    df["logic_type"] = df["logic_type"].str.upper()
    df["rule_type"] = df["rule_type"].str.lower()
    for col in ("module_codes", "module_types", "exception_modules"):
        if col not in df.columns:
            df[col] = [[] for _ in range(len(df))]
        df[col] = df[col].apply(_split_list)
    df["module_types"] = df["module_types"].apply(lambda types: [t.lower() for t in types])
    df["exception_modules"] = df["exception_modules"].apply(
        lambda codes: [_normalize_module_code(c) for c in codes]
    )

    for col in ("is_leaf", "is_readonly", "is_overall_source"):
        df = _safe_bool_col(df, col)

    # Blank logic on a leaf row means LEAF.
    leaf_blank = (df["logic_type"] == "") & df["is_leaf"]
    df.loc[leaf_blank, "logic_type"] = LOGIC_LEAF
    df["is_leaf"] = df["is_leaf"] | (df["logic_type"] == LOGIC_LEAF)

    df["rule_value"] = df.get("rule_value", pd.Series([None] * len(df), index=df.index)).apply(_safe_num)
    df["required_units"] = df.get("required_units", pd.Series([None] * len(df), index=df.index)).apply(_safe_num)
    df["depth"] = df.get("depth", pd.Series([0] * len(df), index=df.index)).apply(lambda v: _safe_num(v, 0))

    bad_logic = df[~df["logic_type"].isin(LOGIC_TYPES)]
    if len(bad_logic) > 0:
        raise ValueError(
            f"Unknown logic_type on requirement path(s): "
            f"{sorted(bad_logic['id'].tolist())} ({sorted(set(bad_logic['logic_type']))})"
        )

    df = df.sort_values(["programme_id", "depth"], kind="stable").reset_index(drop=True)
    return df


def _normalize_modules_df(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    if "module_code" not in df.columns:
        raise ValueError("modules table has no 'module_code' column.")
    df["module_code"] = df["module_code"].apply(_normalize_module_code)
    df = df[df["module_code"] != ""]
    for col in ("title", "prerequisite"):
        if col not in df.columns:
            df[col] = ""
        df[col] = df[col].apply(_clean_str)
    df["module_credit"] = df.get("module_credit", pd.Series([None] * len(df), index=df.index)).apply(
        lambda v: _safe_num(v, DEFAULT_MODULE_UNITS)
    )
    if "preclusion" not in df.columns:
        df["preclusion"] = [[] for _ in range(len(df))]
    df["preclusion"] = df["preclusion"].apply(
        lambda cell: [_normalize_module_code(c) for c in _split_list(cell)]
    )
    df = df.drop_duplicates(subset=["module_code"], keep="first")
    return df[["module_code", "title", "module_credit", "prerequisite", "preclusion"]].reset_index(drop=True)


def _normalize_gmc_df(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    for col in _OPTIONAL_COLUMNS["gmc_mappings"]:
        if col not in df.columns:
            df[col] = ""
        df[col] = df[col].apply(_clean_str)
    df["gmc_type"] = df["gmc_type"].str.lower()
    df["module_code"] = df["module_code"].apply(_normalize_module_code)
    unknown = df[~df["gmc_type"].isin(GMC_TYPES)]
    if len(unknown) > 0:
        print(
            f"[WARN] {len(unknown)} gmc_mappings row(s) with unknown gmc_type dropped: "
            f"{sorted(set(unknown['gmc_type']))}",
            file=sys.stderr,
        )
        df = df[df["gmc_type"].isin(GMC_TYPES)]
    return df.drop_duplicates().reset_index(drop=True)


def _normalize_programme_preclusions_df(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    for col in _OPTIONAL_COLUMNS["programme_preclusions"]:
        if col not in df.columns:
            df[col] = ""
        df[col] = df[col].apply(_clean_str)
    df = df[(df["programme_id"] != "") & (df["precluded_programme_id"] != "")]
    return df.reset_index(drop=True)


def _build_preclusion_map(modules_df: pd.DataFrame) -> dict[str, list[str]]:
    """module_code → precluded module codes. Preclusion is symmetric."""
    pairs: dict[str, set[str]] = {}
    for _, row in modules_df.iterrows():
        code = row["module_code"]
        for other in row["preclusion"]:
            if not other or other == code:
                continue
            pairs.setdefault(code, set()).add(other)
            pairs.setdefault(other, set()).add(code)
    return {code: sorted(others) for code, others in pairs.items()}


def _build_prereq_rules(prereq_map: dict) -> pd.DataFrame:
    """One rule row per module that has a prerequisite."""
    rows = []
    for code, parsed in prereq_map.items():
        rule_type = classify_prereq_rule(parsed)
        if rule_type is None:
            continue
        rows.append({
            "module_code": code,
            "rule_type": rule_type,
            "required_modules": _rule_required_modules(parsed),
        })
    if not rows:
        return pd.DataFrame(columns=["module_code", "rule_type", "required_modules"])
    return pd.DataFrame(rows)


def _rule_required_modules(parsed: dict) -> list[str]:
    t = parsed.get("type")
    if t == "single":
        return [parsed["course"]]
    if t in {"and", "or", "choose_n"}:
        return [c for c in parsed.get("courses", []) if isinstance(c, str)]
    return []


def _read_tables(data_path: str) -> dict[str, pd.DataFrame]:
    """Read raw tables from a CSV directory or an .xlsx workbook."""
    if not os.path.exists(data_path):
        raise FileNotFoundError(f"Data path not found: {data_path}")

    tables: dict[str, pd.DataFrame] = {}
    wanted = REQUIRED_TABLES + OPTIONAL_TABLES
    if os.path.isdir(data_path):
        for name in wanted:
            csv_path = os.path.join(data_path, f"{name}.csv")
            if os.path.isfile(csv_path):
                tables[name] = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
    else:
        xl = pd.ExcelFile(data_path)
        for name in wanted:
            if name in xl.sheet_names:
                tables[name] = xl.parse(name, dtype=str).fillna("")

    missing = [name for name in REQUIRED_TABLES if name not in tables]
    if missing:
        raise FileNotFoundError(f"Required table(s) missing from {data_path}: {missing}")
    return tables


def build_data(tables: dict[str, pd.DataFrame]) -> dict:
    """Normalize raw tables into the runtime dataset used by the store."""
    missing = [name for name in REQUIRED_TABLES if name not in tables]
    if missing:
        raise ValueError(f"Required table(s) missing: {missing}")

    programmes_df = _normalize_programmes_df(tables["programmes"])
    paths_df = _normalize_paths_df(tables["requirement_paths"])
    modules_df = _normalize_modules_df(tables["modules"])

    programme_preclusions_df = _normalize_programme_preclusions_df(
        tables.get("programme_preclusions", pd.DataFrame(columns=_OPTIONAL_COLUMNS["programme_preclusions"]))
    )
    gmc_mappings_df = _normalize_gmc_df(
        tables.get("gmc_mappings", pd.DataFrame(columns=_OPTIONAL_COLUMNS["gmc_mappings"]))
    )

    catalog_codes = set(modules_df["module_code"].tolist())

    prereq_map: dict = {}
    for _, row in modules_df.iterrows():
        prereq_map[row["module_code"]] = parse_prereqs(row.get("prerequisite", "none"))
    prereq_rules_df = _build_prereq_rules(prereq_map)
    preclusion_map = _build_preclusion_map(modules_df)

    # ── Startup data integrity checks ──────────────────────────────────────
    path_keys = set(zip(paths_df["programme_id"], paths_df["path_key"]))
    dangling = [
        row["id"] for _, row in paths_df.iterrows()
        if row["parent_path_key"] and (row["programme_id"], row["parent_path_key"]) not in path_keys
    ]
    if dangling:
        print(f"[WARN] {len(dangling)} requirement path(s) reference unknown parents: {sorted(dangling)}", file=sys.stderr)

    exact_codes = set()
    for _, row in paths_df.iterrows():
        types = row["module_types"]
        for i, code in enumerate(row["module_codes"]):
            if (types[i] if i < len(types) else "exact") == "exact":
                exact_codes.add(code)
    orphaned = exact_codes - catalog_codes
    if orphaned:
        print(f"[WARN] {len(orphaned)} exact module code(s) in requirement paths not found in modules: {sorted(orphaned)}", file=sys.stderr)

    unsupported = [code for code, p in prereq_map.items() if p["type"] == "unsupported"]
    if unsupported:
        print(f"[WARN] {len(unsupported)} module(s) have unsupported prerequisite format (manual review required): {sorted(unsupported)}", file=sys.stderr)

    return {
        "programmes_df": programmes_df,
        "programme_preclusions_df": programme_preclusions_df,
        "requirement_paths_df": paths_df,
        "modules_df": modules_df,
        "gmc_mappings_df": gmc_mappings_df,
        "prereq_rules_df": prereq_rules_df,
        "catalog_codes": catalog_codes,
        "prereq_map": prereq_map,
        "preclusion_map": preclusion_map,
    }


def load_data(data_path: str) -> dict:
    """Load and normalize the programme dataset. Raises on file/schema errors."""
    data = build_data(_read_tables(data_path))
    print(
        f"[INFO] Loaded {len(data['programmes_df'])} programmes, "
        f"{len(data['requirement_paths_df'])} requirement paths, "
        f"{len(data['catalog_codes'])} modules"
    )
    return data
