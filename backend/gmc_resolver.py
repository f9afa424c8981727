"""
General Module Code (GMC) resolution.

A GMC is a pattern in a requirement leaf:
  exact     CS2040S      → that module, if the catalog has it
  wildcard  CS3          → every catalog module starting with the prefix,
                           excluding suffixed variants (CS3230 yes, CS3230R no)
  variant   CS1010       → the base code and all of its suffixed variants
  other     UPIP         → a placeholder that needs manual approval
"""

import re

from requirements import DEFAULT_MODULE_UNITS, GMC_TYPES

PLACEHOLDER_TITLE = "Undefined - Please check relevant website"

_VARIANT_SUFFIX_RE = re.compile(r'[A-Z]$')


def to_gmc(code: str, gmc_type: str = "exact") -> dict:
    """Build a GMC record from a stored (code, type) pair."""
    code = str(code or "").strip().upper()
    gmc_type = str(gmc_type or "exact").strip().lower()
    if gmc_type == "exact":
        return {"type": "exact", "code": code}
    if gmc_type == "wildcard":
        return {"type": "wildcard", "prefix": code}
    if gmc_type == "variant":
        return {"type": "variant", "base_code": code}
    if gmc_type == "other":
        return {"type": "other", "code": code}
    raise ValueError(f"Unknown GMC type '{gmc_type}' for code '{code}' (expected one of {sorted(GMC_TYPES)})")


def gmc_code(gmc: dict) -> str:
    return gmc.get("code") or gmc.get("prefix") or gmc.get("base_code") or ""


def placeholder_module(code: str) -> dict:
    return {"module_code": code, "title": PLACEHOLDER_TITLE, "units": DEFAULT_MODULE_UNITS}


def match_general_code(gmc: dict, store) -> list[dict]:
    """Module summaries matched by one GMC against the catalog."""
    t = gmc["type"]
    if t == "exact":
        found = store.find_module(gmc["code"])
        return [found] if found else []
    if t == "wildcard":
        return [
            m for m in store.get_modules_by_prefix(gmc["prefix"])
            if not _VARIANT_SUFFIX_RE.search(m["module_code"])
        ]
    if t == "variant":
        return store.get_modules_by_prefix(gmc["base_code"])
    if t == "other":
        return [placeholder_module(gmc["code"])]
    raise ValueError(f"Unknown GMC type: {t}")


def collect(gmcs: list[dict], store) -> list[dict]:
    """Union of matches for several GMCs; a module appears once even when rules overlap."""
    seen: set[str] = set()
    result = []
    for gmc in gmcs:
        for mod in match_general_code(gmc, store):
            if mod["module_code"] in seen:
                continue
            seen.add(mod["module_code"])
            result.append(mod)
    return result


def index_gmc_mappings(rows: list[dict]) -> dict[tuple[str, str], list[dict]]:
    """(programme_id, gmc_code) → mapping rows, preserving row order."""
    index: dict[tuple[str, str], list[dict]] = {}
    for row in rows:
        index.setdefault((row["programme_id"], row["gmc_code"]), []).append(row)
    return index


def map_gmcs_to_modules(
    gmcs: list[dict],
    programme_id: str,
    store,
    mapping_index: dict[tuple[str, str], list[dict]] | None = None,
) -> tuple[list[dict], list[str]]:
    """
    Resolve the GMCs of one leaf path.

    Exact codes are confirmed against the catalog in one batch. Non-exact
    codes use the programme's stored mappings first and fall back to the
    catalog matcher when none exist.

    Returns (mappings, module_codes) where mappings are
    {gmc_code, gmc_type, module_code, requires_approval} records and
    module_codes is their de-duplicated module list in first-seen order.
    """
    if mapping_index is None:
        non_exact = [gmc_code(g) for g in gmcs if g["type"] != "exact"]
        rows = store.get_gmc_mappings([programme_id], non_exact) if non_exact else []
        mapping_index = index_gmc_mappings(rows)

    exact_codes = [g["code"] for g in gmcs if g["type"] == "exact"]
    existing = store.validate_module_codes(exact_codes) if exact_codes else set()

    mappings: list[dict] = []
    module_codes: list[str] = []
    seen: set[str] = set()

    def _add(code: str, gmc: dict, requires_approval: bool):
        mappings.append({
            "gmc_code": gmc_code(gmc),
            "gmc_type": gmc["type"],
            "module_code": code,
            "requires_approval": requires_approval,
        })
        if code not in seen:
            seen.add(code)
            module_codes.append(code)

    for gmc in gmcs:
        if gmc["type"] == "exact":
            if gmc["code"] in existing:
                _add(gmc["code"], gmc, False)
            continue

        rows = mapping_index.get((programme_id, gmc_code(gmc)), [])
        if rows:
            for row in rows:
                code = row["module_code"]
                in_catalog = bool(store.validate_module_codes([code]))
                _add(code, gmc, gmc["type"] == "other" and not in_catalog)
            continue

        for mod in match_general_code(gmc, store):
            _add(mod["module_code"], gmc, gmc["type"] == "other")

    return mappings, module_codes


def module_info(module_code: str, store) -> dict:
    """Catalog summary for a module, or the approval placeholder."""
    return store.find_module(module_code) or placeholder_module(module_code)
