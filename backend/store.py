from prereq_parser import RULE_SIMPLE
from requirements import DEFAULT_MODULE_UNITS


def _plain(value):
    """numpy scalar → Python scalar, NaN → None (keeps records JSON-safe)."""
    if hasattr(value, "item") and not isinstance(value, (list, dict, str)):
        value = value.item()
    if isinstance(value, float):
        if value != value:
            return None
        if value.is_integer():
            return int(value)
    return value


def _record(row) -> dict:
    return {k: _plain(row[k]) for k in row.index}


def _module_summary(row) -> dict:
    units = _plain(row.get("module_credit"))
    return {
        "module_code": str(row["module_code"]),
        "title": str(row.get("title", "") or ""),
        "units": units if units is not None else DEFAULT_MODULE_UNITS,
    }


def _path_record(row) -> dict:
    rec = _record(row)
    for col in ("module_codes", "module_types", "exception_modules"):
        rec[col] = list(rec.get(col) or [])
    return rec


class DataStore:
    """
    Read-only query surface over the loaded dataset.

    Every query takes a list and answers for the whole batch in one call.
    Results are fresh objects; callers may mutate them freely.
    """

    def __init__(self, data: dict):
        self._data = data
        self._programmes = data["programmes_df"]
        self._programme_preclusions = data["programme_preclusions_df"]
        self._paths = data["requirement_paths_df"]
        self._modules = data["modules_df"].set_index("module_code", drop=False)
        self._gmc = data["gmc_mappings_df"]
        self._rules = data["prereq_rules_df"]
        self._catalog_codes = set(data["catalog_codes"])
        self._prereq_map = data["prereq_map"]
        self._preclusion_map = data["preclusion_map"]

    @property
    def catalog_codes(self) -> set[str]:
        return set(self._catalog_codes)

    # ── Programme store ─────────────────────────────────────────────────────
    def get_programmes(self, programme_ids: list[str] | None = None) -> list[dict]:
        """Programme metadata, in request order. Unknown ids are omitted."""
        df = self._programmes
        if programme_ids is None:
            return [_record(row) for _, row in df.iterrows()]
        by_id = {row["id"]: _record(row) for _, row in df[df["id"].isin(programme_ids)].iterrows()}
        return [by_id[pid] for pid in programme_ids if pid in by_id]

    def get_programme_preclusions(self, programme_ids: list[str]) -> list[dict]:
        """Preclusion rows where both sides are among the given programmes."""
        df = self._programme_preclusions
        wanted = set(programme_ids)
        hits = df[df["programme_id"].isin(wanted) & df["precluded_programme_id"].isin(wanted)]
        return [_record(row) for _, row in hits.iterrows()]

    # ── Requirement path store ──────────────────────────────────────────────
    def get_requirement_paths(self, programme_ids: list[str]) -> list[dict]:
        df = self._paths[self._paths["programme_id"].isin(programme_ids)]
        df = df.sort_values("depth", kind="stable")
        return [_path_record(row) for _, row in df.iterrows()]

    # ── Catalog lookup ──────────────────────────────────────────────────────
    def validate_module_codes(self, module_codes: list[str]) -> set[str]:
        return {code for code in module_codes if code in self._catalog_codes}

    def get_modules_by_prefix(self, prefix: str) -> list[dict]:
        prefix = str(prefix or "").strip().upper()
        if not prefix:
            return []
        hits = self._modules[self._modules["module_code"].str.startswith(prefix)]
        return [_module_summary(row) for _, row in hits.sort_values("module_code").iterrows()]

    def find_module(self, module_code: str) -> dict | None:
        if module_code not in self._modules.index:
            return None
        return _module_summary(self._modules.loc[module_code])

    # ── GMC mapping store ───────────────────────────────────────────────────
    def get_gmc_mappings(self, programme_ids: list[str], gmc_codes: list[str] | None = None) -> list[dict]:
        df = self._gmc[self._gmc["programme_id"].isin(programme_ids)]
        if gmc_codes is not None:
            df = df[df["gmc_code"].isin(gmc_codes)]
        return [_record(row) for _, row in df.iterrows()]

    # ── Prerequisite / preclusion store ─────────────────────────────────────
    def get_batch_simple_prerequisites(self, module_codes: list[str]) -> dict[str, list[str]]:
        """module_code → required modules, for "simple" rules only."""
        if len(self._rules) == 0:
            return {}
        df = self._rules[
            self._rules["module_code"].isin(module_codes) & (self._rules["rule_type"] == RULE_SIMPLE)
        ]
        result: dict[str, list[str]] = {}
        for _, row in df.iterrows():
            result.setdefault(row["module_code"], []).extend(row["required_modules"])
        return result

    def get_batch_prerequisite_trees(self, module_codes: list[str]) -> dict[str, dict]:
        """module_code → parsed prerequisite tree, skipping modules without one."""
        result = {}
        for code in module_codes:
            tree = self._prereq_map.get(code)
            if tree and tree.get("type") != "none":
                result[code] = tree
        return result

    def get_batch_preclusions(self, module_codes: list[str]) -> dict[str, list[str]]:
        return {
            code: list(self._preclusion_map[code])
            for code in module_codes
            if self._preclusion_map.get(code)
        }
