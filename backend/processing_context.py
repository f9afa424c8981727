import time

HARD_ERROR = "HARD_ERROR"
INVALID_PROGRAMME_COMBINATION = "INVALID_PROGRAMME_COMBINATION"
SOFT_ERROR = "SOFT_ERROR"

ERROR_TYPES = (HARD_ERROR, INVALID_PROGRAMME_COMBINATION, SOFT_ERROR)
FATAL_ERROR_TYPES = (HARD_ERROR, INVALID_PROGRAMME_COMBINATION)


def make_error(
    error_type: str,
    message: str,
    programme_ids: list[str] | None = None,
    module_code: str | None = None,
    path_id: str | None = None,
) -> dict:
    if error_type not in ERROR_TYPES:
        raise ValueError(f"Unknown error type: {error_type}")
    error = {"type": error_type, "message": message}
    if programme_ids is not None:
        error["programme_ids"] = list(programme_ids)
    if module_code is not None:
        error["module_code"] = module_code
    if path_id is not None:
        error["path_id"] = path_id
    return error


def new_processed_programme(programme: dict) -> dict:
    """Empty per-programme record, filled in by the validator and populator."""
    return {
        "programme_id": programme["id"],
        "metadata": {
            "name": programme.get("name", programme["id"]),
            "type": programme.get("type", ""),
            "required_units": programme.get("required_units", 0),
            "double_count_cap": programme.get("double_count_cap", 0),
            "honours": bool(programme.get("honours", False)),
        },
        "processed_paths": [],
        "max_rules": [],
        "preselected_modules": [],
        "prerequisite_modules": [],
        "path_hierarchy": {},
    }


class ProcessingContext:
    """
    Per-request state shared by the validator and the populator.

    Created fresh for each plan request and discarded afterwards. Components
    append to it instead of raising.
    """

    def __init__(self):
        self.programmes: dict[str, dict] = {}
        self.preselected_modules: dict[str, list[str]] = {}
        self.max_rules: list[dict] = []
        self.errors: list[dict] = []
        self.stats = {
            "processed_paths": 0,
            "processed_modules": 0,
            "start_time": time.perf_counter(),
        }

    # ── Programmes ──────────────────────────────────────────────────────────
    def add_programme(self, programme: dict) -> None:
        self.programmes[programme["programme_id"]] = programme

    def get_programme(self, programme_id: str) -> dict | None:
        return self.programmes.get(programme_id)

    def get_all_programmes(self) -> list[dict]:
        return list(self.programmes.values())

    def get_programme_ids(self) -> list[str]:
        return list(self.programmes.keys())

    # ── Preselected modules ─────────────────────────────────────────────────
    def add_preselected_module(self, module_code: str, programme_id: str) -> None:
        owners = self.preselected_modules.setdefault(module_code, [])
        if programme_id not in owners:
            owners.append(programme_id)

    def get_preselected_modules(self) -> dict[str, list[str]]:
        return {code: list(owners) for code, owners in self.preselected_modules.items()}

    def is_module_preselected(self, module_code: str) -> bool:
        return module_code in self.preselected_modules

    def get_programmes_for_module(self, module_code: str) -> list[str]:
        return list(self.preselected_modules.get(module_code, []))

    # ── Max rules ───────────────────────────────────────────────────────────
    def add_max_rule(self, max_rule: dict) -> None:
        self.max_rules.append(max_rule)

    def get_max_rules(self) -> list[dict]:
        return list(self.max_rules)

    def get_max_rules_for_module(self, module_code: str) -> list[dict]:
        return [rule for rule in self.max_rules if module_code in rule["affected_modules"]]

    # ── Errors ──────────────────────────────────────────────────────────────
    def add_error(self, error: dict) -> None:
        self.errors.append(error)

    def get_errors(self) -> list[dict]:
        return list(self.errors)

    def get_errors_by_type(self, error_type: str) -> list[dict]:
        return [e for e in self.errors if e["type"] == error_type]

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def has_fatal_errors(self) -> bool:
        return any(e["type"] in FATAL_ERROR_TYPES for e in self.errors)

    def clear_errors(self) -> None:
        self.errors = []

    def check_preselected_conflicts(self, preclusion_map: dict[str, list[str]]) -> list[dict]:
        """
        One INVALID_PROGRAMME_COMBINATION per unordered pair of preselected
        modules that preclude each other.
        """
        conflicts = []
        seen_pairs: set[frozenset] = set()
        for module_code, owners in self.preselected_modules.items():
            for precluded in preclusion_map.get(module_code, []):
                if precluded == module_code or precluded not in self.preselected_modules:
                    continue
                pair = frozenset((module_code, precluded))
                if pair in seen_pairs:
                    continue
                seen_pairs.add(pair)
                programme_ids = list(owners)
                for pid in self.preselected_modules[precluded]:
                    if pid not in programme_ids:
                        programme_ids.append(pid)
                conflicts.append(make_error(
                    INVALID_PROGRAMME_COMBINATION,
                    f"{module_code} and {precluded} are precluded but both required",
                    programme_ids=programme_ids,
                    module_code=module_code,
                ))
        return conflicts

    # ── Stats ───────────────────────────────────────────────────────────────
    def increment_processed_paths(self, count: int = 1) -> None:
        self.stats["processed_paths"] += count

    def increment_processed_modules(self, count: int = 1) -> None:
        self.stats["processed_modules"] += count

    def get_processing_stats(self) -> dict:
        return {
            "processed_paths": self.stats["processed_paths"],
            "processed_modules": self.stats["processed_modules"],
            "total_programmes": len(self.programmes),
            "total_preselected": len(self.preselected_modules),
            "total_max_rules": len(self.max_rules),
            "total_errors": len(self.errors),
            "processing_time_ms": round((time.perf_counter() - self.stats["start_time"]) * 1000.0, 1),
        }

    def get_summary(self) -> dict:
        return {
            "programmes": [
                {
                    "id": p["programme_id"],
                    "name": p["metadata"]["name"],
                    "type": p["metadata"]["type"],
                }
                for p in self.programmes.values()
            ],
            "preselected_count": len(self.preselected_modules),
            "max_rules_count": len(self.max_rules),
            "errors_count": len(self.errors),
            "is_valid": not self.has_fatal_errors(),
        }
