import sys

from prereq_closure import resolve_prerequisite_closure
from processing_context import (
    HARD_ERROR,
    INVALID_PROGRAMME_COMBINATION,
    SOFT_ERROR,
    ProcessingContext,
    make_error,
    new_processed_programme,
)
from requirements import CORE_ESSENTIALS


def direct_preselected_modules(rows: list[dict]) -> list[str]:
    """
    Exact-GMC module codes from readonly coreEssentials leaves, in row order.

    Non-exact codes in those leaves are left to the payload builder.
    """
    codes: list[str] = []
    for row in rows:
        if not (row.get("is_leaf") and row.get("is_readonly") and row.get("group_type") == CORE_ESSENTIALS):
            continue
        types = list(row.get("module_types") or [])
        for i, code in enumerate(row.get("module_codes") or []):
            gmc_type = types[i] if i < len(types) else "exact"
            if gmc_type == "exact" and code not in codes:
                codes.append(code)
    return codes


class ProgrammeValidator:
    """
    Validates a programme combination and resolves preselected modules.

    Order:
      1. every id exists                        (HARD_ERROR)
      2. at most one major                      (INVALID_PROGRAMME_COMBINATION)
      3. no programme-level preclusion pair     (INVALID_PROGRAMME_COMBINATION)
      4. per programme: preselected modules + simple-prerequisite closure
      5. module-level preclusions across the whole combination
    """

    def __init__(self, store, context: ProcessingContext | None = None):
        self.store = store
        self.context = context or ProcessingContext()

    def validate_programmes(self, programme_ids: list[str]) -> ProcessingContext:
        try:
            programmes = self._check_programmes_exist(programme_ids)
            if self.context.has_fatal_errors():
                return self.context

            self._check_major_count(programmes)
            if self.context.has_fatal_errors():
                return self.context

            self._check_programme_preclusions(programme_ids)
            if self.context.has_fatal_errors():
                return self.context

            for programme in programmes:
                self._process_programme(programme)
                if self.context.has_fatal_errors():
                    return self.context

            self._check_module_preclusions()
        except Exception as exc:
            self.context.add_error(make_error(HARD_ERROR, f"Validation failed: {exc}"))
        return self.context

    def _check_programmes_exist(self, programme_ids: list[str]) -> list[dict]:
        programmes = self.store.get_programmes(programme_ids)
        found = {p["id"] for p in programmes}
        missing = [pid for pid in programme_ids if pid not in found]
        if missing:
            self.context.add_error(make_error(
                HARD_ERROR,
                f"Programme(s) not found: {', '.join(missing)}",
                programme_ids=missing,
            ))
        return programmes

    def _check_major_count(self, programmes: list[dict]) -> None:
        majors = [p for p in programmes if p.get("type") == "major"]
        if len(majors) > 1:
            self.context.add_error(make_error(
                INVALID_PROGRAMME_COMBINATION,
                f"Only one major can be selected, got {len(majors)}: "
                + ", ".join(p.get("name") or p["id"] for p in majors),
                programme_ids=[p["id"] for p in majors],
            ))

    def _check_programme_preclusions(self, programme_ids: list[str]) -> None:
        seen: set[frozenset] = set()
        for row in self.store.get_programme_preclusions(programme_ids):
            a, b = row["programme_id"], row["precluded_programme_id"]
            pair = frozenset((a, b))
            if a == b or pair in seen:
                continue
            seen.add(pair)
            reason = row.get("reason") or ""
            message = f"Programmes {a} and {b} cannot be taken together"
            if reason:
                message = f"{message}: {reason}"
            self.context.add_error(make_error(
                INVALID_PROGRAMME_COMBINATION,
                message,
                programme_ids=[a, b],
            ))

    def _process_programme(self, programme: dict) -> None:
        processed = new_processed_programme(programme)
        pid = processed["programme_id"]
        rows = self.store.get_requirement_paths([pid])
        direct = direct_preselected_modules(rows)

        closure = resolve_prerequisite_closure(self.store, direct)
        if not closure["complete"]:
            self.context.add_error(make_error(
                SOFT_ERROR,
                f"Prerequisite resolution incomplete for {pid}: {closure['error']}",
                programme_ids=[pid],
            ))

        processed["preselected_modules"] = closure["closure"]
        processed["prerequisite_modules"] = closure["prerequisites"]
        for code in closure["closure"]:
            self.context.add_preselected_module(code, pid)
        self.context.add_programme(processed)
        print(
            f"[INFO] {pid}: {len(closure['closure'])} preselected module(s), "
            f"{len(closure['prerequisites'])} from prerequisites"
        )

    def _check_module_preclusions(self) -> None:
        preselected = sorted(self.context.get_preselected_modules())
        if not preselected:
            return
        preclusion_map = self.store.get_batch_preclusions(preselected)
        for error in self.context.check_preselected_conflicts(preclusion_map):
            self.context.add_error(error)
        conflicts = self.context.get_errors_by_type(INVALID_PROGRAMME_COMBINATION)
        if conflicts:
            print(f"[WARN] {len(conflicts)} preselected module conflict(s) found", file=sys.stderr)
