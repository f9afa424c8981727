from box_builder import build_section
from caps import apply_cap_rules
from double_count import analyze_double_count, build_path_mappings
from gmc_resolver import module_info
from payload_sanitizer import inject_prerequisite_boxes, prune_precluded_options
from processing_context import HARD_ERROR, make_error
from requirements import PROCESSING_ORDER
from tree_evaluator import build_path_hierarchy, evaluate_programme


class BackendPopulator:
    """
    Builds per-programme payloads for a validated ProcessingContext.

    Steps:
      1. Evaluate each programme's requirement tree (paths, max rules, tags)
      2. Build combination-scoped lookup maps
      3. Analyse double-count eligibility and cap usage
      4. Build sections and boxes per programme
      5. Post-pass: prerequisite injection and preclusion pruning
    """

    def __init__(self, context, store):
        self.context = context
        self.store = store
        self.module_tags: dict[str, list[str]] = {}
        self.lookup_maps: dict = {}

    def build_payloads(self) -> list[dict]:
        print("[INFO] Building payloads...")
        try:
            programmes = self.context.get_all_programmes()
            for programme in programmes:
                self._process_programme(programme)
                if self.context.has_fatal_errors():
                    return []

            self.lookup_maps = self.build_lookup_maps(programmes)

            payloads = [self._build_programme_payload(p) for p in programmes]

            preselected = set(self.context.get_preselected_modules())
            inject_prerequisite_boxes(
                payloads,
                self.store,
                preselected,
                self.lookup_maps["module_to_leaf_paths"],
            )
            preclusion_map = self.store.get_batch_preclusions(sorted(preselected))
            prune_precluded_options(payloads, preselected, preclusion_map, self.context, self.lookup_maps)
            if self.context.has_fatal_errors():
                return []

            print(f"[OK] Generated {len(payloads)} payload(s)")
            return payloads
        except Exception as exc:
            self.context.add_error(make_error(HARD_ERROR, f"Payload building failed: {exc}"))
            return []

    def _process_programme(self, programme: dict) -> None:
        pid = programme["programme_id"]
        rows = self.store.get_requirement_paths([pid])
        if not rows:
            self.context.add_error(make_error(
                HARD_ERROR,
                f"No requirement paths found for programme: {programme['metadata']['name']}",
                programme_ids=[pid],
            ))
            return

        result = evaluate_programme(pid, rows, self.store)
        programme["processed_paths"] = result["processed_paths"]
        programme["max_rules"] = result["max_rules"]
        programme["path_hierarchy"] = build_path_hierarchy(result["processed_paths"])
        for rule in result["max_rules"]:
            self.context.add_max_rule(rule)
        for code, tags in result["module_tags"].items():
            bucket = self.module_tags.setdefault(code, [])
            bucket.extend(t for t in tags if t not in bucket)

        self.context.increment_processed_paths(len(result["processed_paths"]))
        self.context.increment_processed_modules(result["modules_processed"])
        print(
            f"[INFO] {pid}: {len(result['processed_paths'])} path(s), "
            f"{len(result['max_rules'])} max rule(s)"
        )

    def build_lookup_maps(self, programmes: list[dict]) -> dict:
        module_to_leaf_paths, leaf_path_to_modules = build_path_mappings(programmes)

        preselected = set(self.context.get_preselected_modules())
        units = {code: module_info(code, self.store)["units"] for code in preselected}
        module_to_max_rules, max_rule_usage = apply_cap_rules(
            self.context.get_max_rules(),
            self.module_tags,
            units,
            preselected,
        )

        return {
            "module_to_leaf_paths": module_to_leaf_paths,
            "leaf_path_to_modules": leaf_path_to_modules,
            "module_to_max_rules": module_to_max_rules,
            "max_rule_usage": max_rule_usage,
            "double_count_eligibility": analyze_double_count(module_to_leaf_paths),
            "path_hierarchy": {p["programme_id"]: p["path_hierarchy"] for p in programmes},
        }

    def _build_programme_payload(self, programme: dict) -> dict:
        by_group: dict[str, list[dict]] = {}
        for path in programme["processed_paths"]:
            by_group.setdefault(path["group_type"], []).append(path)

        sections = []
        for group_type in PROCESSING_ORDER:
            paths = by_group.get(group_type, [])
            if not paths:
                continue
            section = build_section(group_type, paths, programme, self.store)
            if section["boxes"]:
                sections.append(section)

        return {
            "programme_id": programme["programme_id"],
            "metadata": dict(programme["metadata"]),
            "sections": sections,
            "preselected_modules": list(programme["preselected_modules"]),
            "prerequisite_modules": list(programme["prerequisite_modules"]),
            "injected_modules": [],
        }

    def get_validation_result(self) -> dict:
        return {
            "is_valid": not self.context.has_fatal_errors(),
            "errors": self.context.get_errors(),
            "summary": self.context.get_summary(),
        }
