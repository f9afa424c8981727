from requirements import COMMON_CORE


def leaf_path_mapping(programme_id: str, path: dict) -> dict:
    return {
        "path_key": f"{programme_id}:{path['path_key']}",
        "programme_id": programme_id,
        "display_label": path["display_label"],
        "group_type": path["group_type"],
        "raw_tag_name": path["raw_tag_name"],
        "required_units": path["required_units"],
    }


def build_path_mappings(programmes: list[dict]) -> tuple[dict[str, list[dict]], dict[str, list[str]]]:
    """
    Module ↔ leaf-path maps for the selected combination.

    Returns (module_to_leaf_paths, leaf_path_to_modules). Leaf path keys are
    qualified as "<programme_id>:<path_key>" so equal keys in different
    programmes stay apart.
    """
    module_to_leaf_paths: dict[str, list[dict]] = {}
    leaf_path_to_modules: dict[str, list[str]] = {}

    for programme in programmes:
        pid = programme["programme_id"]
        for path in programme["processed_paths"]:
            if path["kind"] != "leaf":
                continue
            mapping = leaf_path_mapping(pid, path)
            leaf_path_to_modules[mapping["path_key"]] = list(path["module_codes"])
            for code in path["module_codes"]:
                module_to_leaf_paths.setdefault(code, []).append(mapping)

    return module_to_leaf_paths, leaf_path_to_modules


def _double_count_info(leaf_paths: list[dict]) -> dict:
    by_programme: dict[str, list[dict]] = {}
    for mapping in leaf_paths:
        by_programme.setdefault(mapping["programme_id"], []).append(mapping)

    cross_eligible = len(by_programme) >= 2

    intra_paths = []
    for paths in by_programme.values():
        if len(paths) < 2:
            continue
        has_common_core = any(p["group_type"] == COMMON_CORE for p in paths)
        has_other = any(p["group_type"] != COMMON_CORE for p in paths)
        if has_common_core and has_other:
            intra_paths.extend(paths)
    intra_eligible = len(intra_paths) >= 2

    # Upper bound only: the two kinds are reported independently.
    max_possible = int(cross_eligible) + int(intra_eligible)

    return {
        "cross_programme_eligible": cross_eligible,
        "cross_programme_paths": list(leaf_paths) if cross_eligible else [],
        "intra_programme_eligible": intra_eligible,
        "intra_programme_paths": intra_paths,
        "all_eligible_paths": list(leaf_paths) if (cross_eligible or intra_eligible) else [],
        "max_possible_double_count": max_possible,
        "eligible_programmes": list(by_programme.keys()),
    }


def analyze_double_count(module_to_leaf_paths: dict[str, list[dict]]) -> dict[str, dict]:
    """Double-count eligibility for every module in the combination."""
    return {code: _double_count_info(paths) for code, paths in module_to_leaf_paths.items()}
