"""
Course box construction.

A box is a dict with a "kind" discriminant:

  exact     one pinned module              {"module": {...}}
  dropdown  interchangeable options        {"options": [{...}, ...]}
  altPath   mutually exclusive sequences   {"paths": [{"id", "label", "boxes"}, ...]}

Tree shape → boxes:
  LEAF → one dropdown (options minus the leaf's exception modules)
  AND  → children flattened into one sibling sequence, no box of its own
  OR   → one altPath, one alternative per direct child
"""

from gmc_resolver import module_info
from requirements import (
    CORE_ESSENTIALS,
    LOGIC_AND,
    LOGIC_OR,
    RULE_MAX,
    SECTION_LABELS,
    compute_required_units,
    prettify,
    requirement_key,
)
from tree_evaluator import children_index, find_roots

BOX_EXACT = "exact"
BOX_DROPDOWN = "dropdown"
BOX_ALT_PATH = "altPath"
BOX_KINDS = (BOX_EXACT, BOX_DROPDOWN, BOX_ALT_PATH)


def form_exact_box(
    module: dict,
    box_key: str,
    programme_id: str,
    path_id: str | None = None,
    readonly: bool = False,
    is_preselected: bool = False,
    is_prerequisite: bool = False,
) -> dict:
    return {
        "kind": BOX_EXACT,
        "box_key": box_key,
        "path_id": path_id,
        "programme_id": programme_id,
        "module": module,
        "ui_label": f"{module['module_code']} - {module['title']}",
        "readonly": readonly,
        "is_preselected": is_preselected,
        "is_prerequisite": is_prerequisite,
    }


def form_dropdown_box(
    options: list[dict],
    box_key: str,
    programme_id: str,
    ui_label: str = "",
    path_id: str | None = None,
    readonly: bool = False,
) -> dict:
    return {
        "kind": BOX_DROPDOWN,
        "box_key": box_key,
        "path_id": path_id,
        "programme_id": programme_id,
        "options": options,
        "ui_label": ui_label,
        "readonly": readonly,
    }


def form_alt_path_box(
    paths: list[dict],
    box_key: str,
    programme_id: str,
    ui_label: str = "",
    path_id: str | None = None,
    readonly: bool = False,
) -> dict:
    return {
        "kind": BOX_ALT_PATH,
        "box_key": box_key,
        "path_id": path_id,
        "programme_id": programme_id,
        "paths": paths,
        "ui_label": ui_label,
        "readonly": readonly,
    }


def iter_box_codes(boxes: list[dict]):
    """Yield every module code a box sequence offers, descending into alternatives."""
    for box in boxes:
        kind = box["kind"]
        if kind == BOX_EXACT:
            yield box["module"]["module_code"]
        elif kind == BOX_DROPDOWN:
            for opt in box["options"]:
                yield opt["module_code"]
        elif kind == BOX_ALT_PATH:
            for alt in box["paths"]:
                yield from iter_box_codes(alt["boxes"])
        else:
            raise ValueError(f"Unknown box kind: {kind}")


def count_boxes(boxes: list[dict]) -> int:
    total = 0
    for box in boxes:
        if box["kind"] not in BOX_KINDS:
            raise ValueError(f"Unknown box kind: {box['kind']}")
        total += 1
        if box["kind"] == BOX_ALT_PATH:
            total += sum(count_boxes(alt["boxes"]) for alt in box["paths"])
    return total


def _renders(path: dict) -> bool:
    if path.get("is_overall_source"):
        return False
    if path["kind"] == "leaf" and path.get("rule_type") == RULE_MAX:
        return False
    return True


def build_boxes_for_path(
    path: dict,
    children: dict[str, list[dict]],
    programme_id: str,
    store,
    covered: set[str] | None = None,
) -> list[dict]:
    """
    Boxes for one processed path and its subtree.

    `covered` holds modules already pinned elsewhere in the section; they are
    dropped from leaf options, and a leaf fully covered by them renders nothing.
    """
    if not _renders(path):
        return []

    if path["kind"] == "leaf":
        excluded = set(path.get("exception_modules") or [])
        codes = [c for c in path.get("module_codes", []) if c not in excluded]
        if covered:
            if codes and all(c in covered for c in codes):
                return []
            codes = [c for c in codes if c not in covered]
        return [form_dropdown_box(
            [module_info(code, store) for code in codes],
            f"{path['path_key']}-dropdown",
            programme_id,
            ui_label=path["display_label"],
            path_id=path["path_id"],
            readonly=path.get("is_readonly", False),
        )]

    if path["kind"] != "group":
        raise ValueError(f"Unknown node kind: {path['kind']}")

    kids = children.get(path["path_key"], [])
    if path["logic"] == LOGIC_AND:
        boxes = []
        for child in kids:
            boxes.extend(build_boxes_for_path(child, children, programme_id, store, covered))
        return boxes

    if path["logic"] == LOGIC_OR:
        alternatives = [
            {
                "id": child["path_id"],
                "label": child["display_label"],
                "boxes": build_boxes_for_path(child, children, programme_id, store, covered),
            }
            for child in kids
        ]
        return [form_alt_path_box(
            alternatives,
            f"{path['path_key']}-altpath",
            programme_id,
            ui_label=path["display_label"],
            path_id=path["path_id"],
        )]

    raise ValueError(f"Unknown group logic: {path['logic']}")


def _preselected_boxes(programme: dict, section_paths: list[dict], store) -> list[dict]:
    """coreEssentials: every preselected module as a readonly exact box."""
    first = section_paths[0] if section_paths else None
    prerequisites = set(programme["prerequisite_modules"])
    boxes = []
    for code in programme["preselected_modules"]:
        is_prereq = code in prerequisites or first is None
        boxes.append(form_exact_box(
            module_info(code, store),
            f"prereq-{code}" if is_prereq else f"{first['path_key']}-{code}",
            programme["programme_id"],
            path_id=None if is_prereq else first["path_id"],
            readonly=True,
            is_preselected=True,
            is_prerequisite=code in prerequisites,
        ))
    return boxes


def build_section(group_type: str, section_paths: list[dict], programme: dict, store) -> dict:
    """One payload section: label, key, required units, path infos and boxes."""
    metadata = programme["metadata"]
    children = children_index(section_paths)
    roots = find_roots(section_paths)

    boxes = []
    covered = None
    if group_type == CORE_ESSENTIALS:
        boxes.extend(_preselected_boxes(programme, section_paths, store))
        covered = set(programme["preselected_modules"])

    for root in roots:
        boxes.extend(build_boxes_for_path(root, children, programme["programme_id"], store, covered))

    return {
        "group_type": group_type,
        "label": SECTION_LABELS.get(group_type) or prettify(group_type),
        "display_label": roots[0]["display_label"] if roots else SECTION_LABELS.get(group_type, ""),
        "requirement_key": requirement_key(metadata["name"], metadata["type"], group_type),
        "required_units": sum(compute_required_units(root, children) for root in roots),
        "paths": [
            {
                "path_id": p["path_id"],
                "path_key": p["path_key"],
                "parent_path_key": p["parent_path_key"],
                "display_label": p["display_label"],
                "logic_type": p["logic_type"],
                "rule_type": p.get("rule_type"),
                "rule_value": p.get("rule_value"),
                "required_units": p["required_units"],
                "depth": p["depth"],
                "group_type": p["group_type"],
                "raw_tag_name": p["raw_tag_name"],
            }
            for p in section_paths
        ],
        "boxes": boxes,
    }
