"""
Payload post-pass, run once all programme payloads are built.

1. Prerequisite injection: a preselected module whose prerequisite tree is
   not yet satisfied by the combination's selected modules gets readonly
   boxes for it (exact for a single module, dropdown for an OR of modules,
   altPath for nested OR / n-of structures).
2. Preclusion pruning: a module precluded by a preselected module is removed
   from every dropdown across all payloads, and any altPath alternative that
   needs it is dropped whole.
"""

import sys

from box_builder import (
    BOX_ALT_PATH,
    BOX_DROPDOWN,
    BOX_EXACT,
    form_alt_path_box,
    form_dropdown_box,
    form_exact_box,
    iter_box_codes,
)
from processing_context import HARD_ERROR, make_error
from prereq_parser import prereqs_satisfied
from requirements import (
    FALLBACK_SECTION,
    SECTION_LABELS,
    SECTION_PRIORITY,
    convert_to_id,
    requirement_key,
)


def ensure_core_others(payload: dict) -> dict:
    """Return the payload's coreOthers section, appending an empty one if missing."""
    for section in payload["sections"]:
        if section["group_type"] == FALLBACK_SECTION:
            return section
    metadata = payload["metadata"]
    section = {
        "group_type": FALLBACK_SECTION,
        "label": SECTION_LABELS[FALLBACK_SECTION],
        "display_label": SECTION_LABELS[FALLBACK_SECTION],
        "requirement_key": requirement_key(metadata["name"], metadata["type"], FALLBACK_SECTION),
        "required_units": 0,
        "paths": [],
        "boxes": [],
    }
    payload["sections"].append(section)
    return section


def choose_target_section(
    module_codes: list[str],
    payload: dict,
    module_to_leaf_paths: dict[str, list[dict]],
) -> dict:
    """
    Highest-priority existing section among the groups the modules belong to
    in this programme, else coreOthers.
    """
    pid = payload["programme_id"]
    groups = {
        mapping["group_type"]
        for code in module_codes
        for mapping in module_to_leaf_paths.get(code, [])
        if mapping["programme_id"] == pid
    }
    by_group = {s["group_type"]: s for s in payload["sections"]}
    for group_type in SECTION_PRIORITY:
        if group_type in groups and group_type in by_group:
            return by_group[group_type]
    return ensure_core_others(payload)


def _resolvable(code: str, store) -> dict | None:
    module = store.find_module(code)
    if module is None:
        print(f"[WARN] Prerequisite module {code} not found in catalog, skipping.", file=sys.stderr)
    return module


def prereq_boxes(
    parent: str,
    tree,
    key: str,
    programme_id: str,
    selected: set[str],
    store,
    in_alternative: bool = False,
) -> tuple[list[dict], set[str]]:
    """
    Boxes for one prerequisite tree of `parent`.

    Returns (boxes, added) where `added` holds modules newly pinned outside
    any alternative. `selected` is read, never mutated.
    """
    if isinstance(tree, str):
        tree = {"type": "single", "course": tree}
    t = tree.get("type")
    parent_id = convert_to_id(parent)

    if t == "none":
        return [], set()

    if t == "single":
        code = tree["course"]
        if code in selected:
            return [], set()
        module = _resolvable(code, store)
        if module is None:
            return [], set()
        box = form_exact_box(
            module,
            f"{key}-{parent_id}_prereq-{convert_to_id(code)}",
            programme_id,
            readonly=True,
            is_prerequisite=True,
        )
        return [box], (set() if in_alternative else {code})

    if t == "and":
        boxes, added = [], set()
        for child in tree["courses"]:
            child_boxes, child_added = prereq_boxes(
                parent, child, key, programme_id, selected | added, store, in_alternative
            )
            boxes.extend(child_boxes)
            added |= child_added
        return boxes, added

    if t == "or" and all(isinstance(c, str) for c in tree["courses"]):
        options = [m for m in (_resolvable(c, store) for c in tree["courses"]) if m is not None]
        if not options:
            return [], set()
        return [form_dropdown_box(
            options,
            f"{key}-{parent_id}_prereq-dropdown",
            programme_id,
            ui_label=f"{parent} - Choose a prerequisite",
            readonly=True,
        )], set()

    if t in ("or", "choose_n"):
        if t == "or":
            alt_key = f"{key}-{parent_id}_prereq-pathways"
            label = f"{parent} - Choose a prerequisite pathway"
        else:
            alt_key = f"{key}-{parent_id}_prereq-n_of-{tree['count']}"
            label = f"{parent} - Select any {tree['count']} prerequisites"
        alternatives = []
        for idx, child in enumerate(tree["courses"], start=1):
            alt_id = f"{alt_key}-{idx}"
            child_boxes, _ = prereq_boxes(parent, child, alt_id, programme_id, selected, store, True)
            if child_boxes:
                alternatives.append({"id": alt_id, "label": f"Option {idx}", "boxes": child_boxes})
        if not alternatives:
            return [], set()
        return [form_alt_path_box(alternatives, alt_key, programme_id, ui_label=label, readonly=True)], set()

    print(f"[WARN] Unsupported prerequisite structure for {parent}: {tree.get('raw', t)}", file=sys.stderr)
    return [], set()


def inject_prerequisite_boxes(
    payloads: list[dict],
    store,
    selected: set[str],
    module_to_leaf_paths: dict[str, list[dict]],
) -> set[str]:
    """
    Inject readonly prerequisite boxes for every preselected module whose
    prerequisites are not yet covered. Returns the full selected set,
    including modules pinned by injection.
    """
    selected = set(selected)
    for payload in payloads:
        pid = payload["programme_id"]
        trees = store.get_batch_prerequisite_trees(payload["preselected_modules"])
        for parent in payload["preselected_modules"]:
            tree = trees.get(parent)
            if tree is None or prereqs_satisfied(tree, selected):
                continue
            boxes, added = prereq_boxes(parent, tree, convert_to_id(pid), pid, selected, store)
            for box in boxes:
                target = choose_target_section(list(iter_box_codes([box])), payload, module_to_leaf_paths)
                box["box_key"] = f"{target['requirement_key']}-{box['box_key']}"
                target["boxes"].append(box)
                print(f"[INFO] Injected {box['kind']} prerequisite box for {parent} into {target['group_type']} of {pid}")
            for code in added:
                if code not in payload["injected_modules"]:
                    payload["injected_modules"].append(code)
            selected |= added
    return selected


def _prune_boxes(boxes: list[dict], precluded: set[str], in_alternative: bool) -> tuple[list[dict], int, bool]:
    """
    Returns (kept boxes, removed count, blocked). A sequence is blocked when
    it pins a precluded module or a choice in it has nothing left to pick.
    """
    kept, pruned, blocked = [], 0, False
    for box in boxes:
        kind = box["kind"]
        if kind == BOX_EXACT:
            code = box["module"]["module_code"]
            if code in precluded:
                if in_alternative:
                    blocked = True
                else:
                    print(
                        f"[WARN] Readonly box {box['box_key']} pins {code}, "
                        "which a preselected module precludes",
                        file=sys.stderr,
                    )
        elif kind == BOX_DROPDOWN:
            before = len(box["options"])
            box["options"] = [o for o in box["options"] if o["module_code"] not in precluded]
            pruned += before - len(box["options"])
            if before and not box["options"]:
                blocked = True
        elif kind == BOX_ALT_PATH:
            alternatives = []
            for alt in box["paths"]:
                alt["boxes"], n, alt_blocked = _prune_boxes(alt["boxes"], precluded, True)
                pruned += n
                if alt_blocked:
                    pruned += 1
                    print(f"[INFO] Dropped pathway {alt['id']} of {box['box_key']}: precluded module")
                else:
                    alternatives.append(alt)
            box["paths"] = alternatives
            if not alternatives:
                blocked = True
        else:
            raise ValueError(f"Unknown box kind: {kind}")
        kept.append(box)
    if blocked and not in_alternative:
        print("[WARN] A requirement was left without a legal choice after preclusion pruning", file=sys.stderr)
    return kept, pruned, blocked


def drop_precluded_from_lookups(lookup_maps: dict, precluded: set[str]) -> None:
    """Remove precluded modules from the combination lookup maps in place."""
    for name in ("module_to_leaf_paths", "double_count_eligibility", "module_to_max_rules"):
        table = lookup_maps.get(name, {})
        for code in precluded:
            table.pop(code, None)
    leaf_paths = lookup_maps.get("leaf_path_to_modules", {})
    for key, codes in leaf_paths.items():
        leaf_paths[key] = [c for c in codes if c not in precluded]


def prune_precluded_options(
    payloads: list[dict],
    selected: set[str],
    preclusion_map: dict[str, list[str]],
    context,
    lookup_maps: dict | None = None,
) -> int:
    """
    Remove modules precluded by selected modules from every payload.

    Dropdown options are filtered; an altPath alternative that pins a
    precluded module, or whose dropdown runs out of options, is dropped
    whole. When `lookup_maps` is given, precluded modules leave it too.

    A precluded module that is itself selected is a HARD_ERROR, reported once
    per unordered pair. Returns the number of options and pathways removed.
    """
    precluded: set[str] = set()
    seen_pairs: set[frozenset] = set()
    for code in sorted(selected):
        for other in preclusion_map.get(code, []):
            if other == code:
                continue
            if other in selected:
                pair = frozenset((code, other))
                if pair not in seen_pairs:
                    seen_pairs.add(pair)
                    context.add_error(make_error(
                        HARD_ERROR,
                        f"{code} and {other} are precluded but both selected after validation",
                        module_code=code,
                    ))
                continue
            precluded.add(other)

    total = 0
    for payload in payloads:
        for section in payload["sections"]:
            section["boxes"], n, _ = _prune_boxes(section["boxes"], precluded, False)
            total += n
    if lookup_maps is not None:
        drop_precluded_from_lookups(lookup_maps, precluded)
    if total:
        print(f"[INFO] Pruned {total} precluded option(s): {sorted(precluded)}")
    return total
