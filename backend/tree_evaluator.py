"""
Requirement tree evaluation.

Stored requirement-path rows are parsed once into closed node variants:

  {"kind": "group", "logic": "AND" | "OR", ...}
  {"kind": "leaf", "rule_type": "min" | "max", "gmcs": [...], ...}

The walk is a plain recursion: every call returns a partial result
(processed paths, max rules, module tags) that the caller merges, so no
state is shared between sibling subtrees.
"""

from gmc_resolver import gmc_code, index_gmc_mappings, map_gmcs_to_modules, to_gmc
from requirements import (
    LOGIC_AND,
    LOGIC_LEAF,
    LOGIC_OR,
    PROCESSING_ORDER,
    RULE_MAX,
    RULE_MIN,
)


def _common_fields(row: dict) -> dict:
    rule_value = row.get("rule_value")
    required = row.get("required_units")
    if required is None:
        required = rule_value if rule_value is not None else 0
    return {
        "path_id": str(row["id"]),
        "programme_id": row.get("programme_id", ""),
        "path_key": row["path_key"],
        "parent_path_key": row.get("parent_path_key") or None,
        "display_label": row.get("display_label") or row["path_key"],
        "group_type": row.get("group_type", ""),
        "raw_tag_name": row.get("raw_tag_name", ""),
        "logic_type": row.get("logic_type", ""),
        "depth": int(row.get("depth") or 0),
        "is_readonly": bool(row.get("is_readonly", False)),
        "is_overall_source": bool(row.get("is_overall_source", False)),
        "required_units": required,
    }


def parse_path_row(row: dict) -> dict:
    """Stored row → group or leaf node. Unknown logic types raise ValueError."""
    logic = str(row.get("logic_type") or "").upper()
    node = _common_fields(row)
    node["logic_type"] = logic

    if logic in (LOGIC_AND, LOGIC_OR):
        node["kind"] = "group"
        node["logic"] = logic
        return node

    if logic == LOGIC_LEAF:
        codes = list(row.get("module_codes") or [])
        types = list(row.get("module_types") or [])
        types += ["exact"] * (len(codes) - len(types))
        node["kind"] = "leaf"
        node["rule_type"] = str(row.get("rule_type") or RULE_MIN).lower()
        node["rule_value"] = row.get("rule_value")
        node["gmcs"] = [to_gmc(code, gmc_type) for code, gmc_type in zip(codes, types)]
        node["exception_modules"] = list(row.get("exception_modules") or [])
        return node

    raise ValueError(f"Unknown logic_type '{row.get('logic_type')}' on requirement path {row.get('id')}")


def children_index(nodes: list[dict]) -> dict[str, list[dict]]:
    """parent path_key → child nodes in row order."""
    children: dict[str, list[dict]] = {}
    for node in nodes:
        parent = node.get("parent_path_key")
        if parent:
            children.setdefault(parent, []).append(node)
    return children


def find_roots(nodes: list[dict]) -> list[dict]:
    """Nodes with no parent, or whose parent is not among the given nodes."""
    keys = {n["path_key"] for n in nodes}
    return [n for n in nodes if not n.get("parent_path_key") or n["parent_path_key"] not in keys]


def build_path_hierarchy(paths: list[dict]) -> dict[str, list[str]]:
    """parent path_key → child path ids, used to rebuild the tree client-side."""
    hierarchy: dict[str, list[str]] = {}
    for path in paths:
        parent = path.get("parent_path_key")
        if parent:
            hierarchy.setdefault(parent, []).append(path["path_id"])
    return hierarchy


def _empty_result() -> dict:
    return {"processed_paths": [], "max_rules": [], "module_tags": {}, "modules_processed": 0}


def merge_results(acc: dict, part: dict) -> dict:
    acc["processed_paths"].extend(part["processed_paths"])
    acc["max_rules"].extend(part["max_rules"])
    for code, tags in part["module_tags"].items():
        bucket = acc["module_tags"].setdefault(code, [])
        for tag in tags:
            if tag not in bucket:
                bucket.append(tag)
    acc["modules_processed"] += part["modules_processed"]
    return acc


def _evaluate_leaf(node: dict, programme_id: str, store, mapping_index: dict) -> dict:
    result = _empty_result()
    mappings, codes = [], []
    if node["gmcs"]:
        mappings, codes = map_gmcs_to_modules(node["gmcs"], programme_id, store, mapping_index)
    excluded = set(node["exception_modules"])
    codes = [c for c in codes if c not in excluded]

    path = dict(node, module_codes=codes, gmc_mappings=mappings)
    result["processed_paths"].append(path)
    result["modules_processed"] = len(codes)

    tag = f"{programme_id}:{node['path_key']}"
    for code in codes:
        result["module_tags"][code] = [tag]

    if node["rule_type"] == RULE_MAX:
        result["max_rules"].append({
            "max_rule_id": f"{programme_id}_{node['path_id']}",
            "path_id": node["path_id"],
            "path_key": node["path_key"],
            "display_label": node["display_label"],
            "max_units": node.get("rule_value") or 0,
            "parent_group_type": node["group_type"],
            "affected_modules": list(codes),
            "tag": tag,
        })
    return result


def evaluate_node(
    node: dict,
    children: dict[str, list[dict]],
    programme_id: str,
    store,
    mapping_index: dict,
) -> dict:
    """Depth-first evaluation of one subtree. Returns a fresh partial result."""
    if node["kind"] == "leaf":
        return _evaluate_leaf(node, programme_id, store, mapping_index)
    if node["kind"] != "group":
        raise ValueError(f"Unknown node kind: {node['kind']}")

    result = _empty_result()
    result["processed_paths"].append(dict(node, module_codes=[], gmc_mappings=[]))
    for child in children.get(node["path_key"], []):
        merge_results(result, evaluate_node(child, children, programme_id, store, mapping_index))
    return result


def evaluate_programme(programme_id: str, rows: list[dict], store) -> dict:
    """
    Evaluate every requirement group of one programme in canonical order.

    Returns:
      {
        "processed_paths":   [...],  # group and leaf paths, leaves carry module_codes
        "max_rules":         [...],
        "module_tags":       {module_code: ["<programme_id>:<path_key>", ...]},
        "modules_processed": int,
      }
    """
    nodes = [parse_path_row(row) for row in rows if row.get("group_type") in PROCESSING_ORDER]

    non_exact = sorted({
        gmc_code(g) for n in nodes if n["kind"] == "leaf" for g in n["gmcs"] if g["type"] != "exact"
    })
    rows_for_gmcs = store.get_gmc_mappings([programme_id], non_exact) if non_exact else []
    mapping_index = index_gmc_mappings(rows_for_gmcs)

    result = _empty_result()
    for group_type in PROCESSING_ORDER:
        group_nodes = [n for n in nodes if n["group_type"] == group_type]
        children = children_index(group_nodes)
        for root in find_roots(group_nodes):
            merge_results(result, evaluate_node(root, children, programme_id, store, mapping_index))
    return result
