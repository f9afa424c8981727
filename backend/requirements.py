import re

# Programme kinds accepted in the programmes table.
PROGRAMME_TYPES = ("major", "secondMajor", "minor")

# Maximum number of programmes a single plan request may combine.
MAX_PROGRAMMES = 5

# Requirement group types.
COMMON_CORE = "commonCore"
CORE_ESSENTIALS = "coreEssentials"
CORE_ELECTIVES = "coreElectives"
CORE_SPECIALS = "coreSpecials"
CORE_OTHERS = "coreOthers"
UNRESTRICTED_ELECTIVES = "unrestrictedElectives"

# Canonical order in which requirement groups are evaluated and rendered.
# unrestrictedElectives is user-driven and never part of the payload.
PROCESSING_ORDER = (
    COMMON_CORE,
    CORE_ESSENTIALS,
    CORE_ELECTIVES,
    CORE_SPECIALS,
    CORE_OTHERS,
)

# Where injected prerequisite boxes go, highest priority first.
SECTION_PRIORITY = (
    COMMON_CORE,
    CORE_ESSENTIALS,
    CORE_ELECTIVES,
    CORE_SPECIALS,
)
FALLBACK_SECTION = CORE_OTHERS

SECTION_LABELS = {
    COMMON_CORE: "Common Curriculum",
    UNRESTRICTED_ELECTIVES: "Unrestricted Electives",
    CORE_ESSENTIALS: "Core Essentials",
    CORE_ELECTIVES: "Core Electives",
    CORE_SPECIALS: "Specialisations",
    CORE_OTHERS: "Others",
}

LOGIC_AND = "AND"
LOGIC_OR = "OR"
LOGIC_LEAF = "LEAF"
LOGIC_TYPES = {LOGIC_AND, LOGIC_OR, LOGIC_LEAF}

RULE_MIN = "min"
RULE_MAX = "max"

GMC_TYPES = {"exact", "wildcard", "variant", "other"}

# Units assumed for modules missing from the catalog (e.g. "other" tokens).
DEFAULT_MODULE_UNITS = 4


def convert_to_id(value: str) -> str:
    """
    Convert a label into key form: camelCase split, lower snake_case.

    Keys are chained with '-': underscores separate words, dashes separate
    key segments, e.g. "computer_science-major-core_essentials".
    """
    s = re.sub(r"([a-z])([A-Z])", r"\1 \2", str(value or ""))
    return re.sub(r"\s+", "_", s.lower().strip())


def prettify(value: str) -> str:
    """'coreElectives' / 'core_electives' -> 'Core electives' style label."""
    if not value:
        print(f"[WARN] prettify called with empty value: {value!r}")
        return ""
    s = str(value).replace("_", " ")
    s = re.sub(r"([a-z])([A-Z])", r"\1 \2", s).strip()
    return s[:1].upper() + s[1:]


def requirement_key(programme_name: str, programme_type: str, group_type: str) -> str:
    return f"{convert_to_id(programme_name)}-{convert_to_id(programme_type)}-{convert_to_id(group_type)}"


def compute_required_units(node: dict, children_by_parent: dict[str, list[dict]]) -> float:
    """
    Minimum units a requirement subtree demands.

      leaf  -> rule value when the rule is "min", 0 for "max" caps
      AND   -> sum of children
      OR    -> cheapest child
    """
    if node["kind"] == "leaf":
        if node.get("rule_type") == RULE_MAX or node.get("is_overall_source"):
            return 0
        return node.get("required_units") or 0

    children = children_by_parent.get(node["path_key"], [])
    if not children:
        return node.get("required_units") or 0
    needs = [compute_required_units(child, children_by_parent) for child in children]
    if node["logic_type"] == LOGIC_AND:
        return sum(needs)
    return min(needs)
