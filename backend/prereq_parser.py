import re
import pandas as pd
from normalizer import normalize_code

# Case-insensitive OR splitter (preserves token casing before normalize_code())
OR_SPLIT = re.compile(r'\s+or\s+', re.IGNORECASE)
CHOOSE_N_FROM_RE = re.compile(
    r'^(?:any\s+)?(?P<count>\d+|one|two|three|four|five)\s+(?:courses?|modules?)\s+from\s*:?\s*(?P<options>.+)$',
    re.IGNORECASE,
)
CHOOSE_N_SHORT_RE = re.compile(
    r'^choose\s+(?P<count>\d+|one|two|three|four|five)\s+from\s*:?\s*(?P<options>.+)$',
    re.IGNORECASE,
)

# Regex to strip parenthetical annotation clauses, e.g. "(may be taken concurrently)"
ANNOTATION_RE = re.compile(r'\s*\([^)]*\)')

# Grade suffix used by catalog exports, e.g. "CS1010:D"
GRADE_SUFFIX_RE = re.compile(r':[A-Za-z+\-]+$')

# Signals that the prerequisite string contains unsupported grammar.
UNSUPPORTED_SIGNALS = [
    "permission",
    "concurrent",
    "minimum grade",
    "standing",
    "instructor",
    "co-req",
    "coreq",
    "admitted",
    "enrolment",
    "enrollment",
    "consent",
    "placement",
]

NONE_VALUES = {"none", "none listed", "n/a", "nil", ""}
COUNT_WORDS = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
}

# Rule classification derived from a parsed tree. Only "simple" rules take
# part in automatic prerequisite closure.
RULE_SIMPLE = "simple"
RULE_SIMPLE_AND = "simple_and"
RULE_COMPLEX_AND = "complex_and"
RULE_SIMPLE_OR = "simple_or"
RULE_COMPLEX_OR = "complex_or"
RULE_N_OF = "n_of"
RULE_UNSUPPORTED = "unsupported"


def _clean_token(token: str) -> str:
    token = GRADE_SUFFIX_RE.sub('', token.strip())
    return normalize_code(token) or token


def _parse_count_token(token: str) -> int | None:
    raw = str(token or "").strip().lower()
    if raw.isdigit():
        return int(raw)
    return COUNT_WORDS.get(raw)


def _parse_choose_n_from(s: str) -> dict | None:
    for pattern in (CHOOSE_N_FROM_RE, CHOOSE_N_SHORT_RE):
        match = pattern.match(s)
        if not match:
            continue
        count = _parse_count_token(match.group("count"))
        options_raw = str(match.group("options") or "").strip().rstrip(".")
        tokens = [_clean_token(c) for c in re.split(r'\s+or\s+|,', options_raw, flags=re.IGNORECASE)]
        tokens = [t for t in tokens if t]
        if count is None or count <= 0 or len(tokens) < count:
            return {"type": "unsupported", "raw": s}
        if count == 1 and len(tokens) == 1:
            return {"type": "single", "course": tokens[0]}
        return {"type": "choose_n", "count": count, "courses": tokens}
    return None


def _strip_annotations(s: str) -> str:
    """Remove parenthetical annotation clauses, e.g. '(may be taken concurrently)'."""
    return ANNOTATION_RE.sub('', s).strip()


def parse_prereqs(prereq_str) -> dict:
    """
    Parses a module's prerequisite field (machine-parsable grammar only).

    Supported grammar:
      none / nil               → {"type": "none"}
      CODE                     → {"type": "single", "course": "CS1010"}
      CODE;CODE;...            → {"type": "and", "courses": [...]}
      CODE or CODE             → {"type": "or", "courses": [...]}
      Two modules from: ...    → {"type": "choose_n", "count": 2, "courses": [...]}

    An AND clause may itself be an OR ("CS1010 or CS1101S; MA1521").
    Grade suffixes ("CS1010:D") and parenthetical annotations are stripped.

    Anything else →            {"type": "unsupported", "raw": "<original string>"}
    """
    if prereq_str is None or (isinstance(prereq_str, float) and pd.isna(prereq_str)):
        return {"type": "none"}

    s = str(prereq_str).strip()

    if s.lower() in NONE_VALUES:
        return {"type": "none"}

    if "(" in s:
        stripped = _strip_annotations(s)
        if stripped and not any(sig in stripped.lower() for sig in UNSUPPORTED_SIGNALS):
            return parse_prereqs(stripped)
        return {"type": "unsupported", "raw": s}

    s_lower = s.lower()
    for signal in UNSUPPORTED_SIGNALS:
        if signal in s_lower:
            return {"type": "unsupported", "raw": s}

    choose_n = _parse_choose_n_from(s)
    if choose_n is not None:
        return choose_n

    if ";" in s:
        raw_tokens = [c.strip() for c in s.split(";")]
        clauses = []
        for tok in raw_tokens:
            if not tok:
                continue
            if OR_SPLIT.search(tok):
                or_parts = [_clean_token(p) for p in OR_SPLIT.split(tok)]
                or_parts = [p for p in or_parts if p]
                if len(or_parts) == 1:
                    clauses.append(or_parts[0])
                else:
                    clauses.append({"type": "or", "courses": or_parts})
            else:
                clauses.append(_clean_token(tok))
        if len(clauses) == 1:
            if isinstance(clauses[0], dict):
                return clauses[0]
            return {"type": "single", "course": clauses[0]}
        return {"type": "and", "courses": clauses}

    if OR_SPLIT.search(s):
        tokens = [_clean_token(c) for c in OR_SPLIT.split(s)]
        tokens = [t for t in tokens if t]
        if len(tokens) == 1:
            return {"type": "single", "course": tokens[0]}
        return {"type": "or", "courses": tokens}

    return {"type": "single", "course": _clean_token(s)}


def classify_prereq_rule(parsed_prereq: dict) -> str | None:
    """
    Rule type for a parsed prerequisite tree, or None when there is no
    prerequisite at all.
    """
    t = parsed_prereq.get("type")
    if t == "none":
        return None
    if t == "single":
        return RULE_SIMPLE
    if t == "and":
        if any(isinstance(c, dict) for c in parsed_prereq.get("courses", [])):
            return RULE_COMPLEX_AND
        return RULE_SIMPLE_AND
    if t == "or":
        if any(isinstance(c, dict) for c in parsed_prereq.get("courses", [])):
            return RULE_COMPLEX_OR
        return RULE_SIMPLE_OR
    if t == "choose_n":
        return RULE_N_OF
    return RULE_UNSUPPORTED


def prereqs_satisfied(parsed_prereq: dict, satisfied_codes: set) -> bool:
    """
    Returns True if the parsed prerequisite is satisfied by the given set of codes.
    """
    t = parsed_prereq["type"]
    if t == "none":
        return True
    if t == "single":
        return parsed_prereq["course"] in satisfied_codes
    if t == "and":
        for clause in parsed_prereq["courses"]:
            if isinstance(clause, dict):
                if not prereqs_satisfied(clause, satisfied_codes):
                    return False
            elif clause not in satisfied_codes:
                return False
        return True
    if t == "or":
        return any(
            prereqs_satisfied(c, satisfied_codes) if isinstance(c, dict) else c in satisfied_codes
            for c in parsed_prereq["courses"]
        )
    if t == "choose_n":
        met = sum(
            1 for c in parsed_prereq["courses"]
            if (prereqs_satisfied(c, satisfied_codes) if isinstance(c, dict) else c in satisfied_codes)
        )
        return met >= parsed_prereq["count"]
    # unsupported → never treated as satisfied
    return False
