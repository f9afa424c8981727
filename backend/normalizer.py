import re

# Matches: CS2040S, cs2040s, CS 2040S, CS-2040S, LSM2233, GEA1000, CS1010X, etc.
CANONICAL = re.compile(r'^([A-Za-z]{2,4})\s*[-]?\s*(\d{4})([A-Za-z]{0,3})$')


def normalize_code(raw: str) -> str | None:
    """
    Normalizes a module code to canonical 'DEPTNNNNX' format.
    Handles: 'cs2040s', 'CS-2040S', 'CS 2040S', 'LSM2233', 'GEA1000'
    Returns None if the string cannot be parsed as a module code.
    """
    if not raw or not str(raw).strip():
        return None
    m = CANONICAL.match(str(raw).strip())
    if m:
        dept = m.group(1).upper()
        num = m.group(2)
        suffix = m.group(3).upper()
        return f"{dept}{num}{suffix}"
    return None


def normalize_programme_ids(raw_value) -> tuple[list[str], list]:
    """
    Splits a programme id selection into cleaned ids.

    Accepts a list (the JSON body shape) or a comma/newline/semicolon separated
    string. Ids are stripped but otherwise kept verbatim; duplicates are
    dropped while preserving first-seen order.

    Returns:
      (ids, rejected) where rejected holds entries that are not usable ids
      (non-strings, empty strings).
    """
    if raw_value is None:
        return [], []
    if isinstance(raw_value, str):
        items = re.split(r'[,\n;]+', raw_value)
    elif isinstance(raw_value, (list, tuple)):
        items = list(raw_value)
    else:
        return [], [raw_value]

    ids: list[str] = []
    rejected: list = []
    seen: set[str] = set()
    for item in items:
        if not isinstance(item, str):
            rejected.append(item)
            continue
        token = item.strip()
        if not token:
            if not isinstance(raw_value, str):
                rejected.append(item)
            continue
        if token in seen:
            continue
        seen.add(token)
        ids.append(token)
    return ids, rejected
