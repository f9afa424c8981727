def apply_cap_rules(
    max_rules: list[dict],
    module_tags: dict[str, list[str]],
    module_units: dict[str, float],
    preselected: set[str],
) -> tuple[dict[str, list[str]], dict[str, dict]]:
    """
    Attach every max rule to the modules carrying its tag and report usage.

    Nothing is removed here: a reached cap is surfaced to the consumer, which
    enforces it as the user picks electives.

    Returns:
      (module_to_max_rules, usage) where module_to_max_rules maps every tagged
      module (rule-free ones to []) to max_rule_ids, and usage maps
      max_rule_id → {max_units, used_units, remaining_units, is_reached,
      affected_modules}.
    """
    module_to_max_rules: dict[str, list[str]] = {code: [] for code in module_tags}
    usage: dict[str, dict] = {}

    for rule in max_rules:
        affected = [code for code, tags in module_tags.items() if rule["tag"] in tags]
        for code in affected:
            if rule["max_rule_id"] not in module_to_max_rules[code]:
                module_to_max_rules[code].append(rule["max_rule_id"])

        used = sum(module_units.get(code, 0) or 0 for code in affected if code in preselected)
        max_units = rule.get("max_units") or 0
        usage[rule["max_rule_id"]] = {
            "max_units": max_units,
            "used_units": used,
            "remaining_units": max(0, max_units - used),
            "is_reached": used >= max_units,
            "affected_modules": affected,
        }

    return module_to_max_rules, usage
