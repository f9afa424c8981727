from caps import apply_cap_rules


def _rule(rule_id, tag, max_units=4):
    return {"max_rule_id": rule_id, "tag": tag, "max_units": max_units, "affected_modules": []}


class TestApplyCapRules:
    def test_every_tagged_module_gets_an_entry(self):
        tags = {"CS3243": ["P:el-pool"], "CS3244": ["P:el-pool", "P:el-cap"]}
        module_to_max_rules, usage = apply_cap_rules([], tags, {}, set())
        assert module_to_max_rules == {"CS3243": [], "CS3244": []}
        assert usage == {}

    def test_rule_attached_by_tag(self):
        tags = {"CS3243": ["P:el-pool"], "CS3244": ["P:el-pool", "P:el-cap"]}
        module_to_max_rules, usage = apply_cap_rules([_rule("P_3", "P:el-cap")], tags, {}, set())
        assert module_to_max_rules["CS3244"] == ["P_3"]
        assert module_to_max_rules["CS3243"] == []
        assert usage["P_3"] == {
            "max_units": 4,
            "used_units": 0,
            "remaining_units": 4,
            "is_reached": False,
            "affected_modules": ["CS3244"],
        }

    def test_preselected_modules_use_up_the_cap(self):
        tags = {"CS3243": ["P:cap"], "CS3244": ["P:cap"]}
        units = {"CS3243": 4, "CS3244": 4}
        _, usage = apply_cap_rules([_rule("P_9", "P:cap", 6)], tags, units, {"CS3243", "CS3244"})
        assert usage["P_9"]["used_units"] == 8
        assert usage["P_9"]["remaining_units"] == 0
        assert usage["P_9"]["is_reached"] is True

    def test_nothing_removed(self):
        tags = {"CS3244": ["P:cap"]}
        module_to_max_rules, usage = apply_cap_rules([_rule("P_1", "P:cap", 4)], tags, {"CS3244": 4}, {"CS3244"})
        assert usage["P_1"]["is_reached"] is True
        assert "CS3244" in module_to_max_rules
        assert tags == {"CS3244": ["P:cap"]}
