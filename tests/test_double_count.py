import pytest

from double_count import analyze_double_count, build_path_mappings


def _leaf(key, group_type, codes, units=4):
    return {
        "kind": "leaf",
        "path_key": key,
        "display_label": key,
        "group_type": group_type,
        "raw_tag_name": key,
        "required_units": units,
        "module_codes": list(codes),
    }


def _programme(pid, paths):
    return {"programme_id": pid, "processed_paths": paths}


@pytest.fixture
def programmes():
    return [
        _programme("CS_MAJOR", [
            {"kind": "group", "path_key": "cc", "group_type": "commonCore", "module_codes": []},
            _leaf("cc-discrete", "commonCore", ["CS1231S"]),
            _leaf("ce-core", "coreEssentials", ["CS1231S", "CS2040S"]),
            _leaf("el-pool", "coreElectives", ["CS3244"]),
            _leaf("el-cap", "coreElectives", ["CS3244"]),
        ]),
        _programme("DS_MINOR", [
            _leaf("ce-core", "coreEssentials", ["CS2040S"]),
        ]),
    ]


class TestBuildPathMappings:
    def test_keys_are_programme_qualified(self, programmes):
        module_to_leaf_paths, leaf_path_to_modules = build_path_mappings(programmes)
        assert leaf_path_to_modules["CS_MAJOR:ce-core"] == ["CS1231S", "CS2040S"]
        assert leaf_path_to_modules["DS_MINOR:ce-core"] == ["CS2040S"]
        assert [m["path_key"] for m in module_to_leaf_paths["CS2040S"]] == [
            "CS_MAJOR:ce-core",
            "DS_MINOR:ce-core",
        ]

    def test_groups_ignored(self, programmes):
        _, leaf_path_to_modules = build_path_mappings(programmes)
        assert "CS_MAJOR:cc" not in leaf_path_to_modules


class TestAnalyzeDoubleCount:
    def test_cross_programme(self, programmes):
        info = analyze_double_count(build_path_mappings(programmes)[0])["CS2040S"]
        assert info["cross_programme_eligible"] is True
        assert len(info["cross_programme_paths"]) == 2
        assert info["intra_programme_eligible"] is False
        assert info["max_possible_double_count"] == 1
        assert info["eligible_programmes"] == ["CS_MAJOR", "DS_MINOR"]

    def test_intra_programme_needs_common_core(self, programmes):
        info = analyze_double_count(build_path_mappings(programmes)[0])["CS1231S"]
        assert info["cross_programme_eligible"] is False
        assert info["intra_programme_eligible"] is True
        assert [p["group_type"] for p in info["intra_programme_paths"]] == ["commonCore", "coreEssentials"]
        assert info["max_possible_double_count"] == 1

    def test_two_non_common_core_paths_are_not_intra(self, programmes):
        info = analyze_double_count(build_path_mappings(programmes)[0])["CS3244"]
        assert info["intra_programme_eligible"] is False
        assert info["all_eligible_paths"] == []
        assert info["max_possible_double_count"] == 0

    def test_both_kinds_add_up(self):
        programmes = [
            _programme("A", [
                _leaf("cc", "commonCore", ["X"]),
                _leaf("ce", "coreEssentials", ["X"]),
            ]),
            _programme("B", [_leaf("el", "coreElectives", ["X"])]),
        ]
        info = analyze_double_count(build_path_mappings(programmes)[0])["X"]
        assert info["cross_programme_eligible"] is True
        assert info["intra_programme_eligible"] is True
        assert info["max_possible_double_count"] == 2
        assert len(info["all_eligible_paths"]) == 3
