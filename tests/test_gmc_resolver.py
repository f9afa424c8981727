import pytest

from gmc_resolver import (
    PLACEHOLDER_TITLE,
    collect,
    gmc_code,
    map_gmcs_to_modules,
    match_general_code,
    module_info,
    to_gmc,
)
from plan_fixtures import leaf, make_store, module, programme


class TestToGmc:
    def test_exact(self):
        assert to_gmc("cs2040s") == {"type": "exact", "code": "CS2040S"}

    def test_wildcard(self):
        assert to_gmc("CS3", "wildcard") == {"type": "wildcard", "prefix": "CS3"}

    def test_variant(self):
        assert to_gmc("CS3230", "Variant") == {"type": "variant", "base_code": "CS3230"}

    def test_other(self):
        assert to_gmc("UPIP", "other") == {"type": "other", "code": "UPIP"}

    def test_unknown_type_raises(self):
        with pytest.raises(ValueError, match="Unknown GMC type"):
            to_gmc("CS3", "regex")

    def test_gmc_code(self):
        assert gmc_code(to_gmc("CS3", "wildcard")) == "CS3"
        assert gmc_code(to_gmc("CS3230", "variant")) == "CS3230"


class TestMatchGeneralCode:
    def test_exact_found(self, repo_store):
        result = match_general_code(to_gmc("CS2040S"), repo_store)
        assert [m["module_code"] for m in result] == ["CS2040S"]

    def test_exact_missing(self, repo_store):
        assert match_general_code(to_gmc("CS9999"), repo_store) == []

    def test_wildcard_excludes_suffixed_variants(self, repo_store):
        codes = [m["module_code"] for m in match_general_code(to_gmc("CS3", "wildcard"), repo_store)]
        assert codes == ["CS3230", "CS3243", "CS3244"]

    def test_variant_includes_suffixes(self, repo_store):
        codes = [m["module_code"] for m in match_general_code(to_gmc("CS3230", "variant"), repo_store)]
        assert codes == ["CS3230", "CS3230R"]

    def test_other_is_placeholder(self, repo_store):
        result = match_general_code(to_gmc("UPIP", "other"), repo_store)
        assert result == [{"module_code": "UPIP", "title": PLACEHOLDER_TITLE, "units": 4}]

    def test_collect_dedupes(self, repo_store):
        result = collect([to_gmc("CS3230"), to_gmc("CS3230", "variant")], repo_store)
        assert [m["module_code"] for m in result] == ["CS3230", "CS3230R"]


class TestMapGmcsToModules:
    def test_exact_batch_skips_unknown(self, repo_store):
        mappings, codes = map_gmcs_to_modules(
            [to_gmc("CS2040S"), to_gmc("CS9999")], "CS_MAJOR", repo_store
        )
        assert codes == ["CS2040S"]
        assert mappings == [{
            "gmc_code": "CS2040S",
            "gmc_type": "exact",
            "module_code": "CS2040S",
            "requires_approval": False,
        }]

    def test_stored_mapping_wins_over_catalog(self):
        store = make_store(
            [programme("IS_MAJOR")],
            [leaf("IS_MAJOR", 1, "el", "coreElectives", "IS3", types="wildcard", depth=0)],
            [module("IS3103"), module("IS3106")],
            gmc_mappings=[{"programme_id": "IS_MAJOR", "gmc_code": "IS3", "gmc_type": "wildcard", "module_code": "IS3106"}],
        )
        _, codes = map_gmcs_to_modules([to_gmc("IS3", "wildcard")], "IS_MAJOR", store)
        assert codes == ["IS3106"]

    def test_bundled_mapping_rows(self, repo_store):
        _, codes = map_gmcs_to_modules([to_gmc("IS3", "wildcard")], "IS_MAJOR", repo_store)
        assert codes == ["IS3103", "IS3106"]

    def test_catalog_fallback_without_mapping(self, repo_store):
        _, codes = map_gmcs_to_modules([to_gmc("CS3", "wildcard")], "CS_MAJOR", repo_store)
        assert codes == ["CS3230", "CS3243", "CS3244"]

    def test_other_requires_approval(self, repo_store):
        mappings, codes = map_gmcs_to_modules([to_gmc("UPIP", "other")], "DS_MINOR", repo_store)
        assert codes == ["UPIP"]
        assert mappings[0]["requires_approval"] is True

    def test_module_codes_deduped(self, repo_store):
        _, codes = map_gmcs_to_modules(
            [to_gmc("CS3230"), to_gmc("CS3", "wildcard")], "CS_MAJOR", repo_store
        )
        assert codes == ["CS3230", "CS3243", "CS3244"]


class TestModuleInfo:
    def test_catalog_module(self, repo_store):
        assert module_info("MA1521", repo_store)["title"] == "Calculus for Computing"

    def test_unknown_module_placeholder(self, repo_store):
        info = module_info("UPIP", repo_store)
        assert info["title"] == PLACEHOLDER_TITLE
        assert info["units"] == 4
