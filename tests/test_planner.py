import json

import pytest

from planner import (
    STATUS_HARD_ERROR,
    STATUS_INVALID_COMBINATION,
    STATUS_OK,
    classify_errors,
    run_pipeline,
)
from processing_context import HARD_ERROR, INVALID_PROGRAMME_COMBINATION, SOFT_ERROR


class TestClassifyErrors:
    def test_no_errors(self):
        assert classify_errors([]) == STATUS_OK

    def test_soft_errors_are_ok(self):
        assert classify_errors([{"type": SOFT_ERROR}]) == STATUS_OK

    def test_combination(self):
        assert classify_errors([{"type": INVALID_PROGRAMME_COMBINATION}]) == STATUS_INVALID_COMBINATION

    def test_hard_error_wins(self):
        errors = [{"type": INVALID_PROGRAMME_COMBINATION}, {"type": HARD_ERROR}]
        assert classify_errors(errors) == STATUS_HARD_ERROR


class TestRunPipeline:
    def test_valid_combination(self, repo_store):
        result = run_pipeline(repo_store, ["CS_MAJOR", "DS_MINOR"])
        assert result["status"] == STATUS_OK
        assert [p["programme_id"] for p in result["programmes"]] == ["CS_MAJOR", "DS_MINOR"]
        assert result["global_validation"]["is_valid"] is True
        assert result["global_validation"]["errors"] == []
        assert result["stats"]["total_programmes"] == 2
        assert result["stats"]["processed_paths"] == 18 + 4

    def test_result_is_json_serialisable(self, repo_store):
        json.dumps(run_pipeline(repo_store, ["CS_MAJOR", "DS_MINOR", "MATH_2ND_MAJOR"]))

    def test_two_majors(self, repo_store):
        result = run_pipeline(repo_store, ["CS_MAJOR", "IS_MAJOR"])
        assert result["status"] == STATUS_INVALID_COMBINATION
        assert result["programmes"] == []
        assert result["lookup_maps"] == {}
        assert result["global_validation"]["is_valid"] is False
        assert len(result["global_validation"]["errors"]) == 1

    def test_precluding_minors(self, repo_store):
        result = run_pipeline(repo_store, ["CS_MINOR", "DS_MINOR"])
        assert result["status"] == STATUS_INVALID_COMBINATION
        assert result["programmes"] == []

    def test_unknown_programme(self, repo_store):
        result = run_pipeline(repo_store, ["NOPE"])
        assert result["status"] == STATUS_HARD_ERROR
        assert result["global_validation"]["errors"][0]["type"] == HARD_ERROR

    def test_soft_error_still_builds(self, repo_store, monkeypatch):
        def boom(_codes):
            raise RuntimeError("rules offline")

        monkeypatch.setattr(repo_store, "get_batch_simple_prerequisites", boom)
        result = run_pipeline(repo_store, ["CS_MAJOR"])
        assert result["status"] == STATUS_OK
        assert len(result["programmes"]) == 1
        assert result["global_validation"]["errors"][0]["type"] == SOFT_ERROR
