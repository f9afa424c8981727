import pytest

import server


@pytest.fixture
def client():
    return server.app.test_client()


def _generate(client, body, path="/api/academic-plan/generate"):
    return client.post(path, json=body)


class TestHealthAndCatalog:
    def test_health(self, client):
        res = client.get("/health")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok", "version": server.APP_VERSION}

    def test_api_alias(self, client):
        assert client.get("/api/health").status_code == 200

    def test_security_headers(self, client):
        res = client.get("/api/health")
        assert res.headers["X-Frame-Options"] == "DENY"
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert res.headers["Referrer-Policy"] == "same-origin"

    def test_programmes_grouped_by_type(self, client):
        body = client.get("/api/programmes").get_json()
        assert [p["id"] for p in body["majors"]] == ["CS_MAJOR", "IS_MAJOR"]
        assert [p["id"] for p in body["second_majors"]] == ["MATH_2ND_MAJOR"]
        assert [p["id"] for p in body["minors"]] == ["CS_MINOR", "DS_MINOR"]
        assert body["majors"][0]["honours"] is True

    def test_unknown_api_route(self, client):
        res = client.get("/api/nope")
        assert res.status_code == 404
        assert res.get_json() == {"error": "/api/nope not found"}

    def test_unknown_route_keeps_status(self, client):
        res = client.get("/nope")
        assert res.status_code == 404
        assert res.get_json()["success"] is False


class TestGenerateInputValidation:
    def test_body_must_be_object(self, client):
        res = client.post("/academic-plan/generate", data="[]", content_type="application/json")
        assert res.status_code == 400
        assert res.get_json()["error"] == "INVALID_REQUEST"

    def test_missing_body(self, client):
        res = client.post("/academic-plan/generate")
        assert res.status_code == 400

    @pytest.mark.parametrize("value", [None, "CS_MAJOR", [], {"a": 1}])
    def test_ids_must_be_non_empty_array(self, client, value):
        res = _generate(client, {"programme_ids": value})
        assert res.status_code == 400
        body = res.get_json()
        assert body["success"] is False
        assert body["error"] == "INVALID_REQUEST"
        assert body["message"] == "programme_ids must be a non-empty array"

    def test_non_string_entries_rejected(self, client):
        res = _generate(client, {"programme_ids": ["CS_MAJOR", 7]})
        assert res.status_code == 400
        assert res.get_json()["details"] == {"rejected": ["7"]}

    def test_too_many_programmes(self, client):
        ids = [f"P{i}" for i in range(server._MAX_PROGRAMMES + 1)]
        res = _generate(client, {"programme_ids": ids})
        assert res.status_code == 400
        body = res.get_json()
        assert body["error"] == "TOO_MANY_PROGRAMMES"
        assert body["details"]["count"] == server._MAX_PROGRAMMES + 1

    def test_duplicates_do_not_count_towards_limit(self, client):
        ids = ["CS_MAJOR"] * (server._MAX_PROGRAMMES + 1)
        assert _generate(client, {"programme_ids": ids}).status_code == 200


class TestGenerate:
    def test_success(self, client):
        res = _generate(client, {"programme_ids": ["CS_MAJOR", "DS_MINOR"]})
        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert [p["programme_id"] for p in body["data"]["programmes"]] == ["CS_MAJOR", "DS_MINOR"]
        assert body["data"]["global_validation"]["is_valid"] is True
        assert "double_count_eligibility" in body["data"]["lookup_maps"]
        assert body["metadata"]["programme_count"] == 2
        assert body["metadata"]["processing_stats"]["total_programmes"] == 2
        assert body["metadata"]["generated_at"]

    def test_camel_case_key_accepted(self, client):
        res = _generate(client, {"programmeIds": ["CS_MAJOR"]}, path="/academic-plan/generate")
        assert res.status_code == 200

    def test_invalid_combination(self, client):
        res = _generate(client, {"programme_ids": ["CS_MAJOR", "IS_MAJOR"]})
        assert res.status_code == 422
        body = res.get_json()
        assert body["error"] == "INVALID_PROGRAMME_COMBINATION"
        assert len(body["conflicts"]) == 1
        assert body["conflicts"][0]["type"] == "INVALID_PROGRAMME_COMBINATION"

    def test_unknown_programme_is_500(self, client):
        res = _generate(client, {"programme_ids": ["CS_MAJOR", "NOPE"]})
        assert res.status_code == 500
        body = res.get_json()
        assert body["error"] == "INTERNAL_SERVER_ERROR"
        assert body["conflicts"][0]["programme_ids"] == ["NOPE"]

    def test_unhandled_exception_is_500(self, client, monkeypatch):
        def boom(_store, _ids):
            raise RuntimeError("kaboom")

        monkeypatch.setattr(server, "run_pipeline", boom)
        res = _generate(client, {"programme_ids": ["CS_MAJOR"]})
        assert res.status_code == 500
        body = res.get_json()
        assert body["error"] == "INTERNAL_SERVER_ERROR"
        assert "kaboom" not in body["message"]


class TestDataReload:
    def test_reload_skips_when_mtime_unchanged(self, monkeypatch):
        monkeypatch.setattr(server, "_data_mtime", 100.0, raising=False)
        monkeypatch.setattr(server, "_data_file_mtime", lambda _path: 100.0)

        called = {"count": 0}

        def fake_load_data(_path):
            called["count"] += 1
            return {}

        monkeypatch.setattr(server, "load_data", fake_load_data)

        assert server._reload_data_if_changed() is False
        assert called["count"] == 0

    def test_reload_swaps_store_when_mtime_advances(self, monkeypatch, repo_data):
        monkeypatch.setattr(server, "_data", {"catalog_codes": set()}, raising=False)
        monkeypatch.setattr(server, "_store", None, raising=False)
        monkeypatch.setattr(server, "_data_mtime", 100.0, raising=False)
        monkeypatch.setattr(server, "_data_file_mtime", lambda _path: 200.0)
        monkeypatch.setattr(server, "load_data", lambda _path: repo_data)

        assert server._reload_data_if_changed() is True
        assert server._data is repo_data
        assert server._store.catalog_codes == repo_data["catalog_codes"]
        assert server._data_mtime == 200.0

    def test_reload_failure_keeps_previous_data(self, monkeypatch):
        old_data = {"catalog_codes": {"CS1010"}}
        old_store = object()
        monkeypatch.setattr(server, "_data", old_data, raising=False)
        monkeypatch.setattr(server, "_store", old_store, raising=False)
        monkeypatch.setattr(server, "_data_mtime", 100.0, raising=False)
        monkeypatch.setattr(server, "_data_file_mtime", lambda _path: 200.0)

        def boom(_path):
            raise RuntimeError("reload failed")

        monkeypatch.setattr(server, "load_data", boom)

        assert server._reload_data_if_changed() is False
        assert server._data is old_data
        assert server._store is old_store
        assert server._data_mtime == 100.0
