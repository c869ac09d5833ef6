"""Tests for the FastAPI HTTP transport."""

import pytest
from fastapi.testclient import TestClient

from metasearch.search.aggregator import AggregationEngine
from metasearch.search.cache import SearchCache
from metasearch.server import create_app
from metasearch.storage.history import HistoryStore

from tests.conftest import FakeProvider, failing, hits, make_registry


@pytest.fixture
def providers():
    return {
        "searx": FakeProvider("searx", hits("searx", 10)),
        "bing": FakeProvider("bing", hits("bing", 9)),
        "ecosia": failing("ecosia"),
        "google": failing("google"),
    }


def drain(client):
    """Wait for the background history writes scheduled by previous requests."""
    client.portal.call(client.app.state.engine.drain_background_tasks)


@pytest.fixture
def client(tmp_path, providers):
    engine = AggregationEngine(
        make_registry(*providers.values()),
        cache=SearchCache(),
        store=HistoryStore(tmp_path / "api.db"),
    )
    with TestClient(create_app(engine)) as test_client:
        yield test_client


class TestInfoEndpoints:
    def test_root(self, client):
        body = client.get("/").json()
        assert body["status"] == "ok"
        assert "/api/search" in body["endpoints"]

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["engines"] == 4
        assert body["cache"]["enabled"] is True

    def test_engines(self, client):
        body = client.get("/api/search/engines").json()
        assert body["engines"] == ["bing", "google", "searx", "ecosia", "all", "default"]
        assert body["descriptors"][0] == {"name": "bing", "reliability_rank": 1}


class TestSearchEndpoint:
    def test_default_search(self, client):
        response = client.get("/api/search", params={"q": "python"})

        assert response.status_code == 200
        body = response.json()
        assert body["query"] == "python"
        assert body["engine"] == "default"
        assert body["page"] == 1
        assert body["safe"] is True
        assert body["results_count"] == 15
        assert body["results"][0]["engine"] == "bing"
        assert body["results"][0]["rank"] == 1
        assert body["trace"]["tier"] == "curated"
        assert body["trace"]["working_engines"] == ["searx", "bing"]
        assert body["trace"]["failed_engines"][0]["kind"] == "network"
        assert body["trace"]["cache_used"] is False

    def test_second_search_uses_cache(self, client, providers):
        client.get("/api/search", params={"q": "python"})
        body = client.get("/api/search", params={"q": "python"}).json()
        assert body["trace"]["cache_used"] is True
        assert len(providers["searx"].calls) == 1

    def test_missing_query_is_400(self, client):
        response = client.get("/api/search")
        assert response.status_code == 400
        assert response.json()["error"] == "Validation failed"

    def test_blank_query_is_400(self, client):
        response = client.get("/api/search", params={"q": "   "})
        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "query"

    def test_unknown_engine_is_400(self, client):
        response = client.get("/api/search", params={"q": "python", "engine": "altavista"})
        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "engine"

    def test_page_out_of_range_is_400(self, client):
        assert client.get("/api/search", params={"q": "python", "page": 0}).status_code == 400
        assert client.get("/api/search", params={"q": "python", "page": 11}).status_code == 400

    def test_all_unreachable_is_503(self, client):
        response = client.get("/api/search", params={"q": "python", "engine": "google", "fallback": "false"})
        assert response.status_code == 503
        body = response.json()
        assert body["failed_engines"][0]["engine"] == "google"


class TestHistoryAndPreferences:
    def test_history_is_per_client(self, client):
        client.get("/api/search", params={"q": "python"}, headers={"X-Forwarded-For": "10.0.0.1, 10.0.0.2"})
        client.get("/api/search", params={"q": "rust"})
        drain(client)

        mine = client.get("/api/search/history", headers={"X-Forwarded-For": "10.0.0.1"}).json()
        assert [row["query"] for row in mine["history"]] == ["python"]
        assert mine["count"] == 1

        theirs = client.get("/api/search/history").json()
        assert [row["query"] for row in theirs["history"]] == ["rust"]

    def test_history_limit_bounds(self, client):
        assert client.get("/api/search/history", params={"limit": 0}).status_code == 400
        assert client.get("/api/search/history", params={"limit": 101}).status_code == 400

    def test_preferences_round_trip(self, client):
        assert client.get("/api/search/preferences").json()["preferences"] == {
            "default_engine": "default",
            "results_per_page": 10,
            "safe_search": True,
        }

        response = client.put("/api/search/preferences", json={"default_engine": "bing", "results_per_page": 20})
        assert response.status_code == 200
        assert response.json()["preferences"]["default_engine"] == "bing"

        body = client.get("/api/search", params={"q": "python"}).json()
        assert body["engine"] == "bing"
        assert body["trace"]["tier"] == "requested"

    def test_invalid_preferences_are_400(self, client):
        response = client.put("/api/search/preferences", json={"results_per_page": 3})
        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "results_per_page"


class TestCacheAndAdvanced:
    def test_clear_cache(self, client, providers):
        client.get("/api/search", params={"q": "python"})
        response = client.delete("/api/search/cache")
        assert response.json()["cleared"] == 1
        client.get("/api/search", params={"q": "python"})
        assert len(providers["searx"].calls) == 2

    def test_advanced_reports_errors_per_selector(self, client):
        response = client.post(
            "/api/search/advanced",
            json={"query": "python", "engines": ["searx", "altavista"]},
        )
        assert response.status_code == 200
        results = response.json()["results"]
        assert results["searx"]["results_count"] == 10
        assert results["altavista"]["error"] == "ValidationError"

    def test_advanced_engine_count_bounds(self, client):
        assert client.post("/api/search/advanced", json={"query": "python", "engines": []}).status_code == 400
        too_many = {"query": "python", "engines": ["searx", "bing", "ecosia", "google", "all"]}
        assert client.post("/api/search/advanced", json=too_many).status_code == 400


class TestUnexpectedErrors:
    def test_unexpected_error_is_json_500(self, monkeypatch):
        engine = AggregationEngine(make_registry(FakeProvider("searx", hits("searx", 1))), cache=SearchCache())

        async def explode(*args, **kwargs):
            raise RuntimeError("index corrupted")

        monkeypatch.setattr(engine, "search_with_trace", explode)

        with TestClient(create_app(engine), raise_server_exceptions=False) as test_client:
            response = test_client.get("/api/search", params={"q": "python"})

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == {"error": "Search failed", "message": "index corrupted"}
