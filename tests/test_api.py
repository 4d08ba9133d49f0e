"""Tests for the FastAPI sync server.

Uses FastAPI's TestClient against a FileStore in a temp directory.

Covers:
- Push/pull round trips, healing and paging over HTTP
- PIN authentication
- Request validation (400), missing articles (404)
- Store failures (503) and unexpected errors (500)
- Store opened and closed by the app lifespan
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from readnext_sync import __version__
from readnext_sync.api import create_app
from readnext_sync.api.server import build_parser, overrides_from_args
from readnext_sync.api.server import run as run_server
from readnext_sync.config import Config
from readnext_sync.errors import StoreUnavailable
from readnext_sync.store.base import Store

NS = "u1"
SYNC_URL = f"/api/sync/{NS}"


@pytest.fixture
def client(mock_config, file_store):
    return TestClient(create_app(mock_config, store=file_store))


@pytest.fixture
def pin_client(db_path, file_store):
    return TestClient(
        create_app(Config(db_file=str(db_path), server_pin="1234"), store=file_store)
    )


# ---------------------------------------------------------------------------
# Liveness
# ---------------------------------------------------------------------------


class TestLiveness:
    def test_banner(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.text == "ReadNext Sync Server Running."

    def test_health(self, client):
        response = client.get("/health")
        assert response.json() == {
            "status": "healthy",
            "service": "readnext-sync",
            "version": __version__,
            "backend": "file",
        }

    def test_health_needs_no_pin(self, pin_client):
        assert pin_client.get("/health").status_code == 200


# ---------------------------------------------------------------------------
# Sync endpoint
# ---------------------------------------------------------------------------


class TestSyncEndpoint:
    """Tests for POST /api/sync/{namespace}."""

    def test_first_push_and_pull(self, client):
        response = client.post(
            SYNC_URL,
            json={
                "changes": [{"id": "a1", "content": "short", "updatedAt": 100}],
                "lastSync": 0,
                "limit": 50,
                "page": 0,
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["changes"] == [
            {"id": "a1", "content": "short", "updatedAt": 100}
        ]
        assert body["hasMore"] is False
        assert body["totalUpdates"] == 1
        assert isinstance(body["serverTime"], int)
        assert body["pushed"]["inserted"] == 1

    def test_healing_over_http(self, client, file_store):
        client.post(
            SYNC_URL,
            json={"changes": [{"id": "a1", "content": "short", "updatedAt": 100}]},
        )
        full = "z" * 220

        response = client.post(
            SYNC_URL,
            json={"changes": [{"id": "a1", "content": full, "updatedAt": 50}]},
        )

        body = response.json()
        assert body["pushed"]["healed"] == 1
        stored = file_store.get(NS, "a1")
        assert stored.content == full
        assert stored.revision > 100
        assert stored.revision <= body["serverTime"]

    def test_paging_120_records(self, client):
        client.post(
            SYNC_URL,
            json={
                "changes": [
                    {"id": f"a{rev}", "updatedAt": rev} for rev in range(1, 121)
                ]
            },
        )

        first = client.post(SYNC_URL, json={"lastSync": 0, "limit": 50, "page": 0})
        last = client.post(SYNC_URL, json={"lastSync": 0, "limit": 50, "page": 2})

        assert [c["updatedAt"] for c in first.json()["changes"]] == list(
            range(1, 51)
        )
        assert first.json()["hasMore"] is True
        assert [c["updatedAt"] for c in last.json()["changes"]] == list(
            range(101, 121)
        )
        assert last.json()["hasMore"] is False

    def test_limit_capped(self, client):
        client.post(
            SYNC_URL,
            json={"changes": [{"id": f"a{i}", "updatedAt": i} for i in range(60)]},
        )

        response = client.post(SYNC_URL, json={"limit": 10000})

        assert len(response.json()["changes"]) == 50

    def test_no_body_is_plain_pull(self, client):
        response = client.post(SYNC_URL)
        assert response.status_code == 200
        assert response.json()["changes"] == []

    def test_opaque_fields_round_trip(self, client):
        article = {
            "id": "a1",
            "title": "Essay",
            "url": "https://example.com/essay",
            "progress": {"scroll": 0.25},
            "content": "text",
            "updatedAt": 5,
        }

        response = client.post(SYNC_URL, json={"changes": [article]})

        assert response.json()["changes"] == [article]

    def test_bad_record_reported_not_fatal(self, client):
        response = client.post(
            SYNC_URL,
            json={"changes": [{"content": "no id"}, {"id": "ok", "updatedAt": 1}]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["pushed"]["inserted"] == 1
        assert body["pushed"]["failed"] == [
            {"index": 0, "id": None, "reason": "missing id"}
        ]

    def test_namespaces_isolated(self, client):
        client.post(
            "/api/sync/alice", json={"changes": [{"id": "a1", "updatedAt": 1}]}
        )

        response = client.post("/api/sync/bob", json={})

        assert response.json()["changes"] == []

    @pytest.mark.parametrize(
        "body",
        [
            [{"id": "a1"}],
            {"changes": "a1"},
            {"lastSync": "yesterday"},
            {"page": "first"},
        ],
    )
    def test_malformed_body_is_400(self, client, body):
        response = client.post(SYNC_URL, json=body)
        assert response.status_code == 400
        assert "error" in response.json()

    def test_invalid_json_is_400(self, client):
        response = client.post(
            SYNC_URL,
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class TestPinAuth:
    """Tests for the X-Auth-Pin check."""

    def test_missing_pin_rejected(self, pin_client, file_store):
        response = pin_client.post(
            SYNC_URL, json={"changes": [{"id": "a1", "updatedAt": 1}]}
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized: Invalid Server PIN"}
        # Rejected before reaching the store
        assert file_store.count(NS) == 0

    def test_wrong_pin_rejected(self, pin_client):
        response = pin_client.post(
            SYNC_URL, json={}, headers={"X-Auth-Pin": "0000"}
        )
        assert response.status_code == 401

    def test_correct_pin_accepted(self, pin_client):
        response = pin_client.post(
            SYNC_URL, json={}, headers={"X-Auth-Pin": "1234"}
        )
        assert response.status_code == 200

    def test_article_and_stats_routes_protected(self, pin_client):
        assert pin_client.get(f"/api/articles/{NS}/a1").status_code == 401
        assert pin_client.get(f"/api/stats/{NS}").status_code == 401

    def test_no_pin_configured_is_open(self, client):
        assert client.post(SYNC_URL, json={}).status_code == 200


# ---------------------------------------------------------------------------
# Diagnostics routes
# ---------------------------------------------------------------------------


class TestDiagnosticsRoutes:
    """Tests for the article and stats routes."""

    def test_get_article(self, client):
        client.post(
            SYNC_URL,
            json={"changes": [{"id": "a1", "content": "c", "updatedAt": 9}]},
        )

        response = client.get(f"/api/articles/{NS}/a1")

        assert response.status_code == 200
        assert response.json() == {"id": "a1", "content": "c", "updatedAt": 9}

    def test_missing_article_is_404(self, client):
        response = client.get(f"/api/articles/{NS}/nope")
        assert response.status_code == 404
        assert "nope" in response.json()["error"]

    def test_stats(self, client):
        client.post(
            SYNC_URL,
            json={
                "changes": [
                    {"id": "a1", "content": "stub", "title": "T", "updatedAt": 1},
                    {"id": "a2", "content": "x" * 300, "updatedAt": 2},
                ]
            },
        )

        response = client.get(f"/api/stats/{NS}")

        assert response.json() == {
            "namespace": NS,
            "total": 2,
            "threshold": 200,
            "truncated": [{"id": "a1", "title": "T", "length": 4}],
        }


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    """Tests for store failures and unexpected errors."""

    def _failing_store(self, exc):
        store = MagicMock(spec=Store)
        store.get_many.return_value = {}
        store.bulk_upsert.return_value = []
        store.query_changed.side_effect = exc
        return store

    def test_store_unavailable_is_503(self, mock_config):
        store = self._failing_store(
            StoreUnavailable(NS, "query_changed", "connection refused")
        )
        client = TestClient(create_app(mock_config, store=store))

        response = client.post(SYNC_URL, json={})

        assert response.status_code == 503
        assert "connection refused" in response.json()["error"]

    def test_unexpected_error_is_500(self, mock_config):
        store = self._failing_store(RuntimeError("kaboom"))
        client = TestClient(
            create_app(mock_config, store=store),
            raise_server_exceptions=False,
        )

        response = client.post(SYNC_URL, json={})

        assert response.status_code == 500
        assert response.json() == {"error": "kaboom"}


# ---------------------------------------------------------------------------
# Lifespan and CORS
# ---------------------------------------------------------------------------


class TestAppLifecycle:
    def test_lifespan_opens_configured_store(self, mock_config, db_path):
        with TestClient(create_app(mock_config)) as client:
            response = client.post(
                SYNC_URL, json={"changes": [{"id": "a1", "updatedAt": 1}]}
            )
            assert response.status_code == 200

        assert db_path.exists()

    def test_cors_preflight(self, client):
        response = client.options(
            SYNC_URL,
            headers={
                "Origin": "https://reader.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "X-Auth-Pin",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


class TestCommandLine:
    """Tests for the readnext-sync entry point."""

    def test_overrides_only_include_given_flags(self):
        args = build_parser().parse_args(["--port", "8080", "--pin", "42"])

        assert overrides_from_args(args) == {"port": 8080, "server_pin": "42"}

    def test_no_flags_no_overrides(self):
        assert overrides_from_args(build_parser().parse_args([])) == {}

    def test_run_serves_resolved_config(self, clean_env, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        argv = ["readnext-sync", "--port", "4123", "--db-file", "x.json"]

        with patch("sys.argv", argv), patch(
            "readnext_sync.api.server.setup_logging"
        ), patch("readnext_sync.api.server.uvicorn.run") as uvicorn_run:
            run_server()

        uvicorn_run.assert_called_once()
        kwargs = uvicorn_run.call_args[1]
        assert kwargs["port"] == 4123
        assert kwargs["host"] == "0.0.0.0"
        app = uvicorn_run.call_args[0][0]
        assert app.state.config.db_file == "x.json"

    def test_run_invalid_config_exits_1(self, clean_env, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))

        with patch("sys.argv", ["readnext-sync", "--mongodb-uri", "ftp://x"]):
            with pytest.raises(SystemExit) as exc_info:
                run_server()

        assert exc_info.value.code == 1
