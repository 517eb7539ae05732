"""Unit tests for the sync trigger and run log endpoints."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from unified_file_sync.api.routes.sync import router
from unified_file_sync.core.errors import AppError, app_error_handler
from unified_file_sync.sync import (
    InMemoryRunLogStore,
    InMemoryTargetStore,
    SyncConfig,
    SyncOrchestrator,
)


def _app(orchestrator) -> FastAPI:
    test_app = FastAPI()
    test_app.include_router(router, prefix="/api/v1")
    test_app.add_exception_handler(AppError, app_error_handler)
    test_app.state.sync_orchestrator = orchestrator
    return test_app


@pytest.fixture
def orchestrator(source_reader):
    return SyncOrchestrator(
        reader=source_reader,
        target=InMemoryTargetStore(),
        log_store=InMemoryRunLogStore(),
        config=SyncConfig(),
        retry_backoff_seconds=0,
    )


@pytest.fixture
def client(orchestrator):
    """Create test client."""
    return TestClient(_app(orchestrator))


class TestTriggerSyncRun:
    """Tests for POST /api/v1/sync/runs."""

    def test_full_run(self, client):
        response = client.post("/api/v1/sync/runs", json={"mode": "full"})

        assert response.status_code == 200
        body = response.json()
        assert "requestId" in body["meta"]
        data = body["data"]
        assert data["mode"] == "full"
        assert data["skipped"] is False
        assert data["errorCount"] == 0
        assert {stage["jobName"] for stage in data["stages"]} == {
            "BatchExtractContentVersions",
            "BatchExtractContentDocumentLinks",
            "BatchExtractAttachments",
        }

    def test_delta_run_with_lookback(self, client):
        response = client.post("/api/v1/sync/runs", json={"mode": "delta", "lookbackMinutes": 15})

        assert response.status_code == 200
        assert response.json()["data"]["lookbackMinutes"] == 15

    def test_invalid_mode_rejected(self, client):
        response = client.post("/api/v1/sync/runs", json={"mode": "sometimes"})

        assert response.status_code == 422

    def test_non_positive_lookback_rejected(self, client):
        response = client.post("/api/v1/sync/runs", json={"mode": "delta", "lookbackMinutes": 0})

        assert response.status_code == 422

    def test_configuration_error_is_problem_detail(self, source_reader):
        orchestrator = SyncOrchestrator(
            reader=source_reader,
            target=InMemoryTargetStore(),
            log_store=InMemoryRunLogStore(),
            config=SyncConfig(ownership_policy="FOO"),
        )
        client = TestClient(_app(orchestrator))

        response = client.post("/api/v1/sync/runs", json={"mode": "full"})

        assert response.status_code == 422
        problem = response.json()
        assert problem["status"] == 422
        assert problem["instance"] == "/api/v1/sync/runs"

    def test_orchestrator_unavailable(self):
        client = TestClient(_app(None))

        response = client.post("/api/v1/sync/runs", json={"mode": "full"})

        assert response.status_code == 503


class TestListSyncLogs:
    """Tests for GET /api/v1/sync/logs."""

    def test_lists_rows_after_a_run(self, client):
        client.post("/api/v1/sync/runs", json={"mode": "full"})

        response = client.get("/api/v1/sync/logs", params={"limit": 2})

        assert response.status_code == 200
        logs = response.json()["data"]["logs"]
        assert len(logs) == 2
        assert all(log["status"] == "completed" for log in logs)

    def test_limit_is_bounded(self, client):
        response = client.get("/api/v1/sync/logs", params={"limit": 0})

        assert response.status_code == 422


class TestApplication:
    """Tests for the assembled application."""

    def test_lifespan_wires_orchestrator(self, monkeypatch):
        monkeypatch.setenv("SKIP_DB_POOL", "1")
        monkeypatch.setenv("UNIFIED_SYNC_SCHEDULER_ENABLED", "false")
        from unified_file_sync.main import create_app

        with TestClient(create_app()) as client:
            health = client.get("/health")
            run = client.post("/api/v1/sync/runs", json={"mode": "full"})

        assert health.status_code == 200
        assert health.json()["schedulerRunning"] is False
        assert run.status_code == 200
        assert run.json()["data"]["recordsProcessed"] == 0
