"""Tests for the HTTP surface of the pipeline service."""

import json
import threading

import pytest
from fastapi.testclient import TestClient

from bikeshare.lock import get_global_lock
from bikeshare.main import app

from conftest import BIKES_TABLE, bike_row, build_tables


def _checkout_payload(email="alice@amherst.edu", bike_hash="BK-42"):
    return {
        "operation": "checkout",
        "responses": ["2025-03-01T10:00:00Z", email, bike_hash, "I confirm"],
        "sourceRangeRef": "Checkout Logs!A2",
    }


@pytest.fixture
def seed_file(tmp_path):
    path = tmp_path / "workbook.json"
    tables = build_tables(
        bikes=[
            bike_row("Trek 100", bike_hash="BK-42"),
            bike_row("Schwinn Blue", bike_hash="BK-43", maintenance="Has Issue"),
        ]
    )
    path.write_text(json.dumps({"tables": tables}), encoding="utf-8")
    return path


@pytest.fixture
def client(monkeypatch, seed_file):
    monkeypatch.setenv("BIKESHARE_SEED_PATH", str(seed_file))
    monkeypatch.setenv("BIKESHARE_EVENT_SINKS", '["logging"]')
    monkeypatch.setenv("BIKESHARE_LOCK_TIMEOUT_SECONDS", "2")
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def empty_client(monkeypatch):
    monkeypatch.delenv("BIKESHARE_SEED_PATH", raising=False)
    monkeypatch.setenv("BIKESHARE_EVENT_SINKS", '["logging"]')
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_metrics_endpoint(client):
    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")


class TestSubmissions:
    def test_checkout_is_processed(self, client):
        response = client.post("/submissions", json=_checkout_payload())

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "processed"
        assert body["stage"] == "released"
        assert body["error_code"] is None
        assert body["writes"] == 3
        assert [n["code"] for n in body["notifications"]] == ["CFM_USR_COT_001"]

    def test_validation_failure_is_still_processed(self, client):
        response = client.post("/submissions", json=_checkout_payload(bike_hash="BK-99"))

        assert response.status_code == 200
        body = response.json()
        assert body["stage"] == "failed"
        assert body["error_code"] == "ERR_USR_COT_003"
        assert body["writes"] == 0
        assert body["notifications"][0]["channel"] == "user"

    def test_duplicate_is_reported(self, client):
        client.post("/submissions", json=_checkout_payload())
        response = client.post("/submissions", json=_checkout_payload())

        assert response.json()["error_code"] == "WRN_SYS_DUP_001"

    def test_unknown_operation_is_rejected(self, client):
        payload = {**_checkout_payload(), "operation": "rent"}
        assert client.post("/submissions", json=payload).status_code == 400

    def test_lock_timeout_answers_503(self, client, monkeypatch):
        from bikeshare import main

        monkeypatch.setattr(main.orchestrator, "lock_timeout_seconds", 0.05)
        lock = get_global_lock()
        acquired = threading.Event()
        release = threading.Event()

        def holder():
            with lock.hold(owner="usage-timer"):
                acquired.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        acquired.wait(5)
        try:
            response = client.post("/submissions", json=_checkout_payload())
        finally:
            release.set()
            thread.join(5)

        assert response.status_code == 503
        assert response.json()["stage"] == "lock_timeout"
        assert response.json()["error_code"] == "ERR_SYS_LCK_001"

    def test_missing_configuration_answers_503(self, empty_client):
        response = empty_client.post("/submissions", json=_checkout_payload())
        assert response.status_code == 503


class TestOperatorEndpoints:
    def test_usage_timers(self, client):
        client.post("/submissions", json=_checkout_payload())

        response = client.post("/timers/usage")

        assert response.status_code == 200
        body = response.json()
        assert body["checked_out_bikes"] == 1
        assert body["updates_applied"] == 1
        # The checkout lies far in the past
        assert body["overdue_bikes"] == ["Trek 100"]
        assert body["overdue_count"] == 1

    def test_settings_refresh(self, client):
        response = client.post("/settings/refresh")

        assert response.status_code == 200
        assert response.json() == {
            "status": "refreshed",
            "sections": ["general", "lists", "notifications", "regulations", "system"],
        }

    def test_settings_refresh_without_config(self, empty_client):
        assert empty_client.post("/settings/refresh").status_code == 503

    def test_dashboard_edit_clears_issue(self, client):
        edit = {
            "table": BIKES_TABLE,
            "row": 3,
            "column": 3,
            "old_value": "Has Issue",
            "new_value": "Good",
        }
        response = client.post("/dashboard/edits", json=edit)

        assert response.status_code == 200
        assert response.json() == {"cleared": True}

    def test_dashboard_edit_elsewhere(self, client):
        edit = {"table": BIKES_TABLE, "row": 3, "column": 1, "old_value": "a", "new_value": "b"}
        assert client.post("/dashboard/edits", json=edit).json() == {"cleared": False}

    def test_dashboard_edit_rejects_bad_cell(self, client):
        edit = {"table": BIKES_TABLE, "row": 0, "column": 3}
        assert client.post("/dashboard/edits", json=edit).status_code == 422
