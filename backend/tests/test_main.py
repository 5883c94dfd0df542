from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app import schemas
from app.main import _background_runner, _profile_service, _scheduler, _sync_service, app
from app.services.profile_service import ProfileNotFoundError
from pipelines.full_sync import FullSyncReport, StageOutcome
from pipelines.scheduler import SyncScheduler


@pytest.fixture
def client():
    """Test client that cleans up dependency overrides after each test."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def scheduler():
    instance = SyncScheduler(
        {
            "profile_sync": lambda: None,
            "inactivity_check": lambda: None,
            "problem_catalog": lambda: None,
        }
    )
    app.dependency_overrides[_scheduler] = lambda: instance
    yield instance
    instance.stop_all()


def test_healthcheck(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_sync_status_without_runtime_is_unavailable(client):
    response = client.get("/sync/status")
    assert response.status_code == 503


def test_sync_status_reports_every_job(client, scheduler):
    scheduler.start("profile_sync", "0 2 * * *")

    response = client.get("/sync/status")

    assert response.status_code == 200
    jobs = response.json()["jobs"]
    assert set(jobs) == {"profile_sync", "inactivity_check", "problem_catalog"}
    assert jobs["profile_sync"]["state"] == "scheduled"
    assert jobs["profile_sync"]["schedule"] == "0 2 * * *"
    assert jobs["profile_sync"]["next_run"] is not None
    assert jobs["problem_catalog"]["state"] == "stopped"


def test_update_schedule_accepts_camel_case_fields(client, scheduler):
    response = client.post(
        "/sync/schedule", json={"syncCron": "15 1 * * *", "catalogCron": "0 5 * * 0"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Schedule updated successfully"
    assert body["status"]["jobs"]["profile_sync"]["schedule"] == "15 1 * * *"
    assert body["status"]["jobs"]["problem_catalog"]["schedule"] == "0 5 * * 0"
    assert body["status"]["jobs"]["inactivity_check"]["schedule"] is None


def test_invalid_schedule_is_rejected_and_nothing_changes(client, scheduler):
    scheduler.start("profile_sync", "0 2 * * *")

    response = client.post(
        "/sync/schedule", json={"syncCron": "0 3 * * *", "inactivityCron": "whenever"}
    )

    assert response.status_code == 400
    assert "whenever" in response.json()["detail"]
    assert scheduler.status()["profile_sync"]["schedule"] == "0 2 * * *"
    assert scheduler.status()["inactivity_check"]["state"] == "stopped"


def test_empty_schedule_update_is_rejected(client, scheduler):
    response = client.post("/sync/schedule", json={})
    assert response.status_code == 400


def test_trigger_submits_background_run(client):
    service = MagicMock()
    runner = MagicMock()
    runner.submit.return_value = True
    app.dependency_overrides[_sync_service] = lambda: service
    app.dependency_overrides[_background_runner] = lambda: runner

    response = client.post("/sync/trigger")

    assert response.status_code == 202
    assert response.json() == {"accepted": True, "message": "Sync started in background"}
    runner.submit.assert_called_once_with(service.run_full_sync, name="manual full sync")
    service.run_full_sync.assert_not_called()


def test_trigger_while_busy_conflicts(client):
    runner = MagicMock()
    runner.submit.return_value = False
    app.dependency_overrides[_sync_service] = lambda: MagicMock()
    app.dependency_overrides[_background_runner] = lambda: runner

    response = client.post("/sync/trigger")

    assert response.status_code == 409


def test_force_sync_reports_stages(client):
    service = MagicMock()
    service.run_full_sync.return_value = FullSyncReport(
        duration_seconds=3.5,
        stages=[
            StageOutcome(stage="contests", success=True, duration_seconds=0.5, details={"contests": 12}),
            StageOutcome(stage="profiles", success=False, duration_seconds=3.0, error="database is locked"),
        ],
    )
    app.dependency_overrides[_sync_service] = lambda: service

    response = client.post("/sync/force")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["duration_seconds"] == 3.5
    assert [stage["stage"] for stage in body["stages"]] == ["contests", "profiles"]
    assert body["stages"][0]["details"] == {"contests": 12}
    assert body["stages"][1]["error"] == "database is locked"


def test_contest_history(client):
    service = MagicMock()
    service.contest_history.return_value = schemas.ContestHistory(
        handle="alice",
        current_rating=1450,
        contests=[
            schemas.ContestResult(
                contest_id=1000, contest_name="Round 1000", rating_change=50, rank=321, timestamp=100
            )
        ],
        rating_progression=[
            schemas.RatingPoint(
                contest_id=1000,
                contest_name="Round 1000",
                timestamp=100,
                rating_before=1400,
                rating_after=1450,
                rating_change=50,
            )
        ],
    )
    app.dependency_overrides[_profile_service] = lambda: service

    response = client.get("/profiles/alice/contests", params={"days": 30})

    assert response.status_code == 200
    assert response.json()["rating_progression"][0]["rating_before"] == 1400
    service.contest_history.assert_called_once_with("alice", days=30)


def test_contest_history_unknown_profile(client):
    service = MagicMock()
    service.contest_history.side_effect = ProfileNotFoundError("ghost")
    app.dependency_overrides[_profile_service] = lambda: service

    response = client.get("/profiles/ghost/contests")

    assert response.status_code == 404
    service.contest_history.assert_called_once_with("ghost", days=None)


def test_contest_history_rejects_non_positive_window(client):
    app.dependency_overrides[_profile_service] = lambda: MagicMock()

    response = client.get("/profiles/alice/contests", params={"days": 0})

    assert response.status_code == 422
