from __future__ import annotations

from app.domain import ContestSummary
from app.models import Contest
from pipelines.context import CATALOG_JOB, INACTIVITY_JOB, PROFILE_SYNC_JOB, build_runtime


def test_runtime_wires_jobs_to_services(stub_client, scope, test_settings):
    stub_client.contests = [ContestSummary(1000, "Round 1000", "CF", "FINISHED", 100, 7200)]
    runtime = build_runtime(test_settings, client=stub_client, scope=scope)
    try:
        assert set(runtime.scheduler.job_names) == {PROFILE_SYNC_JOB, INACTIVITY_JOB, CATALOG_JOB}

        outcome = runtime.scheduler.run_job(PROFILE_SYNC_JOB)

        assert outcome["success"] is True
        stages = [stage["stage"] for stage in outcome["details"]["stages"]]
        assert stages == ["contests", "profiles"]
        with scope() as session:
            assert session.get(Contest, 1000) is not None

        catalog = runtime.scheduler.run_job(CATALOG_JOB)
        assert [stage["stage"] for stage in catalog["details"]["stages"]] == ["problem_catalog"]

        reminders = runtime.scheduler.run_job(INACTIVITY_JOB)
        assert reminders == {
            "success": True,
            "details": {"checked": 0, "sent": 0, "failed": 0, "failures": []},
        }
    finally:
        runtime.close()

    assert ("close",) in stub_client.calls


def test_runtime_start_schedules_configured_jobs(stub_client, scope, test_settings):
    runtime = build_runtime(test_settings, client=stub_client, scope=scope)
    try:
        runtime.start()
        status = runtime.scheduler.status()
        assert status[PROFILE_SYNC_JOB]["schedule"] == test_settings.sync_cron
        assert status[INACTIVITY_JOB]["state"] == "scheduled"
        assert status[CATALOG_JOB]["schedule"] == test_settings.catalog_cron
    finally:
        runtime.close()

    assert runtime.scheduler.status()[PROFILE_SYNC_JOB]["state"] == "stopped"
