from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from app.core.config import Settings, get_settings
from app.services.notifications import ReminderSender
from ingestion.client import CodeforcesClient
from ingestion.contests import ContestInfoCache
from ingestion.service import SessionScope, session_scope

from .full_sync import BackgroundRunner, SyncService
from .inactivity import InactivityCheck
from .problem_catalog import ProblemCatalogUpdater
from .profile_sync import ProfileSyncOrchestrator
from .scheduler import SyncScheduler

PROFILE_SYNC_JOB = "profile_sync"
INACTIVITY_JOB = "inactivity_check"
CATALOG_JOB = "problem_catalog"


@dataclass(slots=True)
class SyncRuntime:
    """Explicitly constructed services shared by the API, jobs and CLI."""

    settings: Settings
    client: CodeforcesClient
    orchestrator: ProfileSyncOrchestrator
    catalog_updater: ProblemCatalogUpdater
    inactivity_check: InactivityCheck
    sync_service: SyncService
    scheduler: SyncScheduler
    background: BackgroundRunner

    def start(self) -> None:
        self.scheduler.start_all(self.settings.default_schedules)

    def close(self) -> None:
        self.scheduler.stop_all()
        self.background.shutdown(wait=False)
        self.client.close()
        logger.info("Sync runtime closed")


def build_runtime(
    settings: Settings | None = None,
    *,
    client: CodeforcesClient | None = None,
    scope: SessionScope = session_scope,
    sender: ReminderSender | None = None,
) -> SyncRuntime:
    settings = settings or get_settings()
    client = client or CodeforcesClient(
        base_url=str(settings.codeforces_base_url),
        timeout=settings.codeforces_timeout_seconds,
        min_interval=settings.codeforces_min_interval_seconds,
        cooldown=settings.codeforces_rate_limit_cooldown_seconds,
        max_rate_limit_retries=settings.codeforces_max_rate_limit_retries,
    )
    orchestrator = ProfileSyncOrchestrator(
        client, scope=scope, settings=settings, contest_cache=ContestInfoCache()
    )
    catalog_updater = ProblemCatalogUpdater(client, scope=scope)
    inactivity_check = InactivityCheck(
        scope=scope,
        sender=sender,
        inactivity_days=settings.inactivity_days,
        pause_seconds=settings.reminder_pause_seconds,
    )
    sync_service = SyncService(
        client,
        orchestrator=orchestrator,
        catalog_updater=catalog_updater,
        scope=scope,
    )
    scheduler = SyncScheduler(
        {
            PROFILE_SYNC_JOB: lambda: sync_service.run_full_sync(stages=("contests", "profiles")),
            INACTIVITY_JOB: inactivity_check.run,
            CATALOG_JOB: lambda: sync_service.run_full_sync(stages=("problem_catalog",)),
        },
        timezone=settings.scheduler_timezone,
    )
    return SyncRuntime(
        settings=settings,
        client=client,
        orchestrator=orchestrator,
        catalog_updater=catalog_updater,
        inactivity_check=inactivity_check,
        sync_service=sync_service,
        scheduler=scheduler,
        background=BackgroundRunner(max_workers=settings.background_workers),
    )


__all__ = [
    "CATALOG_JOB",
    "INACTIVITY_JOB",
    "PROFILE_SYNC_JOB",
    "SyncRuntime",
    "build_runtime",
]
