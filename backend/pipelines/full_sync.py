"""Full-sync coordination: contest list, profiles and the problem catalog."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Sequence

from loguru import logger

from ingestion.contests import ContestListSource, sync_contest_list
from ingestion.service import SessionScope, session_scope

from .problem_catalog import ProblemCatalogUpdater
from .profile_sync import ProfileSyncOrchestrator

FULL_SYNC_STAGES: tuple[str, ...] = ("contests", "profiles", "problem_catalog")


@dataclass(slots=True)
class StageOutcome:
    stage: str
    success: bool
    duration_seconds: float
    error: str | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "success": self.success,
            "duration_seconds": self.duration_seconds,
            "error": self.error,
            "details": self.details,
        }


@dataclass(slots=True)
class FullSyncReport:
    duration_seconds: float = 0.0
    stages: list[StageOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(stage.success for stage in self.stages)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "duration_seconds": self.duration_seconds,
            "stages": [stage.to_dict() for stage in self.stages],
        }


class SyncService:
    """Run sync stages in order; a failing stage never prevents the next one.

    A stage succeeds when it runs to completion. Per-profile and per-problem
    failures inside a stage are reported in its details instead.
    """

    def __init__(
        self,
        client: ContestListSource,
        *,
        orchestrator: ProfileSyncOrchestrator,
        catalog_updater: ProblemCatalogUpdater,
        scope: SessionScope = session_scope,
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._client = client
        self._orchestrator = orchestrator
        self._catalog = catalog_updater
        self._scope = scope
        self._timer = timer

    def sync_contests(self) -> dict[str, Any]:
        return {"contests": sync_contest_list(self._client, self._scope)}

    def sync_profiles(self, handles: Sequence[str] | None = None) -> dict[str, Any]:
        return self._orchestrator.sync_all(handles).to_dict()

    def update_catalog(self) -> dict[str, Any]:
        details = self._catalog.run().to_dict()
        details["removed_invalid"] = len(self._catalog.cleanup_invalid_problems())
        return details

    def run_full_sync(
        self,
        *,
        stages: Sequence[str] | None = None,
        handles: Sequence[str] | None = None,
    ) -> FullSyncReport:
        selected = list(stages or FULL_SYNC_STAGES)
        unknown = [stage for stage in selected if stage not in FULL_SYNC_STAGES]
        if unknown:
            raise ValueError(f"Unknown sync stage(s): {', '.join(unknown)}")

        runners: dict[str, Callable[[], dict[str, Any]]] = {
            "contests": self.sync_contests,
            "profiles": partial(self.sync_profiles, handles),
            "problem_catalog": self.update_catalog,
        }

        report = FullSyncReport()
        started = self._timer()
        for stage in FULL_SYNC_STAGES:
            if stage not in selected:
                continue
            stage_started = self._timer()
            logger.info("Starting sync stage {}", stage)
            try:
                details = runners[stage]()
            except Exception as exc:  # noqa: BLE001
                logger.exception("Sync stage {} failed", stage)
                outcome = StageOutcome(
                    stage=stage,
                    success=False,
                    duration_seconds=self._timer() - stage_started,
                    error=str(exc),
                )
            else:
                outcome = StageOutcome(
                    stage=stage,
                    success=True,
                    duration_seconds=self._timer() - stage_started,
                    details=details,
                )
            logger.info(
                "Sync stage {} finished: success={}, duration={:.2f}s",
                stage,
                outcome.success,
                outcome.duration_seconds,
            )
            report.stages.append(outcome)

        report.duration_seconds = self._timer() - started
        return report


class BackgroundRunner:
    """Bounded pool for fire-and-forget runs; at most one run is in flight."""

    def __init__(self, max_workers: int = 1) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="sync-background"
        )
        self._lock = threading.Lock()
        self._current: Future | None = None

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._current is not None and not self._current.done()

    def submit(self, fn: Callable[..., Any], *args: Any, name: str = "background sync", **kwargs: Any) -> bool:
        with self._lock:
            if self._current is not None and not self._current.done():
                logger.warning("Refusing to start {}: previous run still in flight", name)
                return False
            future = self._executor.submit(fn, *args, **kwargs)
            future.add_done_callback(partial(self._log_outcome, name))
            self._current = future
        logger.info("Queued {}", name)
        return True

    def wait(self, timeout: float | None = None) -> Any:
        with self._lock:
            future = self._current
        if future is None:
            return None
        return future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _log_outcome(name: str, future: Future) -> None:
        if future.cancelled():
            logger.warning("{} was cancelled", name)
            return
        error = future.exception()
        if error is not None:
            logger.opt(exception=error).error("{} failed", name)
            return
        logger.info("{} finished", name)


__all__ = [
    "FULL_SYNC_STAGES",
    "BackgroundRunner",
    "FullSyncReport",
    "StageOutcome",
    "SyncService",
]
