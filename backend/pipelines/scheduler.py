"""Cron-driven job runner with observable per-job state."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping
from zoneinfo import ZoneInfo

from croniter import croniter
from loguru import logger


class InvalidScheduleError(ValueError):
    """Raised when a cron expression cannot be parsed."""


class JobState(str, Enum):
    STOPPED = "stopped"
    SCHEDULED = "scheduled"
    RUNNING = "running"


@dataclass(slots=True)
class _Job:
    name: str
    func: Callable[[], Any]
    schedule: str | None = None
    next_run: datetime | None = None
    last_run: datetime | None = None
    last_result: dict[str, Any] | None = None
    running: bool = False
    stop_event: threading.Event | None = None
    thread: threading.Thread | None = None
    run_lock: threading.Lock = field(default_factory=threading.Lock)

    @property
    def state(self) -> JobState:
        if self.running:
            return JobState.RUNNING
        if self.stop_event is not None and not self.stop_event.is_set():
            return JobState.SCHEDULED
        return JobState.STOPPED


def validate_cron(expression: str) -> str:
    candidate = (expression or "").strip()
    if not candidate or not croniter.is_valid(candidate):
        raise InvalidScheduleError(f"'{expression}' is not a valid cron expression")
    return candidate


class SyncScheduler:
    """Each job moves between stopped, scheduled and running.

    Rescheduling stops the current timer thread and starts a new one; a run
    that is already executing is left to finish. State lives in memory only.
    """

    def __init__(
        self,
        jobs: Mapping[str, Callable[[], Any]],
        *,
        timezone: str = "UTC",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tz = ZoneInfo(timezone)
        self._clock = clock or (lambda: datetime.now(self._tz))
        self._jobs = {name: _Job(name=name, func=func) for name, func in jobs.items()}
        self._lock = threading.Lock()

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    def _job(self, name: str) -> _Job:
        try:
            return self._jobs[name]
        except KeyError:
            raise KeyError(f"Unknown job '{name}'") from None

    def _next_fire(self, cron: str) -> datetime:
        reference = self._clock()
        if reference.tzinfo is None:
            reference = reference.replace(tzinfo=self._tz)
        return croniter(cron, reference).get_next(datetime)

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self, name: str, cron: str) -> None:
        cron = validate_cron(cron)
        job = self._job(name)
        with self._lock:
            self._stop_locked(job)
            stop_event = threading.Event()
            job.schedule = cron
            job.stop_event = stop_event
            job.next_run = self._next_fire(cron)
            job.thread = threading.Thread(
                target=self._timer_loop,
                args=(job, cron, stop_event),
                name=f"scheduler-{name}",
                daemon=True,
            )
            job.thread.start()
        logger.info("Job {} scheduled with '{}' (next run {})", name, cron, job.next_run)

    def start_all(self, schedules: Mapping[str, str]) -> None:
        for name, cron in schedules.items():
            if name in self._jobs:
                self.start(name, cron)

    def stop(self, name: str) -> None:
        job = self._job(name)
        with self._lock:
            self._stop_locked(job)
        logger.info("Job {} stopped", name)

    def stop_all(self) -> None:
        for name in self._jobs:
            self.stop(name)

    def update_schedule(self, name: str, cron: str) -> None:
        # Validate before touching the running timer so a bad expression
        # leaves the previous schedule active.
        cron = validate_cron(cron)
        self._job(name)
        self.start(name, cron)

    def _stop_locked(self, job: _Job) -> None:
        if job.stop_event is not None:
            job.stop_event.set()
        job.stop_event = None
        job.thread = None
        job.next_run = None

    # ------------------------------------------------------------------
    # Execution

    def _timer_loop(self, job: _Job, cron: str, stop_event: threading.Event) -> None:
        next_run = job.next_run or self._next_fire(cron)
        while not stop_event.is_set():
            delay = (next_run - self._clock()).total_seconds()
            if stop_event.wait(max(0.0, delay)):
                break
            self.run_job(job.name)
            next_run = self._next_fire(cron)
            with self._lock:
                if job.stop_event is stop_event:
                    job.next_run = next_run

    def run_job(self, name: str) -> dict[str, Any] | None:
        job = self._job(name)
        if not job.run_lock.acquire(blocking=False):
            logger.warning("Job {} is still running; skipping this tick", name)
            return None
        try:
            job.running = True
            started = self._clock()
            logger.info("Job {} started", name)
            try:
                result = job.func()
            except Exception as exc:  # noqa: BLE001
                logger.exception("Job {} failed", name)
                outcome: dict[str, Any] = {"success": False, "error": str(exc)}
            else:
                outcome = {"success": True, "details": _as_details(result)}
                logger.info("Job {} completed", name)
            job.last_run = started
            job.last_result = outcome
            return outcome
        finally:
            job.running = False
            job.run_lock.release()

    # ------------------------------------------------------------------
    # Observability

    def state(self, name: str) -> JobState:
        return self._job(name).state

    def status(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {
                name: {
                    "name": name,
                    "state": job.state.value,
                    "schedule": job.schedule,
                    "running": job.running,
                    "last_run": job.last_run,
                    "last_result": job.last_result,
                    "next_run": job.next_run,
                }
                for name, job in self._jobs.items()
            }


def _as_details(result: Any) -> Any:
    if result is None or isinstance(result, (dict, list, str, int, float, bool)):
        return result
    to_dict = getattr(result, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return str(result)


__all__ = ["InvalidScheduleError", "JobState", "SyncScheduler", "validate_cron"]
