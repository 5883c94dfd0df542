"""Synchronise tracked profiles with their upstream activity."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Protocol, Sequence

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import Settings, get_settings
from app.domain import (
    ProblemMetadata,
    ProfileInfo,
    ProfileSnapshot,
    RatingChangeEvent,
    RawSubmission,
    StandingsSlice,
)
from app.repositories import ProfileRepository, to_snapshot
from ingestion.contests import ContestFailure, ContestInfoCache, ContestReconciler
from ingestion.errors import HandleNotFoundError, UpstreamError
from ingestion.service import SessionScope, session_scope
from ingestion.submissions import SubmissionReconciler


class ProfileSource(Protocol):
    def fetch_profile(self, handle: str) -> ProfileInfo:
        ...

    def fetch_submissions(self, handle: str) -> list[RawSubmission]:
        ...

    def fetch_rating_history(self, handle: str) -> list[RatingChangeEvent]:
        ...

    def fetch_contest_standings(self, contest_id: int, handle: str) -> StandingsSlice:
        ...

    def fetch_problem_metadata(self, contest_id: int, index: str) -> ProblemMetadata | None:
        ...


class ProfileNotTrackedError(LookupError):
    """The handle has no local profile row to update."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ProfileSyncResult:
    handle: str
    profile: ProfileSnapshot | None = None
    error: str | None = None
    submissions: int = 0
    contests_applied: int = 0
    contest_failures: list[ContestFailure] = field(default_factory=list)
    metadata_failures: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def warnings(self) -> list[str]:
        messages = [f"contest {item.contest_id}: {item.message}" for item in self.contest_failures]
        messages.extend(f"problem metadata: {message}" for message in self.metadata_failures)
        return messages

    def to_dict(self) -> dict[str, Any]:
        return {
            "handle": self.handle,
            "succeeded": self.succeeded,
            "error": self.error,
            "submissions": self.submissions,
            "contests_applied": self.contests_applied,
            "warnings": self.warnings,
        }


@dataclass(slots=True)
class SyncSummary:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    per_profile_errors: dict[str, str] = field(default_factory=dict)
    results: list[ProfileSyncResult] = field(default_factory=list)

    def record(self, result: ProfileSyncResult) -> None:
        self.results.append(result)
        if result.succeeded:
            self.succeeded += 1
        else:
            self.failed += 1
            self.per_profile_errors[result.handle] = result.error or "unknown error"

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "per_profile_errors": dict(self.per_profile_errors),
            "warnings": {
                result.handle: result.warnings for result in self.results if result.warnings
            },
        }


def _chunked(items: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    if size <= 0:
        yield items
        return
    for index in range(0, len(items), size):
        yield items[index : index + size]


class ProfileSyncOrchestrator:
    """Coordinate fetching and reconciliation for one or many profiles.

    Upstream reads for a profile happen before its write transaction, and the
    writes (submissions, then contest backfill, then the profile row) commit
    together, so a failed sync leaves the stored profile untouched.
    """

    def __init__(
        self,
        client: ProfileSource,
        *,
        scope: SessionScope = session_scope,
        settings: Settings | None = None,
        contest_cache: ContestInfoCache | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = client
        self._scope = scope
        self._sleep = sleep
        self._clock = clock
        self._submissions = SubmissionReconciler(client)
        self._contests = ContestReconciler(client, contest_cache)

    def sync_one(self, handle: str) -> ProfileSyncResult:
        result = ProfileSyncResult(handle=handle)
        try:
            result.profile = self._sync(handle, result)
        except HandleNotFoundError as exc:
            result.error = f"handle not found upstream: {exc.message}"
            logger.warning("Handle {} no longer resolves upstream; stored data left untouched", handle)
        except ProfileNotTrackedError:
            result.error = "profile is not tracked locally"
            logger.warning("Refusing to sync untracked handle {}", handle)
        except UpstreamError as exc:
            result.error = str(exc)
            logger.warning("Upstream failure while syncing {}: {}", handle, exc)
        except SQLAlchemyError as exc:
            result.error = f"persistence failure: {exc}"
            logger.exception("Persistence failure while syncing {}", handle)
        except Exception as exc:  # noqa: BLE001
            result.error = f"unexpected error: {exc}"
            logger.exception("Unexpected error while syncing {}", handle)
        else:
            if result.warnings:
                logger.info(
                    "Synced {} with {} warning(s): {}",
                    handle,
                    len(result.warnings),
                    "; ".join(result.warnings),
                )
            else:
                logger.info("Synced {}", handle)
        return result

    def sync_all(self, handles: Sequence[str] | None = None) -> SyncSummary:
        if handles is None:
            with self._scope() as session:
                handles = ProfileRepository(session).list_handles()

        summary = SyncSummary(total=len(handles))
        batch_size = self.settings.sync_batch_size
        pause = self.settings.sync_batch_pause_seconds
        batches = list(_chunked(list(handles), batch_size))
        logger.info(
            "Starting profile sync for {} profiles in {} batch(es) of up to {}",
            len(handles),
            len(batches),
            batch_size,
        )

        for position, batch in enumerate(batches):
            with ThreadPoolExecutor(
                max_workers=len(batch), thread_name_prefix="profile-sync"
            ) as pool:
                for result in pool.map(self.sync_one, batch):
                    summary.record(result)
            if pause > 0 and position < len(batches) - 1:
                self._sleep(pause)

        logger.info(
            "Profile sync finished: succeeded={}, failed={}",
            summary.succeeded,
            summary.failed,
        )
        return summary

    def _sync(self, handle: str, result: ProfileSyncResult) -> ProfileSnapshot:
        with self._scope() as session:
            if ProfileRepository(session).get_by_handle(handle) is None:
                raise ProfileNotTrackedError(handle)

        info = self._client.fetch_profile(handle)
        raw_submissions = self._client.fetch_submissions(handle)
        with self._scope() as session:
            submission_plan = self._submissions.prepare(handle, raw_submissions, session)
        result.metadata_failures = list(submission_plan.metadata_failures)

        events = self._client.fetch_rating_history(handle)
        with self._scope() as session:
            contest_plan = self._contests.prepare(handle, events, session)
        result.contest_failures = list(contest_plan.failures)

        synced_at = self._clock()
        with self._scope() as session:
            repo = ProfileRepository(session)
            profile = repo.get_by_handle(handle)
            if profile is None:
                raise ProfileNotTrackedError(handle)
            outcome = self._submissions.apply(submission_plan, session)
            result.submissions = outcome.upserted
            result.contests_applied = self._contests.apply(contest_plan, session)
            repo.record_sync(
                profile,
                info=info,
                total_solved=outcome.total_solved,
                last_submission_time=outcome.last_submission_time,
                synced_at=synced_at,
            )
            session.flush()
            return to_snapshot(profile)


__all__ = [
    "ProfileNotTrackedError",
    "ProfileSyncOrchestrator",
    "ProfileSyncResult",
    "SyncSummary",
]
