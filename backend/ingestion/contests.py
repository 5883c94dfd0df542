"""Backfill contest metadata and per-contest results onto submissions."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from loguru import logger
from sqlalchemy.orm import Session

from app.domain import ContestSummary, RatingChangeEvent, StandingsSlice
from app.repositories import ContestRepository, SubmissionRepository

from .errors import UpstreamError
from .service import SessionScope


class StandingsSource(Protocol):
    def fetch_contest_standings(self, contest_id: int, handle: str) -> StandingsSlice:
        ...


class ContestListSource(Protocol):
    def fetch_contest_list(self) -> list[ContestSummary]:
        ...


@dataclass(slots=True)
class ContestUpdate:
    event: RatingChangeEvent
    total_problems: int
    summary: ContestSummary | None = None


@dataclass(slots=True)
class ContestFailure:
    contest_id: int
    message: str

    def to_dict(self) -> dict[str, object]:
        return {"contest_id": self.contest_id, "message": self.message}


@dataclass(slots=True)
class ContestPlan:
    handle: str
    updates: list[ContestUpdate] = field(default_factory=list)
    failures: list[ContestFailure] = field(default_factory=list)


class ContestInfoCache:
    """Process-local contest facts shared by concurrent profile syncs."""

    def __init__(self) -> None:
        self._entries: dict[int, tuple[int, ContestSummary | None]] = {}
        self._lock = threading.Lock()

    def get(self, contest_id: int) -> tuple[int, ContestSummary | None] | None:
        with self._lock:
            return self._entries.get(contest_id)

    def set(self, contest_id: int, total_problems: int, summary: ContestSummary | None) -> None:
        with self._lock:
            self._entries[contest_id] = (total_problems, summary)


class ContestReconciler:
    """Turn rating-change events into contest upserts and submission backfills."""

    def __init__(self, client: StandingsSource, cache: ContestInfoCache | None = None) -> None:
        self._client = client
        self._cache = cache or ContestInfoCache()

    def prepare(
        self, handle: str, events: Sequence[RatingChangeEvent], session: Session
    ) -> ContestPlan:
        plan = ContestPlan(handle=handle)
        stored_counts = ContestRepository(session).known_problem_counts(
            event.contest_id for event in events
        )

        for event in events:
            try:
                total_problems, summary = self._problem_count(event, handle, stored_counts)
            except UpstreamError as exc:
                logger.warning(
                    "Skipping contest {} for {}: {}", event.contest_id, handle, exc
                )
                plan.failures.append(ContestFailure(contest_id=event.contest_id, message=str(exc)))
                continue
            plan.updates.append(
                ContestUpdate(event=event, total_problems=total_problems, summary=summary)
            )
        return plan

    def apply(self, plan: ContestPlan, session: Session) -> int:
        contests = ContestRepository(session)
        submissions = SubmissionRepository(session)
        touched = 0
        for update in plan.updates:
            event = update.event
            contests.upsert_from_rating_change(
                event.contest_id,
                name=event.contest_name,
                total_problems=update.total_problems,
                summary=update.summary,
                fallback_start_time=event.rating_update_time or None,
            )
            touched += submissions.apply_contest_result(
                plan.handle,
                event.contest_id,
                rating_change=event.rating_change,
                rank=event.rank,
                contest_name=event.contest_name,
                total_problems=update.total_problems,
            )
        session.flush()
        return touched

    def _problem_count(
        self,
        event: RatingChangeEvent,
        handle: str,
        stored_counts: dict[int, int],
    ) -> tuple[int, ContestSummary | None]:
        stored = stored_counts.get(event.contest_id)
        if stored:
            return stored, None

        cached = self._cache.get(event.contest_id)
        if cached is not None:
            return cached

        standings = self._client.fetch_contest_standings(event.contest_id, handle)
        self._cache.set(event.contest_id, standings.problem_count, standings.contest)
        return standings.problem_count, standings.contest


def sync_contest_list(client: ContestListSource, scope: SessionScope) -> int:
    """Upsert every listed contest; problem counts are left to standings."""

    contests = client.fetch_contest_list()
    with scope() as session:
        count = ContestRepository(session).upsert_many(contests)
    logger.info("Synced {} contests", count)
    return count


__all__ = [
    "ContestFailure",
    "ContestInfoCache",
    "ContestPlan",
    "ContestReconciler",
    "ContestUpdate",
    "sync_contest_list",
]
