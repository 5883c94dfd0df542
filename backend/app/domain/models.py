"""Typed domain representations shared by ingestion, persistence, and the API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from app.models import VerdictKind


@dataclass(slots=True)
class ProfileInfo:
    """Upstream account summary for one handle."""

    handle: str
    rating: int
    max_rating: int
    rank: str


@dataclass(slots=True)
class RawSubmission:
    """One normalized entry of a handle's submission history."""

    submission_id: int
    contest_id: int
    problem_index: str
    problem_name: str
    problem_rating: int | None
    problem_tags: list[str]
    verdict: VerdictKind
    raw_verdict: str | None
    language: str
    submitted_at_seconds: int

    @property
    def problem_key(self) -> tuple[int, str]:
        return (self.contest_id, self.problem_index)


@dataclass(slots=True)
class RatingChangeEvent:
    """A single contest's effect on a handle's rating. Never persisted directly."""

    contest_id: int
    contest_name: str
    old_rating: int
    new_rating: int
    rank: int
    rating_update_time: int

    @property
    def rating_change(self) -> int:
        return self.new_rating - self.old_rating


@dataclass(slots=True)
class ContestSummary:
    contest_id: int
    name: str
    type: str | None
    phase: str | None
    start_time: int | None
    duration_seconds: int | None


@dataclass(slots=True)
class StandingsSlice:
    """The part of a contest's standings relevant to one handle."""

    contest: ContestSummary | None
    problem_count: int


@dataclass(slots=True)
class ProblemMetadata:
    contest_id: int
    index: str
    name: str
    type: str
    rating: int | None
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ProfileSnapshot:
    """Detached copy of a profile row as it stood after a sync."""

    handle: str
    current_rating: int
    max_rating: int
    rank_tier: str
    total_solved: int
    last_submission_time: datetime | None
    last_sync_time: datetime | None


@dataclass(slots=True)
class ContestResult:
    """Rated participation reconstructed from reconciled submissions."""

    contest_id: int
    contest_name: str | None
    rating_change: int
    rank: int | None
    timestamp: int
