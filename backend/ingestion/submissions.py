"""Merge a handle's full submission history into persisted submissions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Protocol, Sequence

from loguru import logger
from sqlalchemy.orm import Session

from app.domain import ProblemMetadata, RawSubmission
from app.models import VerdictKind
from app.repositories import ProblemRepository, SubmissionRepository

from .errors import UpstreamError
from .normalize import is_valid_problem_id


class ProblemMetadataSource(Protocol):
    def fetch_problem_metadata(self, contest_id: int, index: str) -> ProblemMetadata | None:
        ...


def solved_key(contest_id: int, problem_index: str) -> str:
    return f"{contest_id}-{problem_index}"


@dataclass(slots=True)
class SubmissionPlan:
    """Enriched submissions ready to be written in one transaction."""

    handle: str
    submissions: list[RawSubmission] = field(default_factory=list)
    solved: set[str] = field(default_factory=set)
    last_submission_seconds: int | None = None
    metadata_requests: int = 0
    metadata_failures: list[str] = field(default_factory=list)
    quarantined: set[tuple[int, str]] = field(default_factory=set)

    @property
    def last_submission_time(self) -> datetime | None:
        if not self.last_submission_seconds:
            return None
        return datetime.fromtimestamp(self.last_submission_seconds, tz=timezone.utc)


@dataclass(slots=True)
class SubmissionReconcileResult:
    upserted: int
    solved: frozenset[str]
    last_submission_time: datetime | None

    @property
    def total_solved(self) -> int:
        return len(self.solved)


class SubmissionReconciler:
    """Upsert submissions by id, deduplicate solved problems and track last activity.

    Problem metadata is only requested upstream for submissions whose payload
    carries no rating and whose problem is not already known locally; one
    failed lookup leaves that submission unrated instead of aborting the run.
    Gym or otherwise non-standard problem identifiers are never looked up.
    """

    def __init__(self, client: ProblemMetadataSource) -> None:
        self._client = client

    def prepare(
        self, handle: str, submissions: Sequence[RawSubmission], session: Session
    ) -> SubmissionPlan:
        plan = SubmissionPlan(handle=handle)
        unrated = {item.problem_key for item in submissions if item.problem_rating is None}
        cache: dict[tuple[int, str], ProblemMetadata | None] = {}
        if unrated:
            cache.update(SubmissionRepository(session).known_problem_metadata(unrated))
            missing = unrated - cache.keys()
            cache.update(ProblemRepository(session).rated_metadata(missing))

        for submission in submissions:
            if (
                plan.last_submission_seconds is None
                or submission.submitted_at_seconds > plan.last_submission_seconds
            ):
                plan.last_submission_seconds = submission.submitted_at_seconds

            if submission.verdict is VerdictKind.ACCEPTED:
                plan.solved.add(solved_key(submission.contest_id, submission.problem_index))

            if submission.problem_rating is None:
                metadata = self._lookup(submission, cache, plan)
                if metadata is not None:
                    submission = replace(
                        submission,
                        problem_rating=metadata.rating,
                        problem_tags=submission.problem_tags or list(metadata.tags),
                    )
            plan.submissions.append(submission)

        logger.debug(
            "Prepared {} submissions for {} ({} metadata requests, {} failures)",
            len(plan.submissions),
            handle,
            plan.metadata_requests,
            len(plan.metadata_failures),
        )
        return plan

    def apply(self, plan: SubmissionPlan, session: Session) -> SubmissionReconcileResult:
        repo = SubmissionRepository(session)
        for submission in plan.submissions:
            repo.upsert_submission(plan.handle, submission)
        session.flush()
        return SubmissionReconcileResult(
            upserted=len(plan.submissions),
            solved=frozenset(plan.solved),
            last_submission_time=plan.last_submission_time,
        )

    def _lookup(
        self,
        submission: RawSubmission,
        cache: dict[tuple[int, str], ProblemMetadata | None],
        plan: SubmissionPlan,
    ) -> ProblemMetadata | None:
        key = submission.problem_key
        if key in cache:
            return cache[key]

        if not is_valid_problem_id(*key):
            if key not in plan.quarantined:
                logger.debug(
                    "Not enriching non-standard problem {}{} for {}",
                    key[0],
                    key[1],
                    plan.handle,
                )
            plan.quarantined.add(key)
            cache[key] = None
            return None

        plan.metadata_requests += 1
        try:
            metadata = self._client.fetch_problem_metadata(*key)
        except UpstreamError as exc:
            logger.warning(
                "Problem metadata lookup failed for {}{} ({}): {}",
                key[0],
                key[1],
                plan.handle,
                exc,
            )
            plan.metadata_failures.append(str(exc))
            metadata = None
        cache[key] = metadata
        return metadata


__all__ = [
    "SubmissionPlan",
    "SubmissionReconcileResult",
    "SubmissionReconciler",
    "solved_key",
]
