"""Submission persistence and read-side aggregation."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import and_, func, select, update
from sqlalchemy.orm import Session

from app.domain import ContestResult, ProblemMetadata, RawSubmission
from app.models import Contest, Submission, VerdictKind


class SubmissionRepository:
    """Upsert submissions by their upstream id and maintain contest backfill fields."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def upsert_submission(self, handle: str, submission: RawSubmission) -> Submission:
        existing = self._session.get(Submission, submission.submission_id)
        if existing is None:
            existing = Submission(submission_id=submission.submission_id)
            self._session.add(existing)

        existing.handle = handle
        existing.contest_id = submission.contest_id
        existing.problem_index = submission.problem_index
        existing.problem_name = submission.problem_name
        existing.verdict = submission.verdict.value
        existing.raw_verdict = submission.raw_verdict
        existing.language = submission.language
        existing.submitted_at_seconds = submission.submitted_at_seconds
        # Enrichment only ever fills gaps; a payload without rating or tags
        # must not erase values learned earlier.
        if submission.problem_rating is not None:
            existing.problem_rating = submission.problem_rating
        if submission.problem_tags:
            existing.problem_tags = list(submission.problem_tags)
        elif existing.problem_tags is None:
            existing.problem_tags = []
        return existing

    def apply_contest_result(
        self,
        handle: str,
        contest_id: int,
        *,
        rating_change: int,
        rank: int,
        contest_name: str,
        total_problems: int,
    ) -> int:
        statement = (
            update(Submission)
            .where(Submission.handle == handle, Submission.contest_id == contest_id)
            .values(
                rating_change=rating_change,
                rank=rank,
                contest_name=contest_name,
                total_problems_in_contest=total_problems,
            )
            .execution_options(synchronize_session="fetch")
        )
        result = self._session.execute(statement)
        return result.rowcount or 0

    def backfill_problem(self, metadata: ProblemMetadata) -> int:
        if metadata.rating is None:
            return 0
        statement = (
            update(Submission)
            .where(
                Submission.contest_id == metadata.contest_id,
                Submission.problem_index == metadata.index,
                Submission.problem_rating.is_(None),
            )
            .values(problem_rating=metadata.rating, problem_tags=list(metadata.tags))
            .execution_options(synchronize_session="fetch")
        )
        result = self._session.execute(statement)
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Queries

    def known_problem_metadata(
        self, keys: Iterable[tuple[int, str]]
    ) -> dict[tuple[int, str], ProblemMetadata]:
        """Return ratings already stored on submissions for the given problems."""

        wanted = set(keys)
        if not wanted:
            return {}
        contest_ids = {contest_id for contest_id, _ in wanted}
        query = select(
            Submission.contest_id,
            Submission.problem_index,
            Submission.problem_name,
            Submission.problem_rating,
            Submission.problem_tags,
        ).where(
            Submission.contest_id.in_(contest_ids),
            Submission.problem_rating.is_not(None),
        )
        known: dict[tuple[int, str], ProblemMetadata] = {}
        for contest_id, index, name, rating, tags in self._session.execute(query):
            key = (contest_id, index)
            if key not in wanted or key in known:
                continue
            known[key] = ProblemMetadata(
                contest_id=contest_id,
                index=index,
                name=name,
                type="PROGRAMMING",
                rating=rating,
                tags=list(tags or []),
            )
        return known

    def list_for_handle(self, handle: str) -> list[Submission]:
        query = (
            select(Submission)
            .where(Submission.handle == handle)
            .order_by(Submission.submission_id.asc())
        )
        return list(self._session.execute(query).scalars().all())

    def solved_problem_keys(self) -> list[tuple[int, str, int]]:
        """Distinct accepted problems across all handles, most submitted first."""

        query = (
            select(
                Submission.contest_id,
                Submission.problem_index,
                func.count().label("accepted"),
            )
            .where(Submission.verdict == VerdictKind.ACCEPTED.value)
            .group_by(Submission.contest_id, Submission.problem_index)
            .order_by(func.count().desc(), Submission.contest_id.asc(), Submission.problem_index.asc())
        )
        return [(row[0], row[1], row[2]) for row in self._session.execute(query)]

    def contest_results(self, handle: str) -> list[ContestResult]:
        """One rated participation per contest, oldest first."""

        first_submission = func.min(Submission.submitted_at_seconds)
        query = (
            select(
                Submission.contest_id,
                func.max(Submission.contest_name),
                func.max(Submission.rating_change),
                func.max(Submission.rank),
                first_submission,
                Contest.start_time,
            )
            .join(Contest, and_(Contest.contest_id == Submission.contest_id), isouter=True)
            .where(Submission.handle == handle, Submission.rating_change.is_not(None))
            .group_by(Submission.contest_id, Contest.start_time)
        )
        results = [
            ContestResult(
                contest_id=contest_id,
                contest_name=contest_name,
                rating_change=rating_change,
                rank=rank,
                timestamp=start_time if start_time is not None else first_at,
            )
            for contest_id, contest_name, rating_change, rank, first_at, start_time in self._session.execute(query)
        ]
        results.sort(key=lambda item: (item.timestamp, item.contest_id))
        return results


__all__ = ["SubmissionRepository"]
