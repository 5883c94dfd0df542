"""Contest persistence helpers."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.domain import ContestSummary
from app.models import Contest


def infer_contest_type(name: str) -> str:
    return "CF" if "Div." in name else "Other"


class ContestRepository:
    """Upsert contests by id; mutable metadata is last-writer-wins."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _claim(self, contest_id: int, name: str) -> Contest:
        existing = self._session.get(Contest, contest_id)
        if existing is not None:
            return existing

        # Concurrent profile syncs may insert the same new contest; the loser
        # keeps the winner's row and updates it below.
        dialect = self._session.get_bind().dialect.name
        insert = postgresql_insert if dialect == "postgresql" else sqlite_insert
        statement = (
            insert(Contest)
            .values(contest_id=contest_id, name=name, total_problems=0)
            .on_conflict_do_nothing(index_elements=[Contest.contest_id])
        )
        self._session.execute(statement)
        return self._session.get(Contest, contest_id)

    def upsert_summary(self, summary: ContestSummary) -> Contest:
        existing = self._claim(summary.contest_id, summary.name)

        existing.name = summary.name
        existing.type = summary.type or existing.type or infer_contest_type(summary.name)
        existing.phase = summary.phase or existing.phase
        if summary.start_time is not None:
            existing.start_time = summary.start_time
        if summary.duration_seconds is not None:
            existing.duration_seconds = summary.duration_seconds
        return existing

    def upsert_from_rating_change(
        self,
        contest_id: int,
        *,
        name: str,
        total_problems: int,
        summary: ContestSummary | None,
        fallback_start_time: int | None,
    ) -> Contest:
        if summary is not None:
            existing = self.upsert_summary(summary)
            existing.name = name
        else:
            existing = self._claim(contest_id, name)
            existing.name = name
            if existing.type is None:
                existing.type = infer_contest_type(name)
            if existing.start_time is None:
                existing.start_time = fallback_start_time
        existing.total_problems = total_problems
        return existing

    def upsert_many(self, summaries: Iterable[ContestSummary]) -> int:
        count = 0
        for summary in summaries:
            self.upsert_summary(summary)
            count += 1
        return count

    def known_problem_counts(self, contest_ids: Iterable[int]) -> dict[int, int]:
        ids = set(contest_ids)
        if not ids:
            return {}
        query = select(Contest.contest_id, Contest.total_problems).where(
            Contest.contest_id.in_(ids), Contest.total_problems > 0
        )
        return {contest_id: total for contest_id, total in self._session.execute(query)}


__all__ = ["ContestRepository", "infer_contest_type"]
