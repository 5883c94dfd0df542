"""Canonical problem catalog persistence."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from sqlalchemy import select, tuple_
from sqlalchemy.orm import Session

from app.domain import ProblemMetadata
from app.models import Problem


class ProblemRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def upsert_problem(self, metadata: ProblemMetadata) -> Problem:
        existing = self._session.get(Problem, (metadata.contest_id, metadata.index))
        if existing is None:
            existing = Problem(contest_id=metadata.contest_id, index=metadata.index)
            self._session.add(existing)

        existing.name = metadata.name or existing.name or f"{metadata.contest_id}{metadata.index}"
        existing.type = metadata.type
        existing.rating = metadata.rating
        existing.tags = list(metadata.tags)
        existing.last_updated = datetime.now(timezone.utc)
        return existing

    def rated_metadata(
        self, keys: Iterable[tuple[int, str]]
    ) -> dict[tuple[int, str], ProblemMetadata]:
        wanted = list(set(keys))
        if not wanted:
            return {}
        query = select(Problem).where(
            tuple_(Problem.contest_id, Problem.index).in_(wanted),
            Problem.rating.is_not(None),
        )
        return {
            (problem.contest_id, problem.index): ProblemMetadata(
                contest_id=problem.contest_id,
                index=problem.index,
                name=problem.name,
                type=problem.type,
                rating=problem.rating,
                tags=list(problem.tags or []),
            )
            for problem in self._session.execute(query).scalars()
        }

    def delete_where(self, predicate: Callable[[int, str], bool]) -> list[tuple[int, str]]:
        removed: list[tuple[int, str]] = []
        for problem in self._session.execute(select(Problem)).scalars().all():
            if predicate(problem.contest_id, problem.index):
                removed.append((problem.contest_id, problem.index))
                self._session.delete(problem)
        return removed


__all__ = ["ProblemRepository"]
