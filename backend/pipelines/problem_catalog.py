"""Maintain the canonical problem catalog independently of profile syncs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from loguru import logger

from app.domain import ProblemMetadata
from app.repositories import ProblemRepository, SubmissionRepository
from ingestion.errors import UpstreamError
from ingestion.normalize import is_valid_problem_id
from ingestion.service import SessionScope, session_scope


class ProblemSource(Protocol):
    def fetch_problem_metadata(self, contest_id: int, index: str) -> ProblemMetadata | None:
        ...


@dataclass(slots=True)
class CatalogUpdateResult:
    total: int = 0
    success: int = 0
    not_found: int = 0
    errors: int = 0
    skipped: int = 0
    backfilled_submissions: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success,
            "not_found": self.not_found,
            "errors": self.errors,
            "skipped": self.skipped,
            "backfilled_submissions": self.backfilled_submissions,
            "failures": list(self.failures),
        }


class ProblemCatalogUpdater:
    """Refresh catalog rows for every solved problem, most popular first."""

    def __init__(self, client: ProblemSource, *, scope: SessionScope = session_scope) -> None:
        self._client = client
        self._scope = scope

    def run(self, *, limit: int | None = None) -> CatalogUpdateResult:
        with self._scope() as session:
            keys = SubmissionRepository(session).solved_problem_keys()
        if limit is not None:
            keys = keys[:limit]

        result = CatalogUpdateResult(total=len(keys))
        logger.info("Updating problem catalog for {} solved problems", len(keys))

        for contest_id, index, _accepted in keys:
            if not is_valid_problem_id(contest_id, index):
                result.skipped += 1
                logger.debug("Skipping non-standard problem id {}{}", contest_id, index)
                continue

            try:
                metadata = self._client.fetch_problem_metadata(contest_id, index)
            except UpstreamError as exc:
                result.errors += 1
                result.failures.append(
                    {"contest_id": contest_id, "index": index, "reason": str(exc)}
                )
                logger.warning("Catalog lookup failed for {}{}: {}", contest_id, index, exc)
                continue

            if metadata is None:
                result.not_found += 1
                continue

            with self._scope() as session:
                ProblemRepository(session).upsert_problem(metadata)
                result.backfilled_submissions += SubmissionRepository(session).backfill_problem(
                    metadata
                )
            result.success += 1

        logger.info(
            "Problem catalog update finished: success={}, not_found={}, errors={}, skipped={}",
            result.success,
            result.not_found,
            result.errors,
            result.skipped,
        )
        return result

    def cleanup_invalid_problems(self) -> list[tuple[int, str]]:
        with self._scope() as session:
            removed = ProblemRepository(session).delete_where(
                lambda contest_id, index: not is_valid_problem_id(contest_id, index)
            )
        if removed:
            logger.info("Removed {} invalid problem(s) from the catalog", len(removed))
        return removed


__all__ = ["CatalogUpdateResult", "ProblemCatalogUpdater"]
