from __future__ import annotations

import json
import sys
import threading
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from app.core.config import Settings
from app.db import build_session_factory, create_schema
from app.domain import (
    ContestSummary,
    ProblemMetadata,
    ProfileInfo,
    RatingChangeEvent,
    RawSubmission,
    StandingsSlice,
)
from app.models import Profile
from ingestion.errors import HandleNotFoundError
from ingestion.service import make_session_scope


class StubCodeforcesClient:
    """In-memory upstream; values that are exceptions are raised on lookup."""

    def __init__(self) -> None:
        self.profiles: dict[str, ProfileInfo | Exception] = {}
        self.submissions: dict[str, list[RawSubmission]] = {}
        self.ratings: dict[str, list[RatingChangeEvent]] = {}
        self.standings: dict[int, StandingsSlice | Exception] = {}
        self.problems: dict[tuple[int, str], ProblemMetadata | Exception | None] = {}
        self.contests: list[ContestSummary] = []
        self.calls: list[tuple] = []
        self._lock = threading.Lock()

    def _record(self, *call) -> None:
        with self._lock:
            self.calls.append(call)

    def calls_to(self, method: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == method]

    def fetch_profile(self, handle: str) -> ProfileInfo:
        self._record("fetch_profile", handle)
        value = self.profiles.get(handle)
        if value is None:
            raise HandleNotFoundError(
                f"user.info[{handle}]",
                f"handles: User with handle {handle} not found",
                status_code=400,
            )
        if isinstance(value, Exception):
            raise value
        return value

    def fetch_submissions(self, handle: str) -> list[RawSubmission]:
        self._record("fetch_submissions", handle)
        return list(self.submissions.get(handle, []))

    def fetch_rating_history(self, handle: str) -> list[RatingChangeEvent]:
        self._record("fetch_rating_history", handle)
        return list(self.ratings.get(handle, []))

    def fetch_contest_list(self) -> list[ContestSummary]:
        self._record("fetch_contest_list")
        return list(self.contests)

    def fetch_contest_standings(self, contest_id: int, handle: str) -> StandingsSlice:
        self._record("fetch_contest_standings", contest_id, handle)
        value = self.standings.get(contest_id)
        if value is None:
            return StandingsSlice(contest=None, problem_count=5)
        if isinstance(value, Exception):
            raise value
        return value

    def fetch_problem_metadata(self, contest_id: int, index: str) -> ProblemMetadata | None:
        self._record("fetch_problem_metadata", contest_id, index)
        value = self.problems.get((contest_id, index))
        if isinstance(value, Exception):
            raise value
        return value

    def close(self) -> None:
        self._record("close")


@pytest.fixture
def stub_client() -> StubCodeforcesClient:
    return StubCodeforcesClient()


@pytest.fixture
def session_factory(tmp_path):
    engine, factory = build_session_factory(f"sqlite:///{tmp_path / 'cfsync.db'}")
    create_schema(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def scope(session_factory):
    return make_session_scope(session_factory)


@pytest.fixture
def add_profile(scope):
    def _add(handle: str, **fields) -> None:
        with scope() as session:
            session.add(Profile(handle=handle, **fields))

    return _add


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'cfsync.db'}",
        sync_batch_size=2,
        sync_batch_pause_seconds=0.5,
        scheduler_enabled=False,
    )


@pytest.fixture
def sample_submissions_payload() -> list[dict[str, object]]:
    path = Path(__file__).parent / "data" / "sample_submissions.json"
    return json.loads(path.read_text(encoding="utf-8"))
