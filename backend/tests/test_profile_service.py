from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.domain import RawSubmission
from app.models import Contest, VerdictKind
from app.repositories import SubmissionRepository
from app.services.profile_service import ProfileNotFoundError, ProfileService

DAY = 86_400
NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
NOW_TS = int(NOW.timestamp())


def _participate(scope, handle, contest_id, *, delta, rank, at, submissions=1):
    with scope() as session:
        repo = SubmissionRepository(session)
        for offset in range(submissions):
            repo.upsert_submission(
                handle,
                RawSubmission(
                    submission_id=contest_id * 100 + offset,
                    contest_id=contest_id,
                    problem_index="ABCDEFG"[offset],
                    problem_name="p",
                    problem_rating=1000,
                    problem_tags=[],
                    verdict=VerdictKind.ACCEPTED,
                    raw_verdict="OK",
                    language="Python 3",
                    submitted_at_seconds=at + offset * 60,
                ),
            )
        repo.apply_contest_result(
            handle,
            contest_id,
            rating_change=delta,
            rank=rank,
            contest_name=f"Round {contest_id}",
            total_problems=6,
        )


def test_contest_history_lists_newest_first_with_progression(scope, session_factory, add_profile):
    add_profile("alice", current_rating=1450)
    _participate(scope, "alice", 1000, delta=100, rank=500, at=NOW_TS - 40 * DAY, submissions=3)
    _participate(scope, "alice", 1001, delta=-50, rank=900, at=NOW_TS - 20 * DAY)
    _participate(scope, "alice", 1002, delta=0, rank=700, at=NOW_TS - 5 * DAY)

    with session_factory() as session:
        history = ProfileService(session).contest_history("alice", now=NOW)

    assert [contest.contest_id for contest in history.contests] == [1002, 1001, 1000]
    assert history.contests[2].rank == 500
    progression = [(point.contest_id, point.rating_before, point.rating_after) for point in history.rating_progression]
    assert progression == [(1000, 1400, 1500), (1001, 1500, 1450), (1002, 1450, 1450)]


def test_contest_history_window_keeps_anchor(scope, session_factory, add_profile):
    add_profile("alice", current_rating=1450)
    _participate(scope, "alice", 1000, delta=100, rank=500, at=NOW_TS - 40 * DAY)
    _participate(scope, "alice", 1001, delta=-50, rank=900, at=NOW_TS - 20 * DAY)

    with session_factory() as session:
        history = ProfileService(session).contest_history("alice", days=30, now=NOW)

    assert [contest.contest_id for contest in history.contests] == [1001]
    assert history.rating_progression[0].rating_before == 1500
    assert history.rating_progression[0].rating_after == 1450


def test_contest_start_time_is_preferred_timestamp(scope, session_factory, add_profile):
    add_profile("alice", current_rating=1500)
    _participate(scope, "alice", 1000, delta=100, rank=1, at=NOW_TS - 3 * DAY)
    with scope() as session:
        session.add(Contest(contest_id=1000, name="Round 1000", start_time=NOW_TS - 4 * DAY, total_problems=6))

    with session_factory() as session:
        history = ProfileService(session).contest_history("alice", now=NOW)

    assert history.contests[0].timestamp == NOW_TS - 4 * DAY


def test_unrated_submissions_are_not_contests(scope, session_factory, add_profile):
    add_profile("alice", current_rating=0)
    with scope() as session:
        SubmissionRepository(session).upsert_submission(
            "alice",
            RawSubmission(
                submission_id=1,
                contest_id=1000,
                problem_index="A",
                problem_name="p",
                problem_rating=None,
                problem_tags=[],
                verdict=VerdictKind.ACCEPTED,
                raw_verdict="OK",
                language="Python 3",
                submitted_at_seconds=NOW_TS,
            ),
        )

    with session_factory() as session:
        history = ProfileService(session).contest_history("alice", now=NOW)

    assert history.contests == []
    assert history.rating_progression == []


def test_unknown_profile_raises(session_factory):
    with session_factory() as session:
        with pytest.raises(ProfileNotFoundError):
            ProfileService(session).contest_history("ghost")
