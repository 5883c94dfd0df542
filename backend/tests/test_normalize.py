from __future__ import annotations

import pytest

from app.models import VerdictKind
from ingestion.normalize import (
    classify_verdict,
    is_valid_problem_id,
    normalize_contest,
    normalize_rating_change,
    normalize_standings,
    normalize_submission,
)


def test_normalize_submission_handles_real_payload(sample_submissions_payload):
    accepted, rejected, gym = (normalize_submission(raw) for raw in sample_submissions_payload)

    assert accepted.submission_id == 235689101
    assert accepted.problem_key == (1900, "B")
    assert accepted.problem_rating == 900
    assert accepted.problem_tags == ["dp", "math"]
    assert accepted.verdict is VerdictKind.ACCEPTED
    assert accepted.language == "Python 3"
    assert accepted.submitted_at_seconds == 1700500000

    assert rejected.verdict is VerdictKind.REJECTED
    assert rejected.raw_verdict == "WRONG_ANSWER"

    # No top-level contestId: the problem's contest id is used instead.
    assert gym.contest_id == 104520
    assert gym.problem_rating is None
    assert gym.verdict is VerdictKind.OTHER


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("OK", VerdictKind.ACCEPTED),
        ("TIME_LIMIT_EXCEEDED", VerdictKind.REJECTED),
        ("COMPILATION_ERROR", VerdictKind.REJECTED),
        ("TESTING", VerdictKind.OTHER),
        (None, VerdictKind.OTHER),
    ],
)
def test_classify_verdict(raw, expected):
    assert classify_verdict(raw) is expected


@pytest.mark.parametrize(
    ("contest_id", "index", "valid"),
    [
        (1000, "A", True),
        (1934, "F2", True),
        (104520, "C", False),
        (0, "A", False),
        (-3, "A", False),
        (1000, "", False),
        (1000, "1A", False),
        (1000, None, False),
    ],
)
def test_is_valid_problem_id(contest_id, index, valid):
    assert is_valid_problem_id(contest_id, index) is valid


def test_normalize_rating_change_computes_delta():
    event = normalize_rating_change(
        {
            "contestId": 1000,
            "contestName": "Codeforces Round #493 (Div. 2)",
            "handle": "alice",
            "rank": 321,
            "ratingUpdateTimeSeconds": 1530000000,
            "oldRating": 1400,
            "newRating": 1450,
        }
    )

    assert event.rating_change == 50
    assert event.rank == 321
    assert event.rating_update_time == 1530000000


def test_normalize_rating_change_rejects_missing_ratings():
    with pytest.raises(ValueError):
        normalize_rating_change({"contestId": 1000, "oldRating": "n/a"})


def test_normalize_contest_and_standings():
    contest = normalize_contest(
        {
            "id": 1900,
            "name": "Codeforces Round 911 (Div. 2)",
            "type": "CF",
            "phase": "FINISHED",
            "durationSeconds": 7200,
            "startTimeSeconds": 1700400000,
        }
    )
    assert contest.start_time == 1700400000
    assert contest.duration_seconds == 7200

    standings = normalize_standings(
        {
            "contest": {"id": 1900, "name": "Codeforces Round 911 (Div. 2)"},
            "problems": [{"index": letter} for letter in "ABCDEF"],
            "rows": [{"rank": 1234, "party": {"members": [{"handle": "alice"}]}}],
        }
    )
    assert standings.problem_count == 6
    assert standings.contest is not None
    assert standings.contest.contest_id == 1900
