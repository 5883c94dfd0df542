from __future__ import annotations

from datetime import datetime, timezone

from app.domain import ProblemMetadata, RawSubmission
from app.models import Problem, Submission, VerdictKind
from app.repositories import SubmissionRepository
from ingestion.errors import UpstreamError
from ingestion.submissions import SubmissionReconciler


def _submission(
    submission_id: int,
    contest_id: int,
    index: str,
    *,
    verdict: VerdictKind = VerdictKind.ACCEPTED,
    rating: int | None = 1200,
    tags: list[str] | None = None,
    at: int = 1_700_000_000,
) -> RawSubmission:
    return RawSubmission(
        submission_id=submission_id,
        contest_id=contest_id,
        problem_index=index,
        problem_name=f"Problem {contest_id}{index}",
        problem_rating=rating,
        problem_tags=list(tags or []),
        verdict=verdict,
        raw_verdict="OK" if verdict is VerdictKind.ACCEPTED else "WRONG_ANSWER",
        language="Python 3",
        submitted_at_seconds=at,
    )


def _reconcile(reconciler, scope, handle, submissions):
    with scope() as session:
        plan = reconciler.prepare(handle, submissions, session)
    with scope() as session:
        return plan, reconciler.apply(plan, session)


def test_duplicate_accepted_submissions_count_once(stub_client, scope):
    submissions = [
        _submission(1, 1000, "A", at=100),
        _submission(2, 1000, "A", at=300),
        _submission(3, 1000, "B", at=200),
        _submission(4, 1000, "C", verdict=VerdictKind.REJECTED, at=400),
    ]

    _, result = _reconcile(SubmissionReconciler(stub_client), scope, "alice", submissions)

    assert result.total_solved == 2
    assert result.solved == frozenset({"1000-A", "1000-B"})
    assert result.upserted == 4
    assert result.last_submission_time == datetime.fromtimestamp(400, tz=timezone.utc)


def test_rated_submissions_never_request_metadata(stub_client, scope):
    _reconcile(
        SubmissionReconciler(stub_client),
        scope,
        "alice",
        [_submission(1, 1000, "A"), _submission(2, 1001, "B", rating=1600)],
    )

    assert stub_client.calls_to("fetch_problem_metadata") == []


def test_unrated_submission_is_enriched_once_per_problem(stub_client, scope):
    stub_client.problems[(1000, "D")] = ProblemMetadata(
        contest_id=1000, index="D", name="D", type="PROGRAMMING", rating=1900, tags=["graphs"]
    )

    _reconcile(
        SubmissionReconciler(stub_client),
        scope,
        "alice",
        [
            _submission(1, 1000, "D", rating=None, verdict=VerdictKind.REJECTED),
            _submission(2, 1000, "D", rating=None),
        ],
    )

    assert stub_client.calls_to("fetch_problem_metadata") == [("fetch_problem_metadata", 1000, "D")]
    with scope() as session:
        stored = SubmissionRepository(session).list_for_handle("alice")
        assert [row.problem_rating for row in stored] == [1900, 1900]
        assert stored[0].problem_tags == ["graphs"]


def test_metadata_failure_leaves_rating_empty_and_continues(stub_client, scope):
    stub_client.problems[(1000, "E")] = UpstreamError("problemset.problem[1000E]", "timeout")
    stub_client.problems[(1000, "F")] = ProblemMetadata(
        contest_id=1000, index="F", name="F", type="PROGRAMMING", rating=2100
    )

    plan, result = _reconcile(
        SubmissionReconciler(stub_client),
        scope,
        "alice",
        [_submission(1, 1000, "E", rating=None), _submission(2, 1000, "F", rating=None)],
    )

    assert result.upserted == 2
    assert len(plan.metadata_failures) == 1
    with scope() as session:
        ratings = {row.submission_id: row.problem_rating for row in SubmissionRepository(session).list_for_handle("alice")}
    assert ratings == {1: None, 2: 2100}


def test_known_ratings_are_reused_without_network(stub_client, scope):
    with scope() as session:
        session.add(Problem(contest_id=1000, index="G", name="G", rating=2400, tags=["fft"]))

    _reconcile(
        SubmissionReconciler(stub_client),
        scope,
        "alice",
        [_submission(1, 1000, "G", rating=None)],
    )

    assert stub_client.calls_to("fetch_problem_metadata") == []
    with scope() as session:
        assert session.get(Submission, 1).problem_rating == 2400


def test_gym_problems_are_quarantined(stub_client, scope):
    plan, result = _reconcile(
        SubmissionReconciler(stub_client),
        scope,
        "alice",
        [_submission(1, 104520, "C", rating=None)],
    )

    assert stub_client.calls_to("fetch_problem_metadata") == []
    assert plan.quarantined == {(104520, "C")}
    assert result.upserted == 1


def test_resync_does_not_duplicate_or_erase(stub_client, scope):
    reconciler = SubmissionReconciler(stub_client)
    first = [_submission(1, 1000, "A", tags=["math"])]
    _reconcile(reconciler, scope, "alice", first)

    # Second payload lacks rating and tags; stored values survive.
    _reconcile(reconciler, scope, "alice", [_submission(1, 1000, "A", rating=None)])

    with scope() as session:
        rows = SubmissionRepository(session).list_for_handle("alice")
        assert len(rows) == 1
        assert rows[0].problem_rating == 1200
        assert rows[0].problem_tags == ["math"]
