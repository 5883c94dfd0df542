from __future__ import annotations

import re
from typing import Any

from app.domain import (
    ContestSummary,
    ProblemMetadata,
    ProfileInfo,
    RatingChangeEvent,
    RawSubmission,
    StandingsSlice,
)
from app.models import VerdictKind

# Contest ids at or above this value belong to gym contests.
GYM_CONTEST_ID_FLOOR = 100_000

_PROBLEM_INDEX_PATTERN = re.compile(r"^[A-Za-z][0-9]*$")

_REJECTED_VERDICTS = frozenset(
    {
        "FAILED",
        "PARTIAL",
        "COMPILATION_ERROR",
        "RUNTIME_ERROR",
        "WRONG_ANSWER",
        "PRESENTATION_ERROR",
        "TIME_LIMIT_EXCEEDED",
        "MEMORY_LIMIT_EXCEEDED",
        "IDLENESS_LIMIT_EXCEEDED",
        "SECURITY_VIOLATED",
        "CRASHED",
        "INPUT_PREPARATION_CRASHED",
        "CHALLENGED",
        "REJECTED",
    }
)


def _parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(round(float(value)))
        except (TypeError, ValueError):
            return None


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def _require(payload: dict[str, Any], key: str, kind: str) -> Any:
    value = payload.get(key)
    if value is None:
        raise ValueError(f"{kind} payload is missing '{key}'")
    return value


def classify_verdict(raw_verdict: str | None) -> VerdictKind:
    if raw_verdict == "OK":
        return VerdictKind.ACCEPTED
    if raw_verdict in _REJECTED_VERDICTS:
        return VerdictKind.REJECTED
    return VerdictKind.OTHER


def is_valid_problem_id(contest_id: Any, problem_index: Any) -> bool:
    """Return True for standard (non-gym) contest ids paired with a plain index."""

    parsed = _parse_int(contest_id)
    if parsed is None or parsed <= 0 or parsed >= GYM_CONTEST_ID_FLOOR:
        return False
    if not isinstance(problem_index, str):
        return False
    return bool(_PROBLEM_INDEX_PATTERN.match(problem_index))


def normalize_profile(raw: dict[str, Any]) -> ProfileInfo:
    return ProfileInfo(
        handle=str(_require(raw, "handle", "profile")),
        rating=_parse_int(raw.get("rating")) or 0,
        max_rating=_parse_int(raw.get("maxRating")) or 0,
        rank=str(raw.get("rank") or "unrated"),
    )


def normalize_submission(raw: dict[str, Any]) -> RawSubmission:
    problem = raw.get("problem")
    if not isinstance(problem, dict):
        raise ValueError("submission payload is missing 'problem'")

    contest_id = _parse_int(raw.get("contestId"))
    if contest_id is None:
        contest_id = _parse_int(problem.get("contestId"))
    if contest_id is None:
        raise ValueError(f"submission {raw.get('id')} has no contest id")

    submission_id = _parse_int(_require(raw, "id", "submission"))
    if submission_id is None:
        raise ValueError("submission payload has a non-numeric 'id'")

    raw_verdict = raw.get("verdict")
    return RawSubmission(
        submission_id=submission_id,
        contest_id=contest_id,
        problem_index=str(_require(problem, "index", "problem")),
        problem_name=str(problem.get("name") or ""),
        problem_rating=_parse_int(problem.get("rating")),
        problem_tags=_as_str_list(problem.get("tags")),
        verdict=classify_verdict(raw_verdict),
        raw_verdict=str(raw_verdict) if raw_verdict is not None else None,
        language=str(raw.get("programmingLanguage") or "unknown"),
        submitted_at_seconds=_parse_int(raw.get("creationTimeSeconds")) or 0,
    )


def normalize_rating_change(raw: dict[str, Any]) -> RatingChangeEvent:
    contest_id = _parse_int(_require(raw, "contestId", "rating change"))
    old_rating = _parse_int(raw.get("oldRating"))
    new_rating = _parse_int(raw.get("newRating"))
    if contest_id is None or old_rating is None or new_rating is None:
        raise ValueError("rating change payload has non-numeric rating fields")
    return RatingChangeEvent(
        contest_id=contest_id,
        contest_name=str(raw.get("contestName") or f"Contest {contest_id}"),
        old_rating=old_rating,
        new_rating=new_rating,
        rank=_parse_int(raw.get("rank")) or 0,
        rating_update_time=_parse_int(raw.get("ratingUpdateTimeSeconds")) or 0,
    )


def normalize_contest(raw: dict[str, Any]) -> ContestSummary:
    contest_id = _parse_int(_require(raw, "id", "contest"))
    if contest_id is None:
        raise ValueError("contest payload has a non-numeric 'id'")
    return ContestSummary(
        contest_id=contest_id,
        name=str(raw.get("name") or f"Contest {contest_id}"),
        type=raw.get("type"),
        phase=raw.get("phase"),
        start_time=_parse_int(raw.get("startTimeSeconds")),
        duration_seconds=_parse_int(raw.get("durationSeconds")),
    )


def normalize_standings(raw: dict[str, Any]) -> StandingsSlice:
    problems = raw.get("problems")
    if not isinstance(problems, list) or not problems:
        raise ValueError("standings payload has no problem list")

    contest_payload = raw.get("contest")
    contest = normalize_contest(contest_payload) if isinstance(contest_payload, dict) else None

    return StandingsSlice(contest=contest, problem_count=len(problems))


def normalize_problem(raw: dict[str, Any]) -> ProblemMetadata:
    contest_id = _parse_int(_require(raw, "contestId", "problem"))
    if contest_id is None:
        raise ValueError("problem payload has a non-numeric 'contestId'")
    return ProblemMetadata(
        contest_id=contest_id,
        index=str(_require(raw, "index", "problem")),
        name=str(raw.get("name") or ""),
        type=str(raw.get("type") or "PROGRAMMING"),
        rating=_parse_int(raw.get("rating")),
        tags=_as_str_list(raw.get("tags")),
    )
