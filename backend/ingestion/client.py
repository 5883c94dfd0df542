from __future__ import annotations

import threading
import time
from typing import Any, Callable

import httpx
from loguru import logger

from app.core.config import settings
from app.domain import (
    ContestSummary,
    ProblemMetadata,
    ProfileInfo,
    RatingChangeEvent,
    RawSubmission,
    StandingsSlice,
)

from .errors import (
    HandleNotFoundError,
    MalformedPayloadError,
    RateLimitExceededError,
    UpstreamError,
)
from .normalize import (
    normalize_contest,
    normalize_problem,
    normalize_profile,
    normalize_rating_change,
    normalize_standings,
    normalize_submission,
)

_CALL_LIMIT_MARKER = "call limit exceeded"


class RateLimiter:
    """Single global call clock: callers queue for the next free slot."""

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = max(0.0, float(min_interval))
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot: float | None = None

    def acquire(self) -> None:
        # The lock is held while sleeping so concurrent callers are served in turn.
        with self._lock:
            now = self._clock()
            if self._next_slot is not None and now < self._next_slot:
                self._sleep(self._next_slot - now)
                now = self._next_slot
            self._next_slot = now + self.min_interval


def _is_not_found(exc: UpstreamError) -> bool:
    return exc.status_code == 404 or "not found" in exc.message.lower()


class CodeforcesClient:
    """Rate-limited wrapper around the read-only Codeforces API."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        min_interval: float | None = None,
        cooldown: float | None = None,
        max_rate_limit_retries: int | None = None,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = (base_url or str(settings.codeforces_base_url)).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.codeforces_timeout_seconds
        self.cooldown = (
            cooldown if cooldown is not None else settings.codeforces_rate_limit_cooldown_seconds
        )
        self.max_rate_limit_retries = (
            max_rate_limit_retries
            if max_rate_limit_retries is not None
            else settings.codeforces_max_rate_limit_retries
        )
        interval = (
            min_interval if min_interval is not None else settings.codeforces_min_interval_seconds
        )
        self._sleep = sleep
        self.rate_limiter = rate_limiter or RateLimiter(interval, sleep=sleep)
        client_kwargs: dict[str, Any] = {"base_url": self.base_url + "/", "timeout": self.timeout}
        if transport is not None:
            client_kwargs["transport"] = transport
        self.client = httpx.Client(**client_kwargs)

    # ------------------------------------------------------------------
    # Transport

    def _call(self, method: str, params: dict[str, Any], *, resource: str) -> Any:
        rate_limited = 0
        while True:
            self.rate_limiter.acquire()
            logger.debug("Codeforces GET {} params={}", method, params)
            try:
                response = self.client.get(method, params=params)
            except httpx.HTTPError as exc:
                raise UpstreamError(resource, f"request failed: {exc}") from exc

            if self._is_rate_limited(response):
                rate_limited += 1
                if rate_limited > self.max_rate_limit_retries:
                    raise RateLimitExceededError(
                        resource,
                        f"still rate limited after {self.max_rate_limit_retries} retries",
                        status_code=response.status_code,
                    )
                logger.warning(
                    "Codeforces rate limited {} (attempt {}); cooling down {}s",
                    resource,
                    rate_limited,
                    self.cooldown,
                )
                self._sleep(self.cooldown)
                continue

            return self._unwrap(response, resource)

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.status_code < 400:
            return False
        try:
            payload = response.json()
        except ValueError:
            return False
        comment = payload.get("comment") if isinstance(payload, dict) else None
        return isinstance(comment, str) and _CALL_LIMIT_MARKER in comment.lower()

    @staticmethod
    def _unwrap(response: httpx.Response, resource: str) -> Any:
        try:
            payload = response.json()
        except ValueError as exc:
            if response.status_code >= 400:
                raise UpstreamError(
                    resource, "non-JSON error response", status_code=response.status_code
                ) from exc
            raise MalformedPayloadError(
                resource, "response body is not JSON", status_code=response.status_code
            ) from exc

        if not isinstance(payload, dict):
            raise MalformedPayloadError(
                resource, "response envelope is not an object", status_code=response.status_code
            )

        if payload.get("status") != "OK" or response.status_code >= 400:
            comment = payload.get("comment") or f"status {payload.get('status')!r}"
            raise UpstreamError(resource, str(comment), status_code=response.status_code)

        if "result" not in payload:
            raise MalformedPayloadError(
                resource, "envelope has no result", status_code=response.status_code
            )
        return payload["result"]

    # ------------------------------------------------------------------
    # Typed operations

    def fetch_profile(self, handle: str) -> ProfileInfo:
        resource = f"user.info[{handle}]"
        try:
            result = self._call("user.info", {"handles": handle}, resource=resource)
        except UpstreamError as exc:
            if _is_not_found(exc):
                raise HandleNotFoundError(
                    resource, exc.message, status_code=exc.status_code
                ) from exc
            raise
        if not isinstance(result, list) or not result or not isinstance(result[0], dict):
            raise HandleNotFoundError(resource, "upstream returned no profile")
        try:
            return normalize_profile(result[0])
        except ValueError as exc:
            raise MalformedPayloadError(resource, str(exc)) from exc

    def fetch_submissions(self, handle: str) -> list[RawSubmission]:
        resource = f"user.status[{handle}]"
        result = self._call("user.status", {"handle": handle}, resource=resource)
        if not isinstance(result, list):
            raise MalformedPayloadError(resource, "submission history is not a list")
        submissions: list[RawSubmission] = []
        for raw in result:
            try:
                submissions.append(normalize_submission(raw))
            except (ValueError, AttributeError) as exc:
                logger.warning("Skipping malformed submission for {}: {}", handle, exc)
        return submissions

    def fetch_rating_history(self, handle: str) -> list[RatingChangeEvent]:
        resource = f"user.rating[{handle}]"
        result = self._call("user.rating", {"handle": handle}, resource=resource)
        if not isinstance(result, list):
            raise MalformedPayloadError(resource, "rating history is not a list")
        try:
            return [normalize_rating_change(raw) for raw in result]
        except (ValueError, AttributeError) as exc:
            raise MalformedPayloadError(resource, str(exc)) from exc

    def fetch_contest_list(self) -> list[ContestSummary]:
        resource = "contest.list"
        result = self._call("contest.list", {"gym": "false"}, resource=resource)
        if not isinstance(result, list):
            raise MalformedPayloadError(resource, "contest list is not a list")
        contests: list[ContestSummary] = []
        for raw in result:
            try:
                contests.append(normalize_contest(raw))
            except (ValueError, AttributeError) as exc:
                logger.warning("Skipping malformed contest entry: {}", exc)
        return contests

    def fetch_contest_standings(self, contest_id: int, handle: str) -> StandingsSlice:
        resource = f"contest.standings[{contest_id}/{handle}]"
        result = self._call(
            "contest.standings",
            {"contestId": contest_id, "handles": handle, "showUnofficial": "false"},
            resource=resource,
        )
        if not isinstance(result, dict):
            raise MalformedPayloadError(resource, "standings result is not an object")
        try:
            return normalize_standings(result)
        except (ValueError, AttributeError) as exc:
            raise MalformedPayloadError(resource, str(exc)) from exc

    def fetch_problem_metadata(self, contest_id: int, index: str) -> ProblemMetadata | None:
        """Return catalog metadata, or None when upstream does not list the problem."""

        resource = f"problemset.problem[{contest_id}{index}]"
        try:
            result = self._call(
                "problemset.problem",
                {"contestId": contest_id, "problemIndex": index},
                resource=resource,
            )
        except UpstreamError as exc:
            if _is_not_found(exc):
                logger.debug("Problem {}{} is not listed upstream", contest_id, index)
                return None
            raise
        problem = result.get("problem") if isinstance(result, dict) else None
        if problem is None and isinstance(result, dict) and "index" in result:
            problem = result
        if not isinstance(problem, dict):
            return None
        try:
            return normalize_problem(problem)
        except ValueError as exc:
            raise MalformedPayloadError(resource, str(exc)) from exc

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "CodeforcesClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
