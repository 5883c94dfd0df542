from __future__ import annotations


class UpstreamError(Exception):
    """Raised when a Codeforces call fails for a reason other than rate limiting."""

    def __init__(
        self,
        resource: str,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        self.resource = resource
        self.message = message
        self.status_code = status_code
        status = f" (status {status_code})" if status_code is not None else ""
        super().__init__(f"{resource}: {message}{status}")


class HandleNotFoundError(UpstreamError):
    """The upstream no longer resolves the requested handle."""


class RateLimitExceededError(UpstreamError):
    """Consecutive rate-limited responses exhausted the retry budget."""


class MalformedPayloadError(UpstreamError):
    """An envelope or result could not be turned into a domain record."""


__all__ = [
    "HandleNotFoundError",
    "MalformedPayloadError",
    "RateLimitExceededError",
    "UpstreamError",
]
