"""Read-side views over reconciled profile data."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app import schemas
from app.repositories import ProfileRepository, SubmissionRepository

from .rating_progression import calculate_rating_progression


class ProfileNotFoundError(LookupError):
    """Raised when a handle is not tracked locally."""


class ProfileService:
    """Read-only facade used by the API to present contest history."""

    def __init__(self, session: Session):
        self._profiles = ProfileRepository(session)
        self._submissions = SubmissionRepository(session)

    def contest_history(
        self,
        handle: str,
        *,
        days: int | None = None,
        now: datetime | None = None,
    ) -> schemas.ContestHistory:
        profile = self._profiles.get_by_handle(handle)
        if profile is None:
            raise ProfileNotFoundError(handle)

        history = self._submissions.contest_results(handle)
        since: int | None = None
        if days is not None:
            reference = now or datetime.now(timezone.utc)
            since = int((reference - timedelta(days=days)).timestamp())

        points = calculate_rating_progression(profile.current_rating, history, since=since)
        in_window = [item for item in history if since is None or item.timestamp >= since]

        return schemas.ContestHistory(
            handle=profile.handle,
            current_rating=profile.current_rating,
            contests=[schemas.ContestResult.model_validate(item) for item in reversed(in_window)],
            rating_progression=[
                schemas.RatingPoint(
                    contest_id=point.contest_id,
                    contest_name=point.contest_name,
                    timestamp=point.timestamp,
                    rating_before=point.rating_before,
                    rating_after=point.rating_after,
                    rating_change=point.rating_change,
                )
                for point in points
            ],
        )


__all__ = ["ProfileNotFoundError", "ProfileService"]
