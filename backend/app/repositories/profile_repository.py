"""Profile persistence helpers."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.domain import ProfileInfo, ProfileSnapshot
from app.models import EmailLog, Profile


def to_snapshot(profile: Profile) -> ProfileSnapshot:
    return ProfileSnapshot(
        handle=profile.handle,
        current_rating=profile.current_rating,
        max_rating=profile.max_rating,
        rank_tier=profile.rank_tier,
        total_solved=profile.total_solved,
        last_submission_time=profile.last_submission_time,
        last_sync_time=profile.last_sync_time,
    )


class ProfileRepository:
    """Encapsulate profile reads and the sync-owned profile fields."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def record_sync(
        self,
        profile: Profile,
        *,
        info: ProfileInfo,
        total_solved: int,
        last_submission_time: datetime | None,
        synced_at: datetime,
    ) -> Profile:
        profile.current_rating = info.rating
        profile.max_rating = info.max_rating
        profile.rank_tier = info.rank
        profile.total_solved = total_solved
        if last_submission_time is not None:
            profile.last_submission_time = last_submission_time
        profile.last_sync_time = synced_at
        return profile

    def log_email(self, handle: str, *, email_type: str, success: bool) -> EmailLog:
        record = EmailLog(handle=handle, email_type=email_type, success=success)
        self._session.add(record)
        return record

    # ------------------------------------------------------------------
    # Queries

    def get_by_handle(self, handle: str) -> Profile | None:
        query = select(Profile).where(Profile.handle == handle)
        return self._session.execute(query).scalar_one_or_none()

    def list_handles(self) -> list[str]:
        query = select(Profile.handle).order_by(Profile.id.asc())
        return list(self._session.execute(query).scalars().all())

    def list_inactive(self, *, cutoff: datetime) -> list[Profile]:
        query = (
            select(Profile)
            .where(
                Profile.email_reminders_enabled.is_(True),
                or_(
                    Profile.last_submission_time.is_(None),
                    Profile.last_submission_time < cutoff,
                ),
            )
            .order_by(Profile.id.asc())
        )
        return list(self._session.execute(query).scalars().all())


__all__ = ["ProfileRepository", "to_snapshot"]
