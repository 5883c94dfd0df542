from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    JSON,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


class VerdictKind(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    OTHER = "other"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    handle: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    email_reminders_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    current_rating: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_rating: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank_tier: Mapped[str] = mapped_column(String(64), nullable=False, default="unrated")
    total_solved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_submission_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_sync_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Submission(Base):
    __tablename__ = "submissions"
    __table_args__ = (
        Index("ix_submissions_handle_contest", "handle", "contest_id"),
        Index("ix_submissions_handle_time", "handle", "submitted_at_seconds"),
    )

    submission_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    contest_id: Mapped[int] = mapped_column(Integer, nullable=False)
    problem_index: Mapped[str] = mapped_column(String(16), nullable=False)
    problem_name: Mapped[str] = mapped_column(String, nullable=False)
    problem_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    problem_tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    handle: Mapped[str] = mapped_column(String(64), nullable=False)
    verdict: Mapped[str] = mapped_column(String(16), nullable=False, default=VerdictKind.OTHER.value)
    raw_verdict: Mapped[str | None] = mapped_column(String(64), nullable=True)
    language: Mapped[str] = mapped_column(String, nullable=False)
    submitted_at_seconds: Mapped[int] = mapped_column(BigInteger, nullable=False)

    rating_change: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    contest_name: Mapped[str | None] = mapped_column(String, nullable=True)
    total_problems_in_contest: Mapped[int | None] = mapped_column(Integer, nullable=True)


class Contest(Base):
    __tablename__ = "contests"

    contest_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    phase: Mapped[str | None] = mapped_column(String(32), nullable=True)
    start_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_problems: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Problem(Base):
    __tablename__ = "problems"

    contest_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    index: Mapped[str] = mapped_column(String(16), primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="PROGRAMMING")
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class EmailLog(Base):
    __tablename__ = "email_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    handle: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    email_type: Mapped[str] = mapped_column(String(32), nullable=False, default="inactivity_reminder")
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
