"""Remind profiles that have gone quiet."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from loguru import logger

from app.repositories import ProfileRepository
from app.services.notifications import InactivityReminder, LoggingReminderSender, ReminderSender
from ingestion.service import SessionScope, session_scope

INACTIVITY_EMAIL_TYPE = "inactivity_reminder"


@dataclass(slots=True)
class InactivitySummary:
    checked: int = 0
    sent: int = 0
    failed: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "sent": self.sent,
            "failed": self.failed,
            "failures": list(self.failures),
        }


class InactivityCheck:
    def __init__(
        self,
        *,
        scope: SessionScope = session_scope,
        sender: ReminderSender | None = None,
        inactivity_days: int = 7,
        pause_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._scope = scope
        self._sender = sender or LoggingReminderSender()
        self._inactivity_days = inactivity_days
        self._pause = pause_seconds
        self._sleep = sleep
        self._clock = clock

    def run(self) -> InactivitySummary:
        cutoff = self._clock() - timedelta(days=self._inactivity_days)
        with self._scope() as session:
            reminders = [
                InactivityReminder(
                    handle=profile.handle,
                    name=profile.name,
                    email=profile.email,
                    current_rating=profile.current_rating,
                    max_rating=profile.max_rating,
                    total_solved=profile.total_solved,
                    last_submission_time=profile.last_submission_time,
                )
                for profile in ProfileRepository(session).list_inactive(cutoff=cutoff)
            ]

        summary = InactivitySummary(checked=len(reminders))
        logger.info("Found {} inactive profile(s) since {}", len(reminders), cutoff)

        for position, reminder in enumerate(reminders):
            try:
                delivered = bool(self._sender.send_inactivity_reminder(reminder))
                reason = None if delivered else "sender declined the reminder"
            except Exception as exc:  # noqa: BLE001
                delivered = False
                reason = str(exc)
                logger.exception("Reminder delivery failed for {}", reminder.handle)

            with self._scope() as session:
                ProfileRepository(session).log_email(
                    reminder.handle, email_type=INACTIVITY_EMAIL_TYPE, success=delivered
                )

            if delivered:
                summary.sent += 1
            else:
                summary.failed += 1
                summary.failures.append({"handle": reminder.handle, "reason": reason})

            if self._pause > 0 and position < len(reminders) - 1:
                self._sleep(self._pause)

        logger.info("Inactivity check finished: sent={}, failed={}", summary.sent, summary.failed)
        return summary


__all__ = ["INACTIVITY_EMAIL_TYPE", "InactivityCheck", "InactivitySummary"]
