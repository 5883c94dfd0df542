"""Boundary to the outbound reminder transport."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from loguru import logger


@dataclass(slots=True)
class InactivityReminder:
    """Data handed to the transport; formatting and delivery happen there."""

    handle: str
    name: str | None
    email: str | None
    current_rating: int
    max_rating: int
    total_solved: int
    last_submission_time: datetime | None


class ReminderSender(Protocol):
    def send_inactivity_reminder(self, reminder: InactivityReminder) -> bool:
        """Deliver the reminder and report whether it was accepted."""


class LoggingReminderSender:
    """Default sender used when no mail transport is wired in."""

    def send_inactivity_reminder(self, reminder: InactivityReminder) -> bool:
        if not reminder.email:
            logger.warning("No email address on file for {}; reminder dropped", reminder.handle)
            return False
        logger.info(
            "Inactivity reminder for {} <{}> (rating={}, solved={}, last_submission={})",
            reminder.handle,
            reminder.email,
            reminder.current_rating,
            reminder.total_solved,
            reminder.last_submission_time,
        )
        return True


__all__ = ["InactivityReminder", "LoggingReminderSender", "ReminderSender"]
