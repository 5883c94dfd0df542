"""Reconstruct a rating curve from the stored rating and per-contest deltas."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from app.domain import ContestResult


@dataclass(slots=True)
class RatingPoint:
    contest_id: int
    contest_name: str | None
    timestamp: int
    rating_before: int
    rating_after: int

    @property
    def rating_change(self) -> int:
        return self.rating_after - self.rating_before


def calculate_rating_progression(
    current_rating: int,
    history: Sequence[ContestResult],
    *,
    since: int | None = None,
    until: int | None = None,
) -> list[RatingPoint]:
    """Walk ``history`` newest to oldest, anchored at ``current_rating``.

    ``history`` is the complete rated history, so contests newer than the
    ``[since, until]`` window still shift the anchor before the first point
    inside the window is emitted. Points are returned oldest first.
    """

    ordered = sorted(history, key=lambda item: (item.timestamp, item.contest_id))
    points: list[RatingPoint] = []
    rating_after = current_rating
    for result in reversed(ordered):
        rating_before = rating_after - result.rating_change
        in_window = (since is None or result.timestamp >= since) and (
            until is None or result.timestamp <= until
        )
        if in_window:
            points.append(
                RatingPoint(
                    contest_id=result.contest_id,
                    contest_name=result.contest_name,
                    timestamp=result.timestamp,
                    rating_before=rating_before,
                    rating_after=rating_after,
                )
            )
        rating_after = rating_before
    points.reverse()
    return points


__all__ = ["RatingPoint", "calculate_rating_progression"]
