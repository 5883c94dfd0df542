"""Domain models representing normalized upstream data."""

from .models import (
    ContestResult,
    ContestSummary,
    ProblemMetadata,
    ProfileInfo,
    ProfileSnapshot,
    RatingChangeEvent,
    RawSubmission,
    StandingsSlice,
)

__all__ = [
    "ContestResult",
    "ContestSummary",
    "ProblemMetadata",
    "ProfileInfo",
    "ProfileSnapshot",
    "RatingChangeEvent",
    "RawSubmission",
    "StandingsSlice",
]
