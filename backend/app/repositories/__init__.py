"""Repository abstractions for database interactions."""

from .contest_repository import ContestRepository, infer_contest_type
from .problem_repository import ProblemRepository
from .profile_repository import ProfileRepository, to_snapshot
from .submission_repository import SubmissionRepository

__all__ = [
    "ContestRepository",
    "ProblemRepository",
    "ProfileRepository",
    "SubmissionRepository",
    "infer_contest_type",
    "to_snapshot",
]
