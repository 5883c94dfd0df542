from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator


class RatingPoint(BaseModel):
    contest_id: int
    contest_name: str | None = None
    timestamp: int
    rating_before: int
    rating_after: int
    rating_change: int

    model_config = {"from_attributes": True}


class ContestResult(BaseModel):
    contest_id: int
    contest_name: str | None = None
    rating_change: int
    rank: int | None = None
    timestamp: int

    model_config = {"from_attributes": True}


class ContestHistory(BaseModel):
    handle: str
    current_rating: int
    contests: list[ContestResult]
    rating_progression: list[RatingPoint]


class JobStatus(BaseModel):
    name: str
    state: str
    schedule: str | None = None
    running: bool
    last_run: datetime | None = None
    last_result: dict[str, Any] | None = None
    next_run: datetime | None = None


class SyncStatus(BaseModel):
    jobs: dict[str, JobStatus]


class ScheduleUpdate(BaseModel):
    sync_cron: str | None = Field(
        default=None, validation_alias=AliasChoices("sync_cron", "syncCron")
    )
    inactivity_cron: str | None = Field(
        default=None, validation_alias=AliasChoices("inactivity_cron", "inactivityCron")
    )
    catalog_cron: str | None = Field(
        default=None, validation_alias=AliasChoices("catalog_cron", "catalogCron")
    )

    @field_validator("sync_cron", "inactivity_cron", "catalog_cron")
    @classmethod
    def _strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    def job_schedules(self) -> dict[str, str]:
        mapping = {
            "profile_sync": self.sync_cron,
            "inactivity_check": self.inactivity_cron,
            "problem_catalog": self.catalog_cron,
        }
        return {job: expr for job, expr in mapping.items() if expr}


class ScheduleUpdateResponse(BaseModel):
    message: str
    status: SyncStatus


class TriggerResponse(BaseModel):
    accepted: bool
    message: str


class StageResult(BaseModel):
    stage: str
    success: bool
    duration_seconds: float
    error: str | None = None
    details: dict[str, Any] | None = None


class ForceSyncResponse(BaseModel):
    success: bool
    duration_seconds: float
    stages: list[StageResult]
