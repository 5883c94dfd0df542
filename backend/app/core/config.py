from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from croniter import croniter
from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme in {"postgres", "postgresql"}:
        scheme = "postgresql+psycopg"

    if scheme not in {"postgresql+psycopg", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("target_session_attrs", "read-write")
    new_query = urlencode(query_params, doseq=True)

    return urlunparse(parsed._replace(scheme=scheme, query=new_query))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode and SQL echo")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    log_level: str = Field(default="INFO", description="Minimum level emitted by the log sink")
    database_url: AnyUrl | str = Field(
        default="sqlite:///./data/cfsync.db",
        description="SQLAlchemy compatible database URL",
    )
    codeforces_base_url: AnyUrl = Field(
        default="https://codeforces.com/api",
        description="Base URL for the Codeforces API",
    )
    codeforces_timeout_seconds: float = Field(
        default=10.0, description="Per-request timeout for upstream calls", gt=0
    )
    codeforces_min_interval_seconds: float = Field(
        default=1.0,
        description="Minimum spacing between any two upstream calls, shared by all callers",
        ge=0,
    )
    codeforces_rate_limit_cooldown_seconds: float = Field(
        default=10.0,
        description="Cool-down applied before retrying a call the upstream rate-limited",
        ge=0,
    )
    codeforces_max_rate_limit_retries: int = Field(
        default=6,
        description="Consecutive rate-limited responses tolerated for a single call",
        ge=0,
    )
    sync_batch_size: int = Field(
        default=5,
        description="Number of profiles synchronised concurrently within one batch",
        ge=1,
    )
    sync_batch_pause_seconds: float = Field(
        default=1.0, description="Pause between profile batches", ge=0
    )
    scheduler_enabled: bool = Field(
        default=True, description="Start the cron jobs when the API boots"
    )
    scheduler_timezone: str = Field(
        default="UTC", description="IANA zone used to evaluate cron expressions"
    )
    sync_cron: str = Field(default="0 2 * * *", description="Profile sync schedule")
    inactivity_cron: str = Field(
        default="0 3 * * *", description="Inactivity reminder schedule"
    )
    catalog_cron: str = Field(default="0 4 * * *", description="Problem catalog schedule")
    inactivity_days: int = Field(
        default=7, description="Days without a submission before a reminder is sent", ge=1
    )
    reminder_pause_seconds: float = Field(
        default=1.0, description="Pause between two reminder deliveries", ge=0
    )
    background_workers: int = Field(
        default=1, description="Worker pool width for fire-and-forget sync runs", ge=1
    )

    @field_validator("sync_cron", "inactivity_cron", "catalog_cron")
    @classmethod
    def _validate_cron(cls, value: str) -> str:
        candidate = value.strip()
        if not croniter.is_valid(candidate):
            raise ValueError(f"'{value}' is not a valid cron expression")
        return candidate

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @field_validator("database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]
        return value

    @property
    def resolved_database_url(self) -> str:
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    @property
    def default_schedules(self) -> dict[str, str]:
        return {
            "profile_sync": self.sync_cron,
            "inactivity_check": self.inactivity_cron,
            "problem_catalog": self.catalog_cron,
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
