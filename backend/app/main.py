from __future__ import annotations

from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from pipelines.context import SyncRuntime, build_runtime
from pipelines.full_sync import BackgroundRunner, SyncService
from pipelines.scheduler import InvalidScheduleError, SyncScheduler, validate_cron

from . import schemas
from .core.config import settings
from .core.logging import configure_logging
from .db import get_db, init_db
from .services.profile_service import ProfileNotFoundError, ProfileService

app = FastAPI(title="Codeforces Sync API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
def on_startup() -> None:
    """Create the schema and start the sync runtime when the API boots."""

    configure_logging(settings.log_level)
    try:
        init_db()
    except SQLAlchemyError:
        logger.exception("Database is unreachable; refusing to start")
        raise

    runtime = build_runtime(settings)
    app.state.runtime = runtime
    if settings.scheduler_enabled:
        runtime.start()
    else:
        logger.info("Scheduler disabled; jobs only run on demand")


@app.on_event("shutdown")
def on_shutdown() -> None:
    runtime: SyncRuntime | None = getattr(app.state, "runtime", None)
    if runtime is not None:
        runtime.close()


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


def _runtime(request: Request) -> SyncRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Sync runtime is not initialised")
    return runtime


def _scheduler(runtime: SyncRuntime = Depends(_runtime)) -> SyncScheduler:
    return runtime.scheduler


def _sync_service(runtime: SyncRuntime = Depends(_runtime)) -> SyncService:
    return runtime.sync_service


def _background_runner(runtime: SyncRuntime = Depends(_runtime)) -> BackgroundRunner:
    return runtime.background


def _profile_service(db=Depends(get_db)) -> ProfileService:
    """Provide the profile read service wired with a SQLAlchemy session."""

    return ProfileService(db)


def _sync_status(scheduler: SyncScheduler) -> schemas.SyncStatus:
    return schemas.SyncStatus(
        jobs={name: schemas.JobStatus(**job) for name, job in scheduler.status().items()}
    )


@app.get("/sync/status", response_model=schemas.SyncStatus, tags=["sync"])
def sync_status(scheduler: SyncScheduler = Depends(_scheduler)):
    """Report state, schedule and last outcome for every job."""

    return _sync_status(scheduler)


@app.post("/sync/schedule", response_model=schemas.ScheduleUpdateResponse, tags=["sync"])
def update_schedule(
    payload: schemas.ScheduleUpdate,
    scheduler: SyncScheduler = Depends(_scheduler),
):
    """Reschedule one or more jobs; nothing changes if any expression is invalid."""

    schedules = payload.job_schedules()
    if not schedules:
        raise HTTPException(status_code=400, detail="No schedule provided")
    try:
        for cron in schedules.values():
            validate_cron(cron)
        for job, cron in schedules.items():
            scheduler.update_schedule(job, cron)
    except InvalidScheduleError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return schemas.ScheduleUpdateResponse(
        message="Schedule updated successfully", status=_sync_status(scheduler)
    )


@app.post(
    "/sync/trigger",
    response_model=schemas.TriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["sync"],
)
def trigger_sync(
    service: SyncService = Depends(_sync_service),
    runner: BackgroundRunner = Depends(_background_runner),
):
    """Start a full sync in the background and return immediately."""

    if not runner.submit(service.run_full_sync, name="manual full sync"):
        raise HTTPException(status_code=409, detail="A background sync is already running")
    return schemas.TriggerResponse(accepted=True, message="Sync started in background")


@app.post("/sync/force", response_model=schemas.ForceSyncResponse, tags=["sync"])
def force_sync(service: SyncService = Depends(_sync_service)):
    """Run a full sync synchronously and report every stage."""

    report = service.run_full_sync()
    return schemas.ForceSyncResponse(
        success=report.success,
        duration_seconds=report.duration_seconds,
        stages=[schemas.StageResult(**stage.to_dict()) for stage in report.stages],
    )


@app.get(
    "/profiles/{handle}/contests",
    response_model=schemas.ContestHistory,
    tags=["profiles"],
)
def contest_history(
    handle: str,
    days: Annotated[
        int | None, Query(ge=1, description="Only include contests from the last N days")
    ] = None,
    service: ProfileService = Depends(_profile_service),
):
    """Rated contests and the reconstructed rating curve for a profile."""

    try:
        return service.contest_history(handle, days=days)
    except ProfileNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Profile not found") from exc
