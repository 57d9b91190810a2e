import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from batchflow.config import Settings
from batchflow.import_job import build_import_user_job
from batchflow.pipeline import JobRunner
from batchflow.run_store import JobRepository
from batchflow.schemas import JobStatus


logger = logging.getLogger(__name__)


def _run_daily_import(settings: Settings, engine: Engine, session_factory: sessionmaker[Session]) -> None:
    job = build_import_user_job(settings, engine, session_factory)
    runner = JobRunner(JobRepository(session_factory), enforce_unique_instances=settings.enforce_unique_parameters)
    execution = runner.run_next(job, {"trigger": "scheduled"})

    extra = {
        "job_execution_id": execution.id,
        "run_id": execution.parameters.get("run.id"),
        "status": execution.status.value,
    }
    if execution.status != JobStatus.COMPLETED:
        logger.error("scheduled job run did not complete", extra=extra)
        return
    logger.info("scheduled job run completed", extra=extra)


def start_scheduler(
    settings: Settings,
    engine: Engine,
    session_factory: sessionmaker[Session],
    *,
    run_now: bool = False,
) -> None:
    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        _run_daily_import,
        "cron",
        args=[settings, engine, session_factory],
        hour=settings.schedule_hour_utc,
        minute=settings.schedule_minute_utc,
        id="daily_import",
        replace_existing=True,
    )

    logger.info(
        "scheduler started",
        extra={
            "schedule_hour_utc": settings.schedule_hour_utc,
            "schedule_minute_utc": settings.schedule_minute_utc,
        },
    )

    if run_now:
        _run_daily_import(settings, engine, session_factory)

    scheduler.start()
