"""
Background Job Scheduler

Scheduled task execution using APScheduler with AsyncIO support.

Design Principles:
- Jobs are idempotent (safe to run multiple times, or concurrently with
  request handling)
- Failed jobs are logged but don't crash the scheduler
- Jobs can be triggered manually for testing
- The scheduler is created and stopped by the FastAPI lifespan

Usage:
    scheduler = JobScheduler()
    scheduler.register_job("my_job", my_job, IntervalTrigger(hours=1))
    await scheduler.start()
    ...
    await scheduler.stop()
"""

import logging
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Coroutine[Any, Any, Any]]


class SchedulerConfig:
    """Configuration for the background scheduler."""

    TIMEZONE = "UTC"

    JOB_COALESCE = True  # Combine multiple missed executions into one
    JOB_MAX_INSTANCES = 1  # Only one instance of each job can run at a time
    JOB_MISFIRE_GRACE_TIME = 60 * 5  # 5 minutes grace time for missed jobs

    EXECUTORS = {
        "default": {"type": "asyncio"},
    }

    JOB_DEFAULTS = {
        "coalesce": JOB_COALESCE,
        "max_instances": JOB_MAX_INSTANCES,
        "misfire_grace_time": JOB_MISFIRE_GRACE_TIME,
    }


def _job_listener(event: JobExecutionEvent) -> None:
    """Log job execution results for monitoring."""
    if event.exception:
        logger.error(
            f"Job {event.job_id} failed with exception: {event.exception}",
            exc_info=event.exception,
        )
    else:
        logger.info(f"Job {event.job_id} executed successfully at {datetime.now(UTC).isoformat()}")


class JobScheduler:
    """
    Owns an AsyncIOScheduler and the registry of jobs it runs.

    Jobs may be registered before or after ``start``; jobs registered
    earlier are added to the scheduler when it starts.
    """

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None
        self._jobs: dict[str, tuple[JobFunc, BaseTrigger]] = {}

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def register_job(self, job_id: str, func: JobFunc, trigger: BaseTrigger) -> None:
        """
        Register a job under ``job_id``, replacing any job with the same ID.

        Args:
            job_id: Unique identifier for the job
            func: Async function to execute
            trigger: APScheduler trigger (IntervalTrigger, CronTrigger, etc.)
        """
        self._jobs[job_id] = (func, trigger)

        if self._scheduler is None:
            logger.debug(f"Scheduler not started, job {job_id} will be added on start")
            return

        self._scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True)
        logger.info(f"Registered job: {job_id}")

    async def start(self) -> None:
        """Create the AsyncIOScheduler, add registered jobs and start it."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting background job scheduler...")

        self._scheduler = AsyncIOScheduler(
            timezone=SchedulerConfig.TIMEZONE,
            executors=SchedulerConfig.EXECUTORS,
            job_defaults=SchedulerConfig.JOB_DEFAULTS,
        )
        self._scheduler.add_listener(_job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

        for job_id, (func, trigger) in self._jobs.items():
            self._scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True)
            logger.info(f"Registered job: {job_id}")

        self._scheduler.start()
        logger.info(f"Background job scheduler started with {len(self._jobs)} job(s)")

    async def stop(self) -> None:
        """Stop the scheduler, waiting for running jobs to finish."""
        if not self.running:
            logger.debug("Scheduler not running, nothing to stop")
            return

        logger.info("Stopping background job scheduler...")
        self._scheduler.shutdown(wait=True)
        self._scheduler = None
        logger.info("Background job scheduler stopped")

    async def trigger(self, job_id: str) -> dict[str, Any]:
        """
        Run a registered job immediately, bypassing its schedule.

        Returns:
            Dict with job_id, status ("success" or "error"), executed_at,
            and either the job's result or the error message

        Raises:
            ValueError: If job_id is not registered
        """
        if job_id not in self._jobs:
            raise ValueError(
                f"Job {job_id} not found in registry. Available jobs: {list(self._jobs)}"
            )

        func, _trigger = self._jobs[job_id]
        executed_at = datetime.now(UTC)
        logger.info(f"Manually triggering job: {job_id}")

        try:
            result = await func()
        except Exception as e:
            logger.error(f"Manual execution of job {job_id} failed: {e}", exc_info=True)
            return {
                "job_id": job_id,
                "status": "error",
                "executed_at": executed_at.isoformat(),
                "error": str(e),
            }

        logger.info(f"Manual execution of job {job_id} completed successfully")
        return {
            "job_id": job_id,
            "status": "success",
            "executed_at": executed_at.isoformat(),
            "result": result,
        }

    def list_jobs(self) -> list[dict[str, Any]]:
        """List registered jobs with their next run time, if scheduled."""
        jobs = []
        for job_id in self._jobs:
            info: dict[str, Any] = {"job_id": job_id, "next_run_time": None}
            if self._scheduler is not None:
                scheduled = self._scheduler.get_job(job_id)
                if scheduled is not None and scheduled.next_run_time is not None:
                    info["next_run_time"] = scheduled.next_run_time.isoformat()
            jobs.append(info)
        return jobs


__all__ = ["JobScheduler", "SchedulerConfig"]
