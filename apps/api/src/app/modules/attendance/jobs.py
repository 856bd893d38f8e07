"""
Attendance Background Jobs

Scheduled task that clears check-in metadata left on class sessions once
the check-in window of the last issued token has passed.

Design Principles:
- Idempotent: a second run (or a concurrent one) finds nothing to clear
- One UPDATE statement per run, no row locks held across statements, so
  redemptions are never blocked
- Clearing metadata never affects token validity, which is computed from the
  token's own issued_at

Schedule:
- Runs every CHECKIN_SWEEP_INTERVAL_HOURS (12 by default)
- Can also be triggered manually via the debug endpoints
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from app.core.scheduler import JobScheduler
from app.modules.attendance.repository import AttendanceRepository
from app.modules.auth.tokens import utc_now

logger = logging.getLogger(__name__)

# Job IDs for registration and manual triggering
JOB_ID_SWEEP_CHECKIN_METADATA = "attendance_sweep_checkin_metadata"


class ExpirySweeper:
    """Clears check-in metadata older than the check-in window."""

    def __init__(
        self,
        repository: AttendanceRepository,
        window: timedelta,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repository = repository
        self._window = window
        self._clock = clock

    async def run(self) -> dict[str, Any]:
        """
        Clear expired check-in metadata.

        Returns:
            Dict with job execution summary:
            - executed_at: When the job ran
            - cutoff: Metadata issued before this instant was cleared
            - cleared: Number of sessions cleared
        """
        executed_at = self._clock()
        cutoff = executed_at - self._window

        logger.info(f"Starting check-in metadata sweep. Cutoff: {cutoff.isoformat()}")
        cleared = await self._repository.sweep_expired_checkin_metadata(cutoff)

        if cleared:
            logger.info(f"Cleared check-in metadata for {cleared} session(s)")
        else:
            logger.debug("No expired check-in metadata found")

        return {
            "executed_at": executed_at.isoformat(),
            "cutoff": cutoff.isoformat(),
            "cleared": cleared,
        }


def register_attendance_jobs(
    scheduler: JobScheduler,
    sweeper: ExpirySweeper,
    interval_hours: int,
) -> None:
    """Register attendance background jobs with the scheduler."""
    scheduler.register_job(
        JOB_ID_SWEEP_CHECKIN_METADATA,
        sweeper.run,
        IntervalTrigger(hours=interval_hours),
    )
    logger.info(f"Attendance jobs registered (sweep every {interval_hours}h)")


__all__ = [
    "ExpirySweeper",
    "JOB_ID_SWEEP_CHECKIN_METADATA",
    "register_attendance_jobs",
]
