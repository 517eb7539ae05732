"""Timer entry points for the unified file sync.

Two cron jobs drive the pipeline through APScheduler's AsyncIOScheduler:
- run_delta_sync: frequent DELTA runs over a trailing lookback window
  (default: hourly)
- run_full_sync: FULL runs that also flag orphaned rows (default: 2 AM daily)

Both simply call SyncOrchestrator.run with their mode.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from unified_file_sync.core.errors import ConfigurationError

from .models import SyncMode

if TYPE_CHECKING:
    from .orchestrator import SyncOrchestrator, SyncRunSummary

logger = structlog.get_logger(__name__)

DEFAULT_DELTA_SCHEDULE = "0 * * * *"
DEFAULT_FULL_SCHEDULE = "0 2 * * *"

DELTA_JOB_ID = "unified_sync_delta"
FULL_JOB_ID = "unified_sync_full"


def parse_cron_schedule(cron_expr: str) -> dict:
    """Parse a cron expression into APScheduler CronTrigger kwargs.

    Supports standard 5-field cron format: minute hour day month day_of_week
    Example: "0 2 * * *" = daily at 2:00 AM

    Args:
        cron_expr: Cron expression string (5 fields)

    Returns:
        Dictionary of kwargs for CronTrigger

    Raises:
        ValueError: If cron expression is invalid
    """
    parts = cron_expr.strip().split()
    if len(parts) != 5:
        raise ValueError(
            f"Invalid cron expression '{cron_expr}'. "
            "Expected 5 fields: minute hour day month day_of_week"
        )

    return {
        "minute": parts[0],
        "hour": parts[1],
        "day": parts[2],
        "month": parts[3],
        "day_of_week": parts[4],
    }


class SyncScheduler:
    """Scheduler for periodic delta and full sync runs.

    Attributes:
        orchestrator: SyncOrchestrator the jobs call
        delta_schedule: Cron expression for delta runs
        full_schedule: Cron expression for full runs
        enabled: Whether the scheduler is enabled
    """

    def __init__(
        self,
        orchestrator: "SyncOrchestrator",
        delta_schedule: str = DEFAULT_DELTA_SCHEDULE,
        full_schedule: str = DEFAULT_FULL_SCHEDULE,
        delta_lookback_minutes: Optional[int] = None,
        enabled: bool = True,
    ) -> None:
        """Initialize the scheduler.

        Args:
            orchestrator: SyncOrchestrator instance
            delta_schedule: Cron expression for delta runs
            full_schedule: Cron expression for full runs
            delta_lookback_minutes: Lookback passed to delta runs; None uses
                the configured default
            enabled: Whether to enable scheduled runs
        """
        self.orchestrator = orchestrator
        self.delta_schedule = delta_schedule
        self.full_schedule = full_schedule
        self.delta_lookback_minutes = delta_lookback_minutes
        self.enabled = enabled
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is currently running."""
        return self._running

    def get_next_run_time(self, job_id: str) -> Optional[datetime]:
        """Get the next scheduled run time of a job.

        Returns:
            Next run time as datetime, or None if scheduler not running
        """
        if not self._scheduler or not self._running:
            return None

        job = self._scheduler.get_job(job_id)
        if job and job.next_run_time:
            return job.next_run_time
        return None

    async def start(self) -> bool:
        """Start the scheduler.

        Returns:
            True if started successfully, False otherwise
        """
        if not self.enabled:
            logger.info("sync_scheduler_disabled")
            return False

        if self._running:
            logger.warning("sync_scheduler_already_running")
            return True

        try:
            delta_kwargs = parse_cron_schedule(self.delta_schedule)
            full_kwargs = parse_cron_schedule(self.full_schedule)

            self._scheduler = AsyncIOScheduler()
            self._scheduler.add_job(
                self.run_delta_sync,
                trigger=CronTrigger(**delta_kwargs),
                id=DELTA_JOB_ID,
                name="Hourly Delta Sync",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            self._scheduler.add_job(
                self.run_full_sync,
                trigger=CronTrigger(**full_kwargs),
                id=FULL_JOB_ID,
                name="Nightly Full Sync",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            self._scheduler.start()
            self._running = True

            next_delta = self.get_next_run_time(DELTA_JOB_ID)
            next_full = self.get_next_run_time(FULL_JOB_ID)
            logger.info(
                "sync_scheduler_started",
                delta_schedule=self.delta_schedule,
                full_schedule=self.full_schedule,
                next_delta=next_delta.isoformat() if next_delta else None,
                next_full=next_full.isoformat() if next_full else None,
            )
            return True

        except ValueError as e:
            logger.error("sync_scheduler_start_failed", error=str(e))
            return False

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._scheduler or not self._running:
            return

        # AsyncIOScheduler.shutdown() is synchronous; do not wait for jobs
        self._scheduler.shutdown(wait=False)
        self._running = False
        logger.info("sync_scheduler_stopped")

    async def run_delta_sync(self) -> Optional["SyncRunSummary"]:
        """Timer entry point: run a delta sync."""
        return await self._run_scheduled(SyncMode.DELTA, self.delta_lookback_minutes)

    async def run_full_sync(self) -> Optional["SyncRunSummary"]:
        """Timer entry point: run a full sync."""
        return await self._run_scheduled(SyncMode.FULL, None)

    async def _run_scheduled(
        self, mode: SyncMode, lookback_minutes: Optional[int]
    ) -> Optional["SyncRunSummary"]:
        logger.info("scheduled_sync_started", mode=mode.value)
        try:
            summary = await self.orchestrator.run(mode, lookback_minutes)
        except ConfigurationError as e:
            # Already written to the run log by the orchestrator
            logger.error("scheduled_sync_rejected", mode=mode.value, error=e.message)
            return None

        logger.info(
            "scheduled_sync_complete",
            mode=mode.value,
            skipped=summary.skipped,
            stages=summary.stages_run,
            records_processed=summary.records_processed,
            error_count=summary.error_count,
        )
        return summary

    async def trigger_now(
        self, mode: SyncMode, lookback_minutes: Optional[int] = None
    ) -> "SyncRunSummary":
        """Run a sync immediately (outside of schedule)."""
        logger.info("manual_sync_triggered", mode=SyncMode(mode).value)
        return await self.orchestrator.run(mode, lookback_minutes)


def create_sync_scheduler(
    orchestrator: "SyncOrchestrator",
    delta_schedule: str = DEFAULT_DELTA_SCHEDULE,
    full_schedule: str = DEFAULT_FULL_SCHEDULE,
    delta_lookback_minutes: Optional[int] = None,
    enabled: bool = True,
) -> SyncScheduler:
    """Factory function to create a sync scheduler."""
    return SyncScheduler(
        orchestrator=orchestrator,
        delta_schedule=delta_schedule,
        full_schedule=full_schedule,
        delta_lookback_minutes=delta_lookback_minutes,
        enabled=enabled,
    )
