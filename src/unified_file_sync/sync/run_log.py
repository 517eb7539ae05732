"""Run log telemetry for sync stages.

Operators read SyncRunLog rows for every run: one row per stage invocation,
plus distinct rows for chain failures and orchestrator-level failures.
"""

from typing import Optional

import structlog

from .models import (
    LogEntryType,
    StageRunContext,
    SyncMode,
    SyncRunLog,
    SyncStatus,
    utc_now,
)
from .store import RunLogStore

logger = structlog.get_logger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 1000


def truncate_message(message: Optional[str]) -> Optional[str]:
    if message is None:
        return None
    if len(message) <= MAX_ERROR_MESSAGE_LENGTH:
        return message
    return message[: MAX_ERROR_MESSAGE_LENGTH - 3] + "..."


class SyncLogRecorder:
    """Writes start/complete/failure rows to the run log store."""

    def __init__(self, store: RunLogStore) -> None:
        self._store = store

    async def start(self, job_name: str, mode: SyncMode) -> SyncRunLog:
        """Insert the row for a starting stage."""
        log = SyncRunLog(job_name=job_name, mode=mode)
        await self._store.insert(log)
        logger.info("run_log_started", job_name=job_name, mode=mode.value, log_id=log.id)
        return log

    async def complete(
        self,
        log: SyncRunLog,
        context: StageRunContext,
        next_stage: Optional[str] = None,
    ) -> SyncRunLog:
        """Write the final counters of a stage to its row."""
        log.finished_at = utc_now()
        log.status = context.status
        log.records_processed = context.records_processed
        log.records_upserted = context.records_upserted
        log.records_skipped = context.records_skipped
        log.orphans_flagged = context.orphans_flagged
        log.error_count = context.error_count
        log.sample_error_message = truncate_message(context.sample_error_message)
        log.next_stage = next_stage
        await self._store.update(log)

        logger.info(
            "run_log_completed",
            job_name=log.job_name,
            status=log.status.value,
            records_processed=log.records_processed,
            error_count=log.error_count,
        )
        return log

    async def record_chain_failure(
        self,
        job_name: str,
        mode: SyncMode,
        next_stage: str,
        error_message: str,
    ) -> SyncRunLog:
        """Insert a distinct row saying a finished stage did not propagate."""
        now = utc_now()
        log = SyncRunLog(
            job_name=job_name,
            mode=mode,
            entry_type=LogEntryType.CHAIN_FAILURE,
            status=SyncStatus.FAILED,
            started_at=now,
            finished_at=now,
            error_count=1,
            sample_error_message=truncate_message(error_message),
            next_stage=next_stage,
        )
        await self._store.insert(log)
        logger.error(
            "chain_failure_recorded",
            job_name=job_name,
            next_stage=next_stage,
            error=error_message,
        )
        return log

    async def record_failure(
        self,
        job_name: str,
        mode: SyncMode,
        error_message: str,
        entry_type: LogEntryType = LogEntryType.ORCHESTRATOR,
    ) -> SyncRunLog:
        """Insert a row for a run that failed before any stage started."""
        now = utc_now()
        log = SyncRunLog(
            job_name=job_name,
            mode=mode,
            entry_type=entry_type,
            status=SyncStatus.FAILED,
            started_at=now,
            finished_at=now,
            error_count=1,
            sample_error_message=truncate_message(error_message),
        )
        await self._store.insert(log)
        logger.error("run_failure_recorded", job_name=job_name, error=error_message)
        return log

    async def list_recent(self, limit: int = 50) -> list[SyncRunLog]:
        return await self._store.list_recent(limit)
