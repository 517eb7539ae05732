"""Chunked, keyed bulk writes into the unified record table."""

from datetime import datetime
from typing import Optional, Sequence

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_result,
    stop_after_attempt,
    wait_exponential_jitter,
    wait_none,
)

from .models import (
    DEFAULT_MAX_UPSERTS_PER_TXN,
    DEFAULT_RETRY_LIMIT,
    UnifiedRecord,
    UpsertResult,
    UpsertSummary,
    utc_now,
)
from .store import TargetStore

logger = structlog.get_logger(__name__)


class UpsertCoordinator:
    """
    Writes unified rows keyed by identity key.

    Features:
    - Input split into transactions of at most max_upserts_per_txn rows
    - One rejected row never aborts its siblings; every row gets a result
    - A write call that raises fails only the rows of its own transaction
    - Retryable failures (lock contention) resubmitted up to retry_limit times
    - Orphan rows are flagged, never deleted
    """

    def __init__(
        self,
        target: TargetStore,
        max_upserts_per_txn: int = DEFAULT_MAX_UPSERTS_PER_TXN,
        retry_limit: int = DEFAULT_RETRY_LIMIT,
        retry_backoff_seconds: float = 0.5,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            target: Store holding the unified table
            max_upserts_per_txn: Rows per write call
            retry_limit: Extra attempts for retryable record failures
            retry_backoff_seconds: Initial backoff between attempts (0 disables waiting)
        """
        if max_upserts_per_txn < 1:
            raise ValueError("max_upserts_per_txn must be >= 1")
        self._target = target
        self._max_per_txn = max_upserts_per_txn
        self._retry_limit = max(retry_limit, 0)
        self._retry_backoff = retry_backoff_seconds

    async def upsert(self, rows: Sequence[UnifiedRecord]) -> UpsertSummary:
        """
        Upsert rows, returning one result per row in input order.

        Args:
            rows: Unified rows to write

        Returns:
            UpsertSummary with per-row results and aggregate counts
        """
        summary = UpsertSummary()
        for start in range(0, len(rows), self._max_per_txn):
            batch = list(rows[start : start + self._max_per_txn])
            for result in await self._write_with_retry(batch):
                summary.add(result)

        if summary.error_count:
            logger.warning(
                "upsert_partial_failure",
                success_count=summary.success_count,
                error_count=summary.error_count,
                first_error=summary.first_error_message,
            )
        return summary

    async def _write_with_retry(self, batch: list[UnifiedRecord]) -> list[UpsertResult]:
        final: dict[str, UpsertResult] = {}
        pending = batch

        async def write_pending(rows: list[UnifiedRecord]) -> list[UnifiedRecord]:
            retry_rows = []
            results = await self._target.upsert(rows)
            for row, result in zip(rows, results):
                final[row.identity_key] = result
                if not result.success and result.retryable:
                    retry_rows.append(row)
            return retry_rows

        wait = (
            wait_exponential_jitter(initial=self._retry_backoff, max=10)
            if self._retry_backoff > 0
            else wait_none()
        )
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_limit + 1),
                wait=wait,
                retry=retry_if_result(bool),
                retry_error_callback=lambda state: state.outcome.result(),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.info(
                            "upsert_retrying",
                            attempt=attempt.retry_state.attempt_number,
                            record_count=len(pending),
                        )
                    pending = await write_pending(pending)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(pending)
        except Exception as e:
            # Rows of this batch still in flight fail; earlier batches keep their results
            reason = str(e) or type(e).__name__
            logger.error("upsert_batch_failed", record_count=len(pending), error=reason)
            for row in pending:
                final[row.identity_key] = UpsertResult(
                    identity_key=row.identity_key,
                    success=False,
                    error_message=f"Write failed: {reason}",
                )

        return [final[row.identity_key] for row in batch]

    async def flag_orphans(
        self,
        identity_keys: Sequence[str],
        flagged_at: Optional[datetime] = None,
    ) -> int:
        """Mark rows absent from the latest full extraction as missing."""
        if not identity_keys:
            return 0
        flagged = await self._target.flag_missing(list(identity_keys), flagged_at or utc_now())
        logger.info("orphans_flagged", candidate_count=len(identity_keys), flagged=flagged)
        return flagged
