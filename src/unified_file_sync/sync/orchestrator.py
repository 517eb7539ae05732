"""Sync orchestrator: config-gated run dispatch and stage chaining.

The orchestrator owns no per-record state. It validates the configuration
snapshot, decides whether the requested mode runs at all, launches the first
stage of each configured pipeline, and follows the continuations stages hand
back when they finish.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

import structlog

from unified_file_sync.core.errors import ChainError, ConfigurationError

from .models import (
    LogEntryType,
    OwnershipPolicy,
    SyncConfig,
    SyncMode,
    SyncRunLog,
    SyncStatus,
)
from .ownership import parse_ownership_policy
from .parents import ParentResolver
from .run_log import SyncLogRecorder
from .stages import STAGE_CLASSES, ExtractionStage, StageDependencies, StageOutcome
from .store import RunLogStore, SourceReader, TargetStore
from .upsert import UpsertCoordinator

logger = structlog.get_logger(__name__)

ORCHESTRATOR_JOB_NAME = "SyncOrchestrator"


@dataclass
class SyncRunSummary:
    """Result of one orchestrator run."""

    mode: SyncMode
    lookback_minutes: Optional[int] = None
    skipped: bool = False
    skip_reason: Optional[str] = None
    outcomes: list[StageOutcome] = field(default_factory=list)
    failure_logs: list[SyncRunLog] = field(default_factory=list)

    @property
    def records_processed(self) -> int:
        return sum(outcome.context.records_processed for outcome in self.outcomes)

    @property
    def error_count(self) -> int:
        stage_errors = sum(outcome.context.error_count for outcome in self.outcomes)
        return stage_errors + len(self.failure_logs)

    @property
    def stages_run(self) -> list[str]:
        return [outcome.stage for outcome in self.outcomes]

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "lookbackMinutes": self.lookback_minutes,
            "skipped": self.skipped,
            "skipReason": self.skip_reason,
            "stages": [outcome.log.to_dict() for outcome in self.outcomes],
            "failures": [log.to_dict() for log in self.failure_logs],
            "recordsProcessed": self.records_processed,
            "errorCount": self.error_count,
        }


class StageLauncher:
    """Launches named stages, the unit-of-work scheduler for one run.

    A launch fails with ChainError when the stage is unknown, disabled by
    configuration, or when max_active_stages stages are already running.
    """

    def __init__(
        self,
        deps: StageDependencies,
        config: SyncConfig,
        policy: OwnershipPolicy,
        stage_classes: Optional[dict[str, type[ExtractionStage]]] = None,
    ) -> None:
        self._deps = deps
        self._config = config
        self._policy = policy
        self._stage_classes = stage_classes or STAGE_CLASSES
        self._active = 0

    @property
    def active(self) -> int:
        return self._active

    def prepare(self, stage_name: str) -> ExtractionStage:
        """Build a stage instance or raise ChainError if it cannot be launched."""
        stage_class = self._stage_classes.get(stage_name)
        if stage_class is None:
            raise ChainError(stage_name, "stage is not registered")
        if stage_name in self._config.disabled_stages:
            raise ChainError(stage_name, "stage is disabled by configuration")
        if self._active >= self._config.max_active_stages:
            raise ChainError(
                stage_name,
                f"{self._active} stages already active (limit {self._config.max_active_stages})",
            )
        return stage_class(
            self._deps,
            self._config,
            self._policy,
            successor=self._config.successor_of(stage_name),
        )

    async def launch(
        self,
        stage_name: str,
        mode: SyncMode,
        lookback_minutes: Optional[int],
    ) -> StageOutcome:
        stage = self.prepare(stage_name)
        self._active += 1
        try:
            return await stage.run(mode, lookback_minutes)
        finally:
            self._active -= 1


class SyncOrchestrator:
    """Decides the run mode and triggers the first stage of each pipeline.

    Pipelines from the configuration run concurrently with each other; the
    stages inside one pipeline run strictly in sequence, a successor starting
    only after its predecessor's finish hook completed.

    Example:
        orchestrator = SyncOrchestrator(reader, target, log_store, config)
        summary = await orchestrator.run(SyncMode.DELTA, lookback_minutes=60)
    """

    def __init__(
        self,
        reader: SourceReader,
        target: TargetStore,
        log_store: RunLogStore,
        config: Union[SyncConfig, Callable[[], SyncConfig]],
        retry_backoff_seconds: float = 0.5,
        stage_classes: Optional[dict[str, type[ExtractionStage]]] = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            reader: Host platform source reader
            target: Unified record store
            log_store: Run log store
            config: Configuration snapshot, or a callable returning a fresh
                snapshot for every run
            retry_backoff_seconds: Initial backoff for upsert retries
            stage_classes: Stage registry (defaults to the three built-in stages)
        """
        self._reader = reader
        self._target = target
        self._log_store = log_store
        self._config_source = config
        self._retry_backoff = retry_backoff_seconds
        self._stage_classes = stage_classes or STAGE_CLASSES
        self._run_lock = asyncio.Lock()
        self._logger = logger.bind(component="SyncOrchestrator")

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def _snapshot(self) -> SyncConfig:
        if isinstance(self._config_source, SyncConfig):
            return self._config_source
        return self._config_source()

    def _validate(self, config: SyncConfig) -> OwnershipPolicy:
        policy = parse_ownership_policy(config.ownership_policy)
        for pipeline in config.pipelines:
            for stage_name in pipeline:
                if stage_name not in self._stage_classes:
                    raise ConfigurationError("pipelines", f"unknown stage {stage_name!r}")
        if config.max_upserts_per_txn < 1:
            raise ConfigurationError("max_upserts_per_txn", "must be >= 1")
        if config.retry_limit < 0:
            raise ConfigurationError("retry_limit", "must be >= 0")
        return policy

    async def run(self, mode: SyncMode, lookback_minutes: Optional[int] = None) -> SyncRunSummary:
        """Run a sync in the given mode.

        Args:
            mode: FULL or DELTA
            lookback_minutes: Delta window; defaults to the configured lookback

        Returns:
            SyncRunSummary of every stage that ran

        Raises:
            ConfigurationError: If the configuration is invalid; nothing is
                extracted in that case
        """
        mode = SyncMode(mode)
        recorder = SyncLogRecorder(self._log_store)

        try:
            config = self._snapshot()
            policy = self._validate(config)
        except ConfigurationError as e:
            self._logger.error("sync_configuration_invalid", mode=mode.value, error=e.message)
            await recorder.record_failure(ORCHESTRATOR_JOB_NAME, mode, e.message)
            raise

        if mode == SyncMode.DELTA and lookback_minutes is None:
            lookback_minutes = config.delta_lookback_minutes
        summary = SyncRunSummary(mode=mode, lookback_minutes=lookback_minutes)

        if not config.mode_enabled(mode):
            self._logger.info("sync_mode_disabled", mode=mode.value)
            summary.skipped = True
            summary.skip_reason = f"{mode.value} sync disabled"
            return summary

        if self._run_lock.locked():
            self._logger.warning("sync_run_already_active", mode=mode.value)
            summary.skipped = True
            summary.skip_reason = "another sync run is active"
            return summary

        async with self._run_lock:
            deps = StageDependencies(
                reader=self._reader,
                target=self._target,
                upserter=UpsertCoordinator(
                    self._target,
                    max_upserts_per_txn=config.max_upserts_per_txn,
                    retry_limit=config.retry_limit,
                    retry_backoff_seconds=self._retry_backoff,
                ),
                recorder=recorder,
                parent_resolver=ParentResolver(config.excluded_parent_types),
            )
            launcher = StageLauncher(deps, config, policy, self._stage_classes)

            self._logger.info(
                "sync_run_started",
                mode=mode.value,
                lookback_minutes=lookback_minutes,
                pipelines=[list(pipeline) for pipeline in config.pipelines],
            )

            pipelines = [pipeline for pipeline in config.pipelines if pipeline]
            results = await asyncio.gather(
                *[
                    self._run_pipeline(launcher, recorder, pipeline[0], mode, lookback_minutes, summary)
                    for pipeline in pipelines
                ],
                return_exceptions=True,
            )
            for pipeline, result in zip(pipelines, results):
                if isinstance(result, Exception):
                    self._logger.error(
                        "sync_pipeline_failed",
                        first_stage=pipeline[0],
                        error=str(result),
                    )
                    summary.failure_logs.append(
                        await self._record_failure_safely(recorder, mode, str(result))
                    )

        self._logger.info(
            "sync_run_completed",
            mode=mode.value,
            stages=summary.stages_run,
            records_processed=summary.records_processed,
            error_count=summary.error_count,
        )
        return summary

    async def list_recent_logs(self, limit: int = 50) -> list[SyncRunLog]:
        """Return the most recent run log rows, newest first."""
        return await SyncLogRecorder(self._log_store).list_recent(limit)

    async def _run_pipeline(
        self,
        launcher: StageLauncher,
        recorder: SyncLogRecorder,
        first_stage: str,
        mode: SyncMode,
        lookback_minutes: Optional[int],
        summary: SyncRunSummary,
    ) -> None:
        try:
            outcome = await launcher.launch(first_stage, mode, lookback_minutes)
        except ChainError as e:
            self._logger.warning("pipeline_not_started", stage=first_stage, error=e.message)
            summary.failure_logs.append(
                await recorder.record_failure(ORCHESTRATOR_JOB_NAME, mode, e.message)
            )
            return

        while True:
            summary.outcomes.append(outcome)
            continuation = outcome.continuation
            if continuation is None:
                return
            try:
                outcome = await launcher.launch(
                    continuation.next_stage,
                    continuation.mode,
                    continuation.lookback_minutes,
                )
            except ChainError as e:
                # The finished stage's own row stays as written
                self._logger.error(
                    "chain_launch_failed",
                    stage=outcome.stage,
                    next_stage=continuation.next_stage,
                    error=e.message,
                )
                summary.failure_logs.append(
                    await recorder.record_chain_failure(
                        outcome.log.job_name,
                        continuation.mode,
                        continuation.next_stage,
                        e.message,
                    )
                )
                return

    async def _record_failure_safely(
        self, recorder: SyncLogRecorder, mode: SyncMode, message: str
    ) -> SyncRunLog:
        try:
            return await recorder.record_failure(ORCHESTRATOR_JOB_NAME, mode, message)
        except Exception as e:
            self._logger.error("run_log_write_failed", error=str(e))
            return SyncRunLog(
                job_name=ORCHESTRATOR_JOB_NAME,
                mode=mode,
                entry_type=LogEntryType.ORCHESTRATOR,
                status=SyncStatus.FAILED,
                error_count=1,
                sample_error_message=message,
            )
