"""Extraction stages: one batch unit of work per source record type.

Each stage opens a chunked cursor over its source records and, per chunk,
maps records, resolves parents and owners, builds identity keys, skips
unchanged rows and upserts the rest. Counters live in a StageRunContext that
is merged chunk by chunk; errors inside a chunk are counted, never raised.
On finish a stage writes its log row and returns a Continuation naming the
next stage of its pipeline, if any.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Optional, Sequence

import structlog

from unified_file_sync.core.errors import (
    AppError,
    InvalidInputError,
    MappingError,
    ResolutionError,
)

from .delta import compute_content_hash, filter_changed, find_orphans
from .identity import build_identity_key
from .mapper import map_record
from .models import (
    ATTACHMENT_STAGE,
    CONTENT_DOCUMENT_LINK_STAGE,
    CONTENT_VERSION_STAGE,
    AttachmentRecord,
    ChunkResult,
    Continuation,
    FileRecord,
    LinkRecord,
    OwnershipPolicy,
    ParentCandidate,
    SourceMeta,
    SourceRecord,
    SourceType,
    StageRunContext,
    StageState,
    SyncConfig,
    SyncMode,
    SyncRunLog,
    UnifiedRecord,
    VersionRecord,
    utc_now,
)
from .ownership import resolve_owner, source_meta_for
from .parents import ParentResolver, group_links_by_document
from .run_log import SyncLogRecorder
from .store import SourceReader, TargetStore
from .upsert import UpsertCoordinator

logger = structlog.get_logger(__name__)


@dataclass
class StageDependencies:
    """Collaborators shared by every stage of a run."""

    reader: SourceReader
    target: TargetStore
    upserter: UpsertCoordinator
    recorder: SyncLogRecorder
    parent_resolver: ParentResolver


@dataclass
class StageOutcome:
    """What a finished stage hands back to the orchestrator."""

    stage: str
    log: SyncRunLog
    context: StageRunContext
    continuation: Optional[Continuation] = None


def _error_text(exc: Exception) -> str:
    if isinstance(exc, AppError):
        return exc.message
    return str(exc) or type(exc).__name__


class ExtractionStage(ABC):
    """Abstract base class for extraction stages.

    Subclasses choose the cursor they read and how a chunk turns into
    source records plus parent candidates; the reconciliation steps are
    shared.

    Example:
        stage = ContentVersionStage(deps, config, OwnershipPolicy.PARENT_OWNER,
                                    successor="content_document_link")
        outcome = await stage.run(SyncMode.DELTA, lookback_minutes=60)
    """

    name: str = ""
    job_name: str = ""
    # Source types whose stored rows this stage is authoritative for
    orphan_source_types: tuple[SourceType, ...] = ()

    def __init__(
        self,
        deps: StageDependencies,
        config: SyncConfig,
        policy: OwnershipPolicy,
        successor: Optional[str] = None,
    ) -> None:
        self._deps = deps
        self._config = config
        self._policy = policy
        self._successor = successor
        self._state = StageState.NOT_STARTED
        self._log: Optional[SyncRunLog] = None
        self._logger = logger.bind(stage=self.name)

    @property
    def state(self) -> StageState:
        return self._state

    @property
    def successor(self) -> Optional[str]:
        return self._successor

    @abstractmethod
    def _open_cursor(
        self, batch_size: int, modified_since: Optional[datetime]
    ) -> AsyncIterator[Sequence[Any]]:
        """Open the chunked cursor over this stage's source records."""
        ...

    @abstractmethod
    async def _collect(
        self, chunk: Sequence[Any]
    ) -> tuple[list[SourceRecord], dict[str, list[ParentCandidate]]]:
        """Turn a chunk into records to reconcile and their parent candidates.

        Candidates are keyed by file id (the FileRecord's source_record_id).
        """
        ...

    async def run(self, mode: SyncMode, lookback_minutes: Optional[int] = None) -> StageOutcome:
        """Run the stage to completion: start, every chunk, finish."""
        context = await self.start(mode, lookback_minutes)
        modified_since = None
        if mode == SyncMode.DELTA:
            modified_since = utc_now() - timedelta(minutes=context.lookback_minutes or 0)

        batch_size = self._config.batch_size_for(self.name)
        try:
            async for chunk in self._open_cursor(batch_size, modified_since):
                await self._run_chunk(chunk, context)
        except Exception as e:
            # Cursor failure: earlier chunks stay committed, finish still runs
            self._logger.error("cursor_failed", error=_error_text(e))
            context.record_chunk_failure(f"Cursor failed: {_error_text(e)}", 0)

        return await self.finish(context)

    async def start(self, mode: SyncMode, lookback_minutes: Optional[int] = None) -> StageRunContext:
        """Move to RUNNING and insert the stage's log row."""
        if self._state != StageState.NOT_STARTED:
            raise RuntimeError(f"Stage {self.name} already started")

        lookback = lookback_minutes
        if mode == SyncMode.DELTA and lookback is None:
            lookback = self._config.delta_lookback_minutes

        self._log = await self._deps.recorder.start(self.job_name, mode)
        self._state = StageState.RUNNING
        self._logger.info("stage_started", mode=mode.value, lookback_minutes=lookback)
        return StageRunContext(stage=self.name, mode=mode, lookback_minutes=lookback)

    async def _run_chunk(self, chunk: Sequence[Any], context: StageRunContext) -> None:
        try:
            result = await asyncio.wait_for(
                self.process_chunk(chunk),
                timeout=self._config.chunk_timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._logger.error("chunk_aborted", chunk_size=len(chunk))
            context.record_chunk_failure("Chunk aborted: exceeded time limit", len(chunk))
            return
        except Exception as e:
            self._logger.error("chunk_failed", chunk_size=len(chunk), error=_error_text(e))
            context.record_chunk_failure(_error_text(e), len(chunk))
            return

        context.merge(result)
        self._logger.debug(
            "chunk_processed",
            chunk_size=len(chunk),
            upserted=result.records_upserted,
            skipped=result.records_skipped,
            errors=result.error_count,
        )

    async def process_chunk(self, chunk: Sequence[Any]) -> ChunkResult:
        """Map, resolve, key, delta-check and upsert one chunk."""
        result = ChunkResult(records_processed=len(chunk))
        records, candidates = await self._collect(chunk)

        mapped: list[tuple[FileRecord, SourceMeta]] = []
        for record in records:
            try:
                file_record = map_record(record)
                file_record.identity_key = build_identity_key(
                    file_record.source_type, file_record.source_record_id
                )
            except (MappingError, InvalidInputError) as e:
                result.add_error(e.message)
                self._logger.warning("record_mapping_failed", record_id=record.id, error=e.message)
                continue
            mapped.append((file_record, source_meta_for(record)))

        if not mapped:
            return result

        parents = self._deps.parent_resolver.select_primary_parents(
            candidates, [file_record.source_record_id for file_record, _ in mapped]
        )

        by_key: dict[str, FileRecord] = {}
        for file_record, meta in mapped:
            parent = parents[file_record.source_record_id]
            file_record.apply_parent(parent)
            try:
                file_record.owner_id = resolve_owner(file_record, parent, meta, self._policy)
            except ResolutionError as e:
                # Unknown owner, the record is still written
                file_record.owner_id = None
                self._logger.debug("owner_unresolved", record_id=e.details["record_id"], error=e.message)
            by_key[file_record.identity_key] = file_record

        result.seen_keys.update(by_key)
        stored = await self._deps.target.fetch_index(list(by_key))
        changed, unchanged = filter_changed(list(by_key.values()), stored)
        result.records_skipped += len(unchanged)
        if not changed:
            return result

        synced_at = utc_now()
        rows = [
            UnifiedRecord.from_file_record(record, compute_content_hash(record), synced_at)
            for record in changed
        ]
        summary = await self._deps.upserter.upsert(rows)
        result.records_upserted += summary.success_count
        for error in summary.errors:
            result.add_error(f"{error.identity_key}: {error.message}")
        return result

    async def finish(self, context: StageRunContext) -> StageOutcome:
        """Flag orphans (full mode), write the log row, hand over the successor."""
        if self._log is None:
            raise RuntimeError(f"Stage {self.name} finished before it started")
        self._state = StageState.FINISHING

        if context.mode == SyncMode.FULL and self.orphan_source_types:
            await self._flag_orphans(context)

        continuation = None
        if self._successor:
            continuation = Continuation(
                next_stage=self._successor,
                mode=context.mode,
                lookback_minutes=context.lookback_minutes,
            )

        log = await self._deps.recorder.complete(self._log, context, next_stage=self._successor)
        self._state = StageState.DONE
        self._logger.info(
            "stage_finished",
            status=log.status.value,
            records_processed=context.records_processed,
            records_upserted=context.records_upserted,
            records_skipped=context.records_skipped,
            error_count=context.error_count,
            next_stage=self._successor,
        )
        return StageOutcome(stage=self.name, log=log, context=context, continuation=continuation)

    async def _flag_orphans(self, context: StageRunContext) -> None:
        if context.chunks_failed:
            # Seen keys are incomplete, flagging now would mark live files
            self._logger.warning("orphan_scan_skipped", chunks_failed=context.chunks_failed)
            return
        try:
            stored_keys = await self._deps.target.list_identity_keys(self.orphan_source_types)
            orphans = find_orphans(stored_keys, context.seen_keys)
            context.orphans_flagged = await self._deps.upserter.flag_orphans(orphans)
        except Exception as e:
            self._logger.error("orphan_scan_failed", error=_error_text(e))
            context.error_count += 1
            if context.sample_error_message is None:
                context.sample_error_message = f"Orphan scan failed: {_error_text(e)}"


class ContentVersionStage(ExtractionStage):
    """Latest document versions (including notes); parents come from links."""

    name = CONTENT_VERSION_STAGE
    job_name = "BatchExtractContentVersions"
    orphan_source_types = (SourceType.CONTENT_VERSION, SourceType.NOTE)

    def _open_cursor(self, batch_size, modified_since):
        return self._deps.reader.iter_versions(batch_size, modified_since)

    async def _collect(
        self, chunk: Sequence[VersionRecord]
    ) -> tuple[list[SourceRecord], dict[str, list[ParentCandidate]]]:
        versions = [version for version in chunk if version.is_latest]
        document_ids = list(
            dict.fromkeys(v.content_document_id for v in versions if v.content_document_id)
        )
        links = await self._deps.reader.fetch_links(document_ids) if document_ids else []
        return list(versions), group_links_by_document(links)


class ContentDocumentLinkStage(ExtractionStage):
    """Link changes; every touched document is re-resolved against all its links."""

    name = CONTENT_DOCUMENT_LINK_STAGE
    job_name = "BatchExtractContentDocumentLinks"

    def _open_cursor(self, batch_size, modified_since):
        return self._deps.reader.iter_links(batch_size, modified_since)

    async def _collect(
        self, chunk: Sequence[LinkRecord]
    ) -> tuple[list[SourceRecord], dict[str, list[ParentCandidate]]]:
        document_ids = list(dict.fromkeys(link.content_document_id for link in chunk))
        if not document_ids:
            return [], {}
        versions = await self._deps.reader.fetch_latest_versions(document_ids)
        links = await self._deps.reader.fetch_links(document_ids)
        return list(versions), group_links_by_document(links)


class AttachmentStage(ExtractionStage):
    """Legacy attachments; each carries its single parent inline."""

    name = ATTACHMENT_STAGE
    job_name = "BatchExtractAttachments"
    orphan_source_types = (SourceType.ATTACHMENT,)

    def _open_cursor(self, batch_size, modified_since):
        return self._deps.reader.iter_attachments(batch_size, modified_since)

    async def _collect(
        self, chunk: Sequence[AttachmentRecord]
    ) -> tuple[list[SourceRecord], dict[str, list[ParentCandidate]]]:
        candidates: dict[str, list[ParentCandidate]] = {}
        for attachment in chunk:
            if not attachment.parent_id:
                continue
            candidates[attachment.id] = [
                ParentCandidate(
                    parent_id=attachment.parent_id,
                    parent_type=attachment.parent_type,
                    parent_name=attachment.parent_name,
                    link_created_at=attachment.created_at,
                    parent_owner_id=attachment.parent_owner_id,
                )
            ]
        return list(chunk), candidates


STAGE_CLASSES: dict[str, type[ExtractionStage]] = {
    CONTENT_VERSION_STAGE: ContentVersionStage,
    CONTENT_DOCUMENT_LINK_STAGE: ContentDocumentLinkStage,
    ATTACHMENT_STAGE: AttachmentStage,
}
