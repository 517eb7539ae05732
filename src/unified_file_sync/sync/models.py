"""Data models for the unified file sync pipeline.

This module defines the source record shapes read from the host platform,
the canonical file record the pipeline computes, the persisted unified row,
run logs, and the per-run configuration snapshot.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from unified_file_sync.core.errors import UpsertError


# File type the host platform uses for notes stored as versions
NOTE_FILE_TYPE = "SNOTE"
NOTE_EXTENSION = "snote"
NOTE_MIME_TYPE = "text/plain"

# Stage names, also used as keys of SyncConfig.batch_size_by_stage
CONTENT_VERSION_STAGE = "content_version"
CONTENT_DOCUMENT_LINK_STAGE = "content_document_link"
ATTACHMENT_STAGE = "attachment"

DEFAULT_BATCH_SIZE = 200
DEFAULT_MAX_UPSERTS_PER_TXN = 200
DEFAULT_RETRY_LIMIT = 2
DEFAULT_DELTA_LOOKBACK_MINUTES = 90
DEFAULT_MAX_ACTIVE_STAGES = 5


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class SourceType(str, Enum):
    """Kinds of file the unified record can describe."""

    CONTENT_VERSION = "ContentVersion"
    ATTACHMENT = "Attachment"
    NOTE = "Note"


class SyncMode(str, Enum):
    """Run mode of a sync invocation."""

    FULL = "full"
    DELTA = "delta"


class OwnershipPolicy(str, Enum):
    """How the owner of a unified record is chosen."""

    LATEST_VERSION_MODIFIER = "LATEST_VERSION_MODIFIER"
    PARENT_OWNER = "PARENT_OWNER"
    ATTACHMENT_OWNER = "ATTACHMENT_OWNER"


class SyncStatus(str, Enum):
    """Status of a stage run as written to its log row."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class StageState(str, Enum):
    """Lifecycle of one extraction stage invocation."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    FINISHING = "finishing"
    DONE = "done"


class LogEntryType(str, Enum):
    """Kind of run log row."""

    STAGE = "stage"
    CHAIN_FAILURE = "chain_failure"
    ORCHESTRATOR = "orchestrator"


# ============================================================================
# Source records (read-only, scoped to one chunk)
# ============================================================================


@dataclass(frozen=True)
class VersionRecord:
    """One document version as read from the host platform.

    A version whose file type is SNOTE is a note.
    """

    id: str
    content_document_id: str
    title: Optional[str] = None
    path_on_client: Optional[str] = None
    file_extension: Optional[str] = None
    file_type: Optional[str] = None
    content_size: Optional[int] = None
    created_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None
    created_by_id: Optional[str] = None
    last_modified_by_id: Optional[str] = None
    owner_id: Optional[str] = None
    is_latest: bool = True

    @property
    def source_type(self) -> SourceType:
        if (self.file_type or "").upper() == NOTE_FILE_TYPE:
            return SourceType.NOTE
        return SourceType.CONTENT_VERSION


@dataclass(frozen=True)
class AttachmentRecord:
    """A legacy attachment. It carries its single parent inline."""

    id: str
    name: Optional[str] = None
    content_type: Optional[str] = None
    body_length: Optional[int] = None
    parent_id: Optional[str] = None
    parent_type: Optional[str] = None
    parent_name: Optional[str] = None
    parent_owner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None
    created_by_id: Optional[str] = None
    last_modified_by_id: Optional[str] = None
    owner_id: Optional[str] = None

    @property
    def source_type(self) -> SourceType:
        return SourceType.ATTACHMENT


@dataclass(frozen=True)
class LinkRecord:
    """A link between a document and a host record."""

    id: str
    content_document_id: str
    linked_entity_id: str
    linked_entity_type: Optional[str] = None
    linked_entity_name: Optional[str] = None
    linked_entity_owner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None


SourceRecord = Union[VersionRecord, AttachmentRecord]


# ============================================================================
# Canonical records
# ============================================================================


@dataclass(frozen=True)
class ParentCandidate:
    """One link between a file and a host record."""

    parent_id: str
    parent_type: Optional[str] = None
    parent_name: Optional[str] = None
    link_created_at: Optional[datetime] = None
    parent_owner_id: Optional[str] = None
    link_id: Optional[str] = None

    @classmethod
    def from_link(cls, link: LinkRecord) -> "ParentCandidate":
        return cls(
            parent_id=link.linked_entity_id,
            parent_type=link.linked_entity_type,
            parent_name=link.linked_entity_name,
            link_created_at=link.created_at,
            parent_owner_id=link.linked_entity_owner_id,
            link_id=link.id,
        )


@dataclass(frozen=True)
class ResolvedParent:
    """The primary parent chosen for a file.

    valid=False means the file has no usable parent (an orphan file).
    """

    parent_record_id: Optional[str] = None
    parent_record_type: Optional[str] = None
    parent_record_name: Optional[str] = None
    parent_owner_id: Optional[str] = None
    valid: bool = False

    @classmethod
    def orphan(cls) -> "ResolvedParent":
        return cls(valid=False)


@dataclass(frozen=True)
class SourceMeta:
    """Actor ids from the source record used by ownership policies."""

    latest_version_modifier_id: Optional[str] = None
    attachment_creator_id: Optional[str] = None


@dataclass
class FileRecord:
    """Canonical in-memory representation of one file.

    identity_key is filled in by the stage once the source record id is known;
    it is a pure function of (source_type, source_record_id).
    """

    source_type: SourceType
    source_record_id: str
    title: Optional[str] = None
    extension: Optional[str] = None
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    created_by_id: Optional[str] = None
    modified_by_id: Optional[str] = None
    parent_record_id: Optional[str] = None
    parent_record_type: Optional[str] = None
    parent_record_name: Optional[str] = None
    owner_id: Optional[str] = None
    identity_key: str = ""

    def apply_parent(self, parent: ResolvedParent) -> None:
        """Copy the resolved parent onto this record."""
        if parent.valid:
            self.parent_record_id = parent.parent_record_id
            self.parent_record_type = parent.parent_record_type
            self.parent_record_name = parent.parent_record_name
        else:
            self.parent_record_id = None
            self.parent_record_type = None
            self.parent_record_name = None


@dataclass
class UnifiedRecord:
    """Persisted denormalized report row, keyed by identity_key."""

    identity_key: str
    source_type: SourceType
    source_record_id: str
    title: Optional[str] = None
    extension: Optional[str] = None
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    created_by_id: Optional[str] = None
    modified_by_id: Optional[str] = None
    parent_record_id: Optional[str] = None
    parent_record_type: Optional[str] = None
    parent_record_name: Optional[str] = None
    owner_id: Optional[str] = None
    content_hash: str = ""
    last_synced_at: Optional[datetime] = None
    missing_in_source: bool = False
    flagged_at: Optional[datetime] = None

    @classmethod
    def from_file_record(
        cls,
        record: FileRecord,
        content_hash: str,
        synced_at: Optional[datetime] = None,
    ) -> "UnifiedRecord":
        return cls(
            identity_key=record.identity_key,
            source_type=record.source_type,
            source_record_id=record.source_record_id,
            title=record.title,
            extension=record.extension,
            mime_type=record.mime_type,
            size_bytes=record.size_bytes,
            created_at=record.created_at,
            modified_at=record.modified_at,
            created_by_id=record.created_by_id,
            modified_by_id=record.modified_by_id,
            parent_record_id=record.parent_record_id,
            parent_record_type=record.parent_record_type,
            parent_record_name=record.parent_record_name,
            owner_id=record.owner_id,
            content_hash=content_hash,
            last_synced_at=synced_at or utc_now(),
        )


@dataclass(frozen=True)
class StoredIndexEntry:
    """What the target store knows about a persisted identity key."""

    identity_key: str
    content_hash: Optional[str]
    missing_in_source: bool = False


# ============================================================================
# Upsert results
# ============================================================================


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of writing one record to the target store."""

    identity_key: str
    success: bool
    error_message: Optional[str] = None
    created: bool = False
    retryable: bool = False


@dataclass
class UpsertSummary:
    """Aggregated upsert outcome for a batch of records."""

    results: list[UpsertResult] = field(default_factory=list)
    success_count: int = 0
    error_count: int = 0
    first_error_message: Optional[str] = None
    errors: list[UpsertError] = field(default_factory=list)

    def add(self, result: UpsertResult) -> None:
        self.results.append(result)
        if result.success:
            self.success_count += 1
            return
        self.error_count += 1
        self.errors.append(
            UpsertError(
                result.identity_key,
                result.error_message or "rejected by target store",
                retryable=result.retryable,
            )
        )
        if self.first_error_message is None:
            self.first_error_message = result.error_message


# ============================================================================
# Run logs and stage context
# ============================================================================


@dataclass
class SyncRunLog:
    """One row per stage invocation (plus chain and orchestrator failures).

    Inserted at stage start, updated once at finish, never deleted here.
    """

    job_name: str
    mode: SyncMode
    entry_type: LogEntryType = LogEntryType.STAGE
    status: SyncStatus = SyncStatus.IN_PROGRESS
    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    records_processed: int = 0
    records_upserted: int = 0
    records_skipped: int = 0
    orphans_flagged: int = 0
    error_count: int = 0
    sample_error_message: Optional[str] = None
    next_stage: Optional[str] = None
    id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "jobName": self.job_name,
            "mode": self.mode.value,
            "entryType": self.entry_type.value,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "recordsProcessed": self.records_processed,
            "recordsUpserted": self.records_upserted,
            "recordsSkipped": self.records_skipped,
            "orphansFlagged": self.orphans_flagged,
            "errorCount": self.error_count,
            "sampleErrorMessage": self.sample_error_message,
            "nextStage": self.next_stage,
        }


@dataclass
class ChunkResult:
    """Counters produced by processing one chunk."""

    records_processed: int = 0
    records_upserted: int = 0
    records_skipped: int = 0
    error_count: int = 0
    first_error_message: Optional[str] = None
    seen_keys: set[str] = field(default_factory=set)

    def add_error(self, message: str, count: int = 1) -> None:
        self.error_count += count
        if self.first_error_message is None:
            self.first_error_message = message


@dataclass
class StageRunContext:
    """Counters accumulated across the chunks of one stage invocation."""

    stage: str
    mode: SyncMode
    lookback_minutes: Optional[int] = None
    records_processed: int = 0
    records_upserted: int = 0
    records_skipped: int = 0
    orphans_flagged: int = 0
    error_count: int = 0
    sample_error_message: Optional[str] = None
    chunks_processed: int = 0
    chunks_failed: int = 0
    seen_keys: set[str] = field(default_factory=set)

    def merge(self, chunk: ChunkResult) -> None:
        self.chunks_processed += 1
        self.records_processed += chunk.records_processed
        self.records_upserted += chunk.records_upserted
        self.records_skipped += chunk.records_skipped
        self.error_count += chunk.error_count
        self.seen_keys.update(chunk.seen_keys)
        if self.sample_error_message is None:
            self.sample_error_message = chunk.first_error_message

    def record_chunk_failure(self, message: str, record_count: int) -> None:
        """Count every record of a failed chunk as processed and in error.

        A failure with no records attached (a broken cursor) counts as one error.
        """
        self.chunks_processed += 1
        self.chunks_failed += 1
        self.records_processed += record_count
        self.error_count += max(record_count, 1)
        if self.sample_error_message is None:
            self.sample_error_message = message

    @property
    def status(self) -> SyncStatus:
        if self.error_count == 0:
            return SyncStatus.COMPLETED
        if self.records_upserted > 0 or self.records_skipped > 0:
            return SyncStatus.PARTIAL
        return SyncStatus.FAILED


@dataclass(frozen=True)
class Continuation:
    """Description of the next stage to run with the same run parameters."""

    next_stage: str
    mode: SyncMode
    lookback_minutes: Optional[int] = None


# ============================================================================
# Configuration snapshot
# ============================================================================


DEFAULT_PIPELINES: tuple[tuple[str, ...], ...] = (
    (CONTENT_VERSION_STAGE, CONTENT_DOCUMENT_LINK_STAGE),
    (ATTACHMENT_STAGE,),
)


@dataclass(frozen=True)
class SyncConfig:
    """Read-only configuration snapshot for one run.

    Attributes:
        full_sync_enabled: Whether the orchestrator runs FULL mode
        delta_sync_enabled: Whether the orchestrator runs DELTA mode
        delta_lookback_minutes: Filter window for delta extraction
        batch_size_by_stage: Cursor chunk size per stage name
        max_upserts_per_txn: Chunking bound inside the upsert coordinator
        retry_limit: Extra attempts for retryable record-level upsert failures
        ownership_policy: Raw policy name, validated at run start
        pipelines: Stage sequences; stages in one sequence are chained
        disabled_stages: Stage names that may not be launched
        excluded_parent_types: Parent types never chosen as primary parent
        max_active_stages: Concurrent stage invocations the launcher allows
        chunk_timeout_seconds: Ceiling on one chunk; an expired chunk fails alone
    """

    full_sync_enabled: bool = True
    delta_sync_enabled: bool = True
    delta_lookback_minutes: int = DEFAULT_DELTA_LOOKBACK_MINUTES
    batch_size_by_stage: dict[str, int] = field(default_factory=dict)
    max_upserts_per_txn: int = DEFAULT_MAX_UPSERTS_PER_TXN
    retry_limit: int = DEFAULT_RETRY_LIMIT
    ownership_policy: str = OwnershipPolicy.LATEST_VERSION_MODIFIER.value
    pipelines: tuple[tuple[str, ...], ...] = DEFAULT_PIPELINES
    disabled_stages: frozenset[str] = frozenset()
    excluded_parent_types: frozenset[str] = frozenset({"User"})
    max_active_stages: int = DEFAULT_MAX_ACTIVE_STAGES
    chunk_timeout_seconds: Optional[float] = None

    def batch_size_for(self, stage: str) -> int:
        return self.batch_size_by_stage.get(stage, DEFAULT_BATCH_SIZE)

    def mode_enabled(self, mode: SyncMode) -> bool:
        if mode == SyncMode.FULL:
            return self.full_sync_enabled
        return self.delta_sync_enabled

    def successor_of(self, stage: str) -> Optional[str]:
        """Return the stage chained after `stage`, if any."""
        for pipeline in self.pipelines:
            if stage in pipeline:
                index = pipeline.index(stage)
                if index + 1 < len(pipeline):
                    return pipeline[index + 1]
                return None
        return None
