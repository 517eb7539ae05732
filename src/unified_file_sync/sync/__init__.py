"""Unified file sync pipeline.

This package reconciles document versions, legacy attachments and
document links into one unified record per file:
- Extraction stages read chunked cursors over each source type
- Records are mapped, parent- and owner-resolved, keyed and delta-checked
- Changed rows are upserted by identity key; run logs record every stage

Example:
    from unified_file_sync.sync import (
        InMemoryRunLogStore,
        InMemorySourceReader,
        InMemoryTargetStore,
        SyncConfig,
        SyncMode,
        SyncOrchestrator,
    )

    orchestrator = SyncOrchestrator(
        reader=InMemorySourceReader(versions=[...], links=[...]),
        target=InMemoryTargetStore(),
        log_store=InMemoryRunLogStore(),
        config=SyncConfig(),
    )
    summary = await orchestrator.run(SyncMode.FULL)
"""

from .delta import compute_content_hash, filter_changed, find_orphans, has_changed
from .identity import build_identity_key
from .mapper import map_record, map_records
from .models import (
    ATTACHMENT_STAGE,
    CONTENT_DOCUMENT_LINK_STAGE,
    CONTENT_VERSION_STAGE,
    AttachmentRecord,
    Continuation,
    FileRecord,
    LinkRecord,
    LogEntryType,
    OwnershipPolicy,
    ParentCandidate,
    ResolvedParent,
    SourceMeta,
    SourceType,
    StageRunContext,
    StageState,
    SyncConfig,
    SyncMode,
    SyncRunLog,
    SyncStatus,
    UnifiedRecord,
    UpsertResult,
    UpsertSummary,
    VersionRecord,
)
from .orchestrator import StageLauncher, SyncOrchestrator, SyncRunSummary
from .ownership import parse_ownership_policy, resolve_owner
from .parents import ParentResolver
from .run_log import SyncLogRecorder
from .scheduler import SyncScheduler, create_sync_scheduler, parse_cron_schedule
from .stages import (
    AttachmentStage,
    ContentDocumentLinkStage,
    ContentVersionStage,
    ExtractionStage,
    StageDependencies,
    StageOutcome,
)
from .store import (
    InMemoryRunLogStore,
    InMemorySourceReader,
    InMemoryTargetStore,
    RunLogStore,
    SourceReader,
    TargetStore,
)
from .upsert import UpsertCoordinator

__all__ = [
    # Models
    "SourceType",
    "SyncMode",
    "SyncStatus",
    "StageState",
    "LogEntryType",
    "OwnershipPolicy",
    "VersionRecord",
    "AttachmentRecord",
    "LinkRecord",
    "FileRecord",
    "ParentCandidate",
    "ResolvedParent",
    "SourceMeta",
    "UnifiedRecord",
    "UpsertResult",
    "UpsertSummary",
    "SyncRunLog",
    "StageRunContext",
    "Continuation",
    "SyncConfig",
    "CONTENT_VERSION_STAGE",
    "CONTENT_DOCUMENT_LINK_STAGE",
    "ATTACHMENT_STAGE",
    # Pipeline components
    "build_identity_key",
    "map_record",
    "map_records",
    "ParentResolver",
    "parse_ownership_policy",
    "resolve_owner",
    "compute_content_hash",
    "has_changed",
    "filter_changed",
    "find_orphans",
    "UpsertCoordinator",
    "SyncLogRecorder",
    # Stages and orchestration
    "ExtractionStage",
    "ContentVersionStage",
    "ContentDocumentLinkStage",
    "AttachmentStage",
    "StageDependencies",
    "StageOutcome",
    "StageLauncher",
    "SyncOrchestrator",
    "SyncRunSummary",
    "SyncScheduler",
    "create_sync_scheduler",
    "parse_cron_schedule",
    # Stores
    "SourceReader",
    "TargetStore",
    "RunLogStore",
    "InMemorySourceReader",
    "InMemoryTargetStore",
    "InMemoryRunLogStore",
]
