"""Interfaces to the host platform and in-memory implementations.

The pipeline needs three collaborators:
- SourceReader: chunked cursors over the source record types plus bulk lookups
- TargetStore: bulk upsert keyed by identity key and orphan flagging
- RunLogStore: durable append/update of run log rows

The in-memory implementations back local runs and tests.
"""

from datetime import datetime
from itertools import count
from typing import AsyncIterator, Callable, Iterable, Optional, Protocol, Sequence

from .models import (
    AttachmentRecord,
    LinkRecord,
    SourceType,
    StoredIndexEntry,
    SyncRunLog,
    UnifiedRecord,
    UpsertResult,
    VersionRecord,
)


class SourceReader(Protocol):
    """Protocol for reading raw source records from the host platform."""

    def iter_versions(
        self, batch_size: int, modified_since: Optional[datetime] = None
    ) -> AsyncIterator[list[VersionRecord]]:
        """Yield chunks of latest document versions."""
        ...

    def iter_attachments(
        self, batch_size: int, modified_since: Optional[datetime] = None
    ) -> AsyncIterator[list[AttachmentRecord]]:
        """Yield chunks of attachments."""
        ...

    def iter_links(
        self, batch_size: int, modified_since: Optional[datetime] = None
    ) -> AsyncIterator[list[LinkRecord]]:
        """Yield chunks of document links."""
        ...

    async def fetch_links(self, document_ids: Sequence[str]) -> list[LinkRecord]:
        """Fetch every link of the given documents in one query."""
        ...

    async def fetch_latest_versions(self, document_ids: Sequence[str]) -> list[VersionRecord]:
        """Fetch the latest version of each given document in one query."""
        ...


class TargetStore(Protocol):
    """Protocol for the unified record table."""

    async def fetch_index(self, identity_keys: Sequence[str]) -> dict[str, StoredIndexEntry]:
        """Return stored hash and orphan flag for the keys that exist."""
        ...

    async def upsert(self, rows: Sequence[UnifiedRecord]) -> list[UpsertResult]:
        """Upsert rows keyed by identity key; one result per row, in order."""
        ...

    async def list_identity_keys(self, source_types: Iterable[SourceType]) -> set[str]:
        """Return every stored identity key of the given source types."""
        ...

    async def flag_missing(self, identity_keys: Sequence[str], flagged_at: datetime) -> int:
        """Mark rows as missing from source. Returns the number flagged."""
        ...


class RunLogStore(Protocol):
    """Protocol for durable run log rows."""

    async def insert(self, log: SyncRunLog) -> str:
        """Persist a new row and return its id."""
        ...

    async def update(self, log: SyncRunLog) -> None:
        """Persist the final state of an existing row."""
        ...

    async def list_recent(self, limit: int = 50) -> list[SyncRunLog]:
        """Return the most recent rows, newest first."""
        ...


# ============================================================================
# In-memory implementations
# ============================================================================


def _chunked(items: Sequence, size: int) -> Iterable[list]:
    size = max(size, 1)
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def _modified_after(value: Optional[datetime], since: Optional[datetime]) -> bool:
    if since is None:
        return True
    if value is None:
        return False
    return value >= since


class InMemorySourceReader:
    """SourceReader over plain lists of records."""

    def __init__(
        self,
        versions: Optional[list[VersionRecord]] = None,
        attachments: Optional[list[AttachmentRecord]] = None,
        links: Optional[list[LinkRecord]] = None,
    ) -> None:
        self.versions = list(versions or [])
        self.attachments = list(attachments or [])
        self.links = list(links or [])

    async def iter_versions(
        self, batch_size: int, modified_since: Optional[datetime] = None
    ) -> AsyncIterator[list[VersionRecord]]:
        selected = [
            version
            for version in sorted(self.versions, key=lambda v: v.id)
            if version.is_latest and _modified_after(version.last_modified_at, modified_since)
        ]
        for chunk in _chunked(selected, batch_size):
            yield chunk

    async def iter_attachments(
        self, batch_size: int, modified_since: Optional[datetime] = None
    ) -> AsyncIterator[list[AttachmentRecord]]:
        selected = [
            attachment
            for attachment in sorted(self.attachments, key=lambda a: a.id)
            if _modified_after(attachment.last_modified_at, modified_since)
        ]
        for chunk in _chunked(selected, batch_size):
            yield chunk

    async def iter_links(
        self, batch_size: int, modified_since: Optional[datetime] = None
    ) -> AsyncIterator[list[LinkRecord]]:
        selected = [
            link
            for link in sorted(self.links, key=lambda l: l.id)
            if _modified_after(link.last_modified_at or link.created_at, modified_since)
        ]
        for chunk in _chunked(selected, batch_size):
            yield chunk

    async def fetch_links(self, document_ids: Sequence[str]) -> list[LinkRecord]:
        wanted = set(document_ids)
        return [link for link in self.links if link.content_document_id in wanted]

    async def fetch_latest_versions(self, document_ids: Sequence[str]) -> list[VersionRecord]:
        wanted = set(document_ids)
        return [
            version
            for version in sorted(self.versions, key=lambda v: v.id)
            if version.is_latest and version.content_document_id in wanted
        ]


class InMemoryTargetStore:
    """TargetStore holding unified rows in a dict keyed by identity key.

    Args:
        validator: Optional callable returning an error message for rows the
            store should reject (simulates validation failures)
        transient_failures: Identity keys mapped to how many times a write of
            that key fails with a retryable lock error before succeeding
    """

    def __init__(
        self,
        validator: Optional[Callable[[UnifiedRecord], Optional[str]]] = None,
        transient_failures: Optional[dict[str, int]] = None,
    ) -> None:
        self.rows: dict[str, UnifiedRecord] = {}
        self.write_calls: list[list[str]] = []
        self._validator = validator
        self._transient_failures = dict(transient_failures or {})

    async def fetch_index(self, identity_keys: Sequence[str]) -> dict[str, StoredIndexEntry]:
        return {
            key: StoredIndexEntry(
                identity_key=key,
                content_hash=self.rows[key].content_hash,
                missing_in_source=self.rows[key].missing_in_source,
            )
            for key in identity_keys
            if key in self.rows
        }

    async def upsert(self, rows: Sequence[UnifiedRecord]) -> list[UpsertResult]:
        self.write_calls.append([row.identity_key for row in rows])
        results = []
        for row in rows:
            remaining = self._transient_failures.get(row.identity_key, 0)
            if remaining > 0:
                self._transient_failures[row.identity_key] = remaining - 1
                results.append(
                    UpsertResult(
                        identity_key=row.identity_key,
                        success=False,
                        error_message="UNABLE_TO_LOCK_ROW: record is locked",
                        retryable=True,
                    )
                )
                continue

            error = self._validator(row) if self._validator else None
            if error:
                results.append(
                    UpsertResult(identity_key=row.identity_key, success=False, error_message=error)
                )
                continue

            created = row.identity_key not in self.rows
            self.rows[row.identity_key] = row
            results.append(UpsertResult(identity_key=row.identity_key, success=True, created=created))
        return results

    async def list_identity_keys(self, source_types: Iterable[SourceType]) -> set[str]:
        wanted = set(source_types)
        return {key for key, row in self.rows.items() if row.source_type in wanted}

    async def flag_missing(self, identity_keys: Sequence[str], flagged_at: datetime) -> int:
        flagged = 0
        for key in identity_keys:
            row = self.rows.get(key)
            if row is None or row.missing_in_source:
                continue
            row.missing_in_source = True
            row.flagged_at = flagged_at
            flagged += 1
        return flagged


class InMemoryRunLogStore:
    """RunLogStore keeping rows in insertion order."""

    def __init__(self) -> None:
        self.logs: dict[str, SyncRunLog] = {}
        self._ids = count(1)

    async def insert(self, log: SyncRunLog) -> str:
        log_id = f"log-{next(self._ids)}"
        log.id = log_id
        self.logs[log_id] = log
        return log_id

    async def update(self, log: SyncRunLog) -> None:
        if log.id is None or log.id not in self.logs:
            raise KeyError(f"Unknown run log {log.id!r}")
        self.logs[log.id] = log

    async def list_recent(self, limit: int = 50) -> list[SyncRunLog]:
        return list(reversed(list(self.logs.values())))[:limit]
