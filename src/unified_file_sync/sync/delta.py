"""Change detection between computed file records and persisted rows."""

import hashlib
import json
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

from .models import FileRecord, StoredIndexEntry

# Fields that carry reporting value. identity_key is the row key itself and
# sync audit columns live only on the persisted row.
REPORTABLE_FIELDS: tuple[str, ...] = (
    "source_type",
    "source_record_id",
    "title",
    "extension",
    "mime_type",
    "size_bytes",
    "created_at",
    "modified_at",
    "created_by_id",
    "modified_by_id",
    "parent_record_id",
    "parent_record_type",
    "parent_record_name",
    "owner_id",
)


def _canonical(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value


def compute_content_hash(record: FileRecord) -> str:
    """SHA-256 over a canonical JSON rendering of the reportable fields."""
    payload = {name: _canonical(getattr(record, name)) for name in REPORTABLE_FIELDS}
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def has_changed(record: FileRecord, previous_hash: Optional[str]) -> bool:
    """True when there is no prior hash or the content hash differs."""
    if not previous_hash:
        return True
    return compute_content_hash(record) != previous_hash


def previous_hash_for(entry: Optional[StoredIndexEntry]) -> Optional[str]:
    """Stored hash to compare against.

    A row flagged as missing from source has no usable hash, so a file that
    reappears is always rewritten and its flag cleared.
    """
    if entry is None or entry.missing_in_source:
        return None
    return entry.content_hash


def filter_changed(
    records: Sequence[FileRecord],
    stored: Mapping[str, StoredIndexEntry],
) -> tuple[list[FileRecord], list[FileRecord]]:
    """Split records into (changed, unchanged) against the stored index."""
    changed: list[FileRecord] = []
    unchanged: list[FileRecord] = []
    for record in records:
        if has_changed(record, previous_hash_for(stored.get(record.identity_key))):
            changed.append(record)
        else:
            unchanged.append(record)
    return changed, unchanged


def find_orphans(stored_keys: Iterable[str], seen_keys: Iterable[str]) -> list[str]:
    """Persisted keys that the latest full extraction did not produce."""
    seen = set(seen_keys)
    return sorted(key for key in set(stored_keys) if key not in seen)
