"""Mapping of host source records into canonical file records.

Each source record variant has one mapping function; dispatch happens on the
record's source type tag. Mapping is pure: missing optional source fields
propagate as None.
"""

import mimetypes
from typing import Callable, Optional, Sequence

from unified_file_sync.core.errors import MappingError

from .models import (
    NOTE_EXTENSION,
    NOTE_MIME_TYPE,
    AttachmentRecord,
    FileRecord,
    SourceRecord,
    SourceType,
    VersionRecord,
)


def extension_from_name(name: Optional[str]) -> Optional[str]:
    """Derive a lower-case extension (without the dot) from a file name.

    Returns None when the name has no usable suffix.
    """
    if not name:
        return None
    base = name.rstrip().rsplit("/", 1)[-1].rsplit("\\", 1)[-1]
    if "." not in base:
        return None
    suffix = base.rsplit(".", 1)[1].strip().lower()
    return suffix or None


def guess_mime_type(extension: Optional[str]) -> Optional[str]:
    if not extension:
        return None
    mime_type, _ = mimetypes.guess_type(f"file.{extension}")
    return mime_type


def _require_id(value: Optional[str], record_id: Optional[str], field_name: str) -> str:
    if not value or not str(value).strip():
        raise MappingError(record_id, f"missing {field_name}")
    return str(value).strip()


def _map_version(record: VersionRecord) -> FileRecord:
    _require_id(record.id, record.id, "id")
    document_id = _require_id(record.content_document_id, record.id, "content_document_id")

    extension = (record.file_extension or "").strip().lower() or extension_from_name(
        record.path_on_client
    )
    return FileRecord(
        source_type=SourceType.CONTENT_VERSION,
        source_record_id=document_id,
        title=record.title,
        extension=extension,
        mime_type=guess_mime_type(extension),
        size_bytes=record.content_size,
        created_at=record.created_at,
        modified_at=record.last_modified_at,
        created_by_id=record.created_by_id,
        modified_by_id=record.last_modified_by_id,
    )


def _map_note(record: VersionRecord) -> FileRecord:
    _require_id(record.id, record.id, "id")
    document_id = _require_id(record.content_document_id, record.id, "content_document_id")

    return FileRecord(
        source_type=SourceType.NOTE,
        source_record_id=document_id,
        title=record.title,
        extension=NOTE_EXTENSION,
        mime_type=NOTE_MIME_TYPE,
        size_bytes=record.content_size,
        created_at=record.created_at,
        modified_at=record.last_modified_at,
        created_by_id=record.created_by_id,
        modified_by_id=record.last_modified_by_id,
    )


def _map_attachment(record: AttachmentRecord) -> FileRecord:
    attachment_id = _require_id(record.id, record.id, "id")

    return FileRecord(
        source_type=SourceType.ATTACHMENT,
        source_record_id=attachment_id,
        title=record.name,
        extension=extension_from_name(record.name),
        mime_type=record.content_type,
        size_bytes=record.body_length,
        created_at=record.created_at,
        modified_at=record.last_modified_at,
        created_by_id=record.created_by_id,
        modified_by_id=record.last_modified_by_id,
    )


_MAPPERS: dict[SourceType, Callable[..., FileRecord]] = {
    SourceType.CONTENT_VERSION: _map_version,
    SourceType.NOTE: _map_note,
    SourceType.ATTACHMENT: _map_attachment,
}


def map_record(record: SourceRecord) -> FileRecord:
    """Map one source record into a FileRecord.

    Raises:
        MappingError: If the record is malformed or of an unknown shape
    """
    source_type = getattr(record, "source_type", None)
    mapper = _MAPPERS.get(source_type) if source_type is not None else None
    if mapper is None:
        raise MappingError(
            getattr(record, "id", None),
            f"unsupported record type {type(record).__name__}",
        )
    return mapper(record)


def map_records(records: Sequence[SourceRecord]) -> list[FileRecord]:
    """Map a batch of source records.

    Returns one FileRecord per input, in input order; callers zip resolved
    parent and owner data back by index.
    """
    return [map_record(record) for record in records]
