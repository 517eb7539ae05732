"""Identity keys for idempotent upserts into the unified table."""

import hashlib

from unified_file_sync.core.errors import InvalidInputError

from .models import SourceType


def build_identity_key(source_type: SourceType, source_record_id: str) -> str:
    """Derive the stable identity key of a file.

    The record id is namespaced with the source type tag before hashing, so
    equal raw ids of different source types never share a key.

    Args:
        source_type: Kind of file the record describes
        source_record_id: Id of the source record in the host platform

    Returns:
        64-character hex SHA-256 digest

    Raises:
        InvalidInputError: If the record id is empty
    """
    record_id = (source_record_id or "").strip()
    if not record_id:
        raise InvalidInputError("source_record_id", "must not be empty")

    namespaced = f"{SourceType(source_type).value}:{record_id}"
    return hashlib.sha256(namespaced.encode("utf-8")).hexdigest()
