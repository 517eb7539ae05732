"""Owner resolution for unified records.

Three policies are supported:
- LATEST_VERSION_MODIFIER: the actor who last modified the latest version
- PARENT_OWNER: the owner of the resolved parent, falling back to the
  latest version modifier when there is no usable parent
- ATTACHMENT_OWNER: the creator of the original attachment, falling back to
  the latest version modifier for other source types
"""

from typing import Optional, Union

from unified_file_sync.core.errors import ConfigurationError, ResolutionError

from .models import FileRecord, OwnershipPolicy, ResolvedParent, SourceMeta, SourceType


def parse_ownership_policy(value: Union[str, OwnershipPolicy, None]) -> OwnershipPolicy:
    """Validate a configured ownership policy.

    Raises:
        ConfigurationError: If the value names no known policy
    """
    if isinstance(value, OwnershipPolicy):
        return value
    normalized = (value or "").strip().upper()
    try:
        return OwnershipPolicy(normalized)
    except ValueError as exc:
        allowed = ", ".join(policy.value for policy in OwnershipPolicy)
        raise ConfigurationError(
            "ownership_policy",
            f"unknown policy {value!r}; expected one of {allowed}",
        ) from exc


def _latest_version_modifier(record: FileRecord, meta: SourceMeta) -> Optional[str]:
    return meta.latest_version_modifier_id or record.modified_by_id


def resolve_owner(
    record: FileRecord,
    parent: ResolvedParent,
    meta: SourceMeta,
    policy: OwnershipPolicy,
) -> str:
    """Derive the owner id of a file under the given policy.

    Raises:
        ResolutionError: If neither the policy nor its fallback produces a value
    """
    owner: Optional[str]
    if policy == OwnershipPolicy.PARENT_OWNER:
        owner = parent.parent_owner_id if parent.valid else None
    elif policy == OwnershipPolicy.ATTACHMENT_OWNER:
        owner = meta.attachment_creator_id if record.source_type == SourceType.ATTACHMENT else None
    else:
        owner = None

    if owner is None:
        owner = _latest_version_modifier(record, meta)

    if owner is None:
        raise ResolutionError(record.source_record_id, f"no owner under {policy.value}")
    return owner


def source_meta_for(record: object) -> SourceMeta:
    """Extract ownership-relevant actor ids from a source record."""
    if getattr(record, "source_type", None) == SourceType.ATTACHMENT:
        return SourceMeta(
            latest_version_modifier_id=getattr(record, "last_modified_by_id", None),
            attachment_creator_id=getattr(record, "created_by_id", None),
        )
    return SourceMeta(latest_version_modifier_id=getattr(record, "last_modified_by_id", None))
