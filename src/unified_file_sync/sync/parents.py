"""Primary parent selection for files linked to several host records."""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Sequence

import structlog

from .models import LinkRecord, ParentCandidate, ResolvedParent

logger = structlog.get_logger(__name__)

DEFAULT_EXCLUDED_PARENT_TYPES = frozenset({"User"})

_LATEST = datetime.max.replace(tzinfo=timezone.utc)


def _as_aware(value: Optional[datetime]) -> datetime:
    if value is None:
        return _LATEST
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _candidate_sort_key(candidate: ParentCandidate) -> tuple[datetime, str, str]:
    # First-linked wins; equal timestamps fall back to the lowest ids
    return (
        _as_aware(candidate.link_created_at),
        candidate.parent_id,
        candidate.link_id or "",
    )


def group_links_by_document(links: Iterable[LinkRecord]) -> dict[str, list[ParentCandidate]]:
    """Group link records into parent candidates keyed by document id."""
    grouped: dict[str, list[ParentCandidate]] = defaultdict(list)
    for link in links:
        if not link.linked_entity_id:
            continue
        grouped[link.content_document_id].append(ParentCandidate.from_link(link))
    return dict(grouped)


class ParentResolver:
    """Reduces the parent candidates of each file to at most one.

    Works on the full candidate set of a chunk in one call, so callers fetch
    candidates with a single bulk query per chunk.
    """

    def __init__(self, excluded_parent_types: Iterable[str] = DEFAULT_EXCLUDED_PARENT_TYPES) -> None:
        self._excluded_types = frozenset(excluded_parent_types)

    def select_primary_parent(self, candidates: Sequence[ParentCandidate]) -> ResolvedParent:
        usable = [
            candidate
            for candidate in candidates
            if candidate.parent_id and candidate.parent_type not in self._excluded_types
        ]
        if not usable:
            return ResolvedParent.orphan()

        chosen = min(usable, key=_candidate_sort_key)
        return ResolvedParent(
            parent_record_id=chosen.parent_id,
            parent_record_type=chosen.parent_type,
            parent_record_name=chosen.parent_name,
            parent_owner_id=chosen.parent_owner_id,
            valid=True,
        )

    def select_primary_parents(
        self,
        candidates_by_file: Mapping[str, Sequence[ParentCandidate]],
        file_ids: Optional[Iterable[str]] = None,
    ) -> dict[str, ResolvedParent]:
        """Pick the primary parent of every file.

        Args:
            candidates_by_file: Parent candidates grouped by file id
            file_ids: Files to resolve; files with no candidates resolve to
                an invalid parent. Defaults to the keys of candidates_by_file.

        Returns:
            Mapping of file id to its resolved parent
        """
        ids = list(file_ids) if file_ids is not None else list(candidates_by_file)
        resolved = {
            file_id: self.select_primary_parent(candidates_by_file.get(file_id, ()))
            for file_id in ids
        }

        orphan_count = sum(1 for parent in resolved.values() if not parent.valid)
        if orphan_count:
            logger.debug(
                "files_without_parent",
                file_count=len(resolved),
                orphan_count=orphan_count,
            )
        return resolved
