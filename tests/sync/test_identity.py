"""Tests for identity key derivation."""

import pytest

from unified_file_sync.core.errors import InvalidInputError
from unified_file_sync.sync import SourceType, build_identity_key


class TestBuildIdentityKey:
    """Tests for build_identity_key."""

    def test_is_deterministic(self):
        """Same inputs always produce the same key."""
        first = build_identity_key(SourceType.CONTENT_VERSION, "069-1")
        second = build_identity_key(SourceType.CONTENT_VERSION, "069-1")

        assert first == second
        assert len(first) == 64

    def test_source_type_namespaces_the_key(self):
        """Equal raw ids of different source types never collide."""
        version_key = build_identity_key(SourceType.CONTENT_VERSION, "X1")
        attachment_key = build_identity_key(SourceType.ATTACHMENT, "X1")
        note_key = build_identity_key(SourceType.NOTE, "X1")

        assert len({version_key, attachment_key, note_key}) == 3

    def test_surrounding_whitespace_is_ignored(self):
        assert build_identity_key(SourceType.ATTACHMENT, " 00P-1 ") == build_identity_key(
            SourceType.ATTACHMENT, "00P-1"
        )

    def test_accepts_raw_source_type_value(self):
        assert build_identity_key("Attachment", "00P-1") == build_identity_key(
            SourceType.ATTACHMENT, "00P-1"
        )

    @pytest.mark.parametrize("record_id", ["", "   ", None])
    def test_empty_id_is_rejected(self, record_id):
        """An empty record id raises InvalidInputError."""
        with pytest.raises(InvalidInputError) as exc_info:
            build_identity_key(SourceType.CONTENT_VERSION, record_id)

        assert exc_info.value.details["field"] == "source_record_id"
