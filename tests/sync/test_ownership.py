"""Tests for ownership policies."""

import pytest

from unified_file_sync.core.errors import ConfigurationError, ResolutionError
from unified_file_sync.sync import (
    FileRecord,
    OwnershipPolicy,
    ResolvedParent,
    SourceMeta,
    SourceType,
    parse_ownership_policy,
    resolve_owner,
)
from unified_file_sync.sync.ownership import source_meta_for

from tests.factories import make_attachment, make_version


@pytest.fixture
def version_file():
    return FileRecord(
        source_type=SourceType.CONTENT_VERSION,
        source_record_id="069-1",
        modified_by_id="005-record-modifier",
    )


@pytest.fixture
def attachment_file():
    return FileRecord(source_type=SourceType.ATTACHMENT, source_record_id="00P-1")


@pytest.fixture
def parent():
    return ResolvedParent(parent_record_id="001-A", parent_owner_id="005-parent-owner", valid=True)


class TestParseOwnershipPolicy:
    """Tests for policy validation."""

    def test_known_policies(self):
        assert parse_ownership_policy("PARENT_OWNER") == OwnershipPolicy.PARENT_OWNER
        assert parse_ownership_policy(" attachment_owner ") == OwnershipPolicy.ATTACHMENT_OWNER
        assert parse_ownership_policy(OwnershipPolicy.LATEST_VERSION_MODIFIER) == (
            OwnershipPolicy.LATEST_VERSION_MODIFIER
        )

    @pytest.mark.parametrize("value", ["FOO", "", None])
    def test_unknown_policy_raises_configuration_error(self, value):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_ownership_policy(value)

        assert exc_info.value.details["option"] == "ownership_policy"
        assert exc_info.value.status == 422


class TestResolveOwner:
    """Tests for resolve_owner."""

    def test_latest_version_modifier(self, version_file, parent):
        meta = SourceMeta(latest_version_modifier_id="005-modifier")

        owner = resolve_owner(version_file, parent, meta, OwnershipPolicy.LATEST_VERSION_MODIFIER)

        assert owner == "005-modifier"

    def test_parent_owner(self, version_file, parent):
        meta = SourceMeta(latest_version_modifier_id="005-modifier")

        owner = resolve_owner(version_file, parent, meta, OwnershipPolicy.PARENT_OWNER)

        assert owner == "005-parent-owner"

    def test_parent_owner_falls_back_without_parent(self, version_file):
        meta = SourceMeta(latest_version_modifier_id="005-modifier")

        owner = resolve_owner(version_file, ResolvedParent.orphan(), meta, OwnershipPolicy.PARENT_OWNER)

        assert owner == "005-modifier"

    def test_attachment_owner(self, attachment_file, parent):
        meta = SourceMeta(latest_version_modifier_id="005-editor", attachment_creator_id="005-attacher")

        owner = resolve_owner(attachment_file, parent, meta, OwnershipPolicy.ATTACHMENT_OWNER)

        assert owner == "005-attacher"

    def test_attachment_owner_falls_back_for_versions(self, version_file, parent):
        meta = SourceMeta(latest_version_modifier_id="005-modifier")

        owner = resolve_owner(version_file, parent, meta, OwnershipPolicy.ATTACHMENT_OWNER)

        assert owner == "005-modifier"

    def test_falls_back_to_record_modifier(self, version_file, parent):
        owner = resolve_owner(version_file, parent, SourceMeta(), OwnershipPolicy.LATEST_VERSION_MODIFIER)

        assert owner == "005-record-modifier"

    def test_unresolvable_owner_raises(self, attachment_file):
        with pytest.raises(ResolutionError) as exc_info:
            resolve_owner(
                attachment_file, ResolvedParent.orphan(), SourceMeta(), OwnershipPolicy.PARENT_OWNER
            )

        assert exc_info.value.details["record_id"] == "00P-1"
        assert "PARENT_OWNER" in exc_info.value.message


class TestSourceMetaFor:
    """Tests for actor extraction."""

    def test_attachment_meta(self):
        meta = source_meta_for(make_attachment("00P-1"))

        assert meta.attachment_creator_id == "005-attacher"
        assert meta.latest_version_modifier_id == "005-editor"

    def test_version_meta(self):
        meta = source_meta_for(make_version("068-1", "069-1"))

        assert meta.latest_version_modifier_id == "005-modifier"
        assert meta.attachment_creator_id is None
