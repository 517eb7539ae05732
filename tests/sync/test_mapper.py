"""Tests for source record mapping."""

import pytest

from unified_file_sync.core.errors import MappingError
from unified_file_sync.sync import SourceType, map_record, map_records
from unified_file_sync.sync.mapper import extension_from_name, guess_mime_type

from tests.factories import BASE_TIME, make_attachment, make_version


class TestExtensionHelpers:
    """Tests for extension and MIME helpers."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("report.PDF", "pdf"),
            ("archive.tar.gz", "gz"),
            ("C:\\docs\\budget.xlsx", "xlsx"),
            ("no_extension", None),
            ("trailing.", None),
            (None, None),
        ],
    )
    def test_extension_from_name(self, name, expected):
        assert extension_from_name(name) == expected

    def test_guess_mime_type(self):
        assert guess_mime_type("pdf") == "application/pdf"
        assert guess_mime_type(None) is None


class TestMapRecord:
    """Tests for map_record dispatch."""

    def test_maps_version_keyed_by_document(self):
        """Versions map to their document id so every version shares one row."""
        record = map_record(make_version("068-1", "069-1"))

        assert record.source_type == SourceType.CONTENT_VERSION
        assert record.source_record_id == "069-1"
        assert record.title == "Quarterly Report"
        assert record.extension == "pdf"
        assert record.mime_type == "application/pdf"
        assert record.size_bytes == 2048
        assert record.modified_at == BASE_TIME
        assert record.modified_by_id == "005-modifier"
        assert record.parent_record_id is None
        assert record.owner_id is None

    def test_version_extension_falls_back_to_path(self):
        version = make_version("068-1", "069-1", extension="", path_on_client="scan.PNG")

        assert map_record(version).extension == "png"

    def test_maps_note(self):
        """A version with file type SNOTE is a note."""
        record = map_record(make_version("068-2", "069-2", file_type="SNOTE", extension=""))

        assert record.source_type == SourceType.NOTE
        assert record.extension == "snote"
        assert record.mime_type == "text/plain"
        assert record.source_record_id == "069-2"

    def test_maps_attachment(self):
        record = map_record(make_attachment("00P-1", name="scan.pdf", content_type="application/pdf"))

        assert record.source_type == SourceType.ATTACHMENT
        assert record.source_record_id == "00P-1"
        assert record.title == "scan.pdf"
        assert record.extension == "pdf"
        assert record.mime_type == "application/pdf"
        assert record.size_bytes == 4096
        assert record.created_by_id == "005-attacher"

    def test_missing_optional_fields_propagate_as_none(self):
        record = map_record(make_attachment("00P-9", name=None, content_type=None, body_length=None))

        assert record.title is None
        assert record.extension is None
        assert record.mime_type is None
        assert record.size_bytes is None

    def test_version_without_document_id_is_rejected(self):
        with pytest.raises(MappingError) as exc_info:
            map_record(make_version("068-1", ""))

        assert exc_info.value.details["record_id"] == "068-1"

    def test_unknown_record_shape_is_rejected(self):
        with pytest.raises(MappingError):
            map_record(object())


class TestMapRecords:
    """Tests for batch mapping."""

    def test_preserves_input_order(self):
        records = map_records(
            [
                make_attachment("00P-2"),
                make_version("068-1", "069-1"),
                make_attachment("00P-1"),
            ]
        )

        assert [r.source_record_id for r in records] == ["00P-2", "069-1", "00P-1"]
