"""pytest fixtures for Unified File Sync tests."""

import os

# Set environment variables BEFORE any imports
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SKIP_DB_POOL", "1")

import pytest

from unified_file_sync.sync import (
    InMemoryRunLogStore,
    InMemorySourceReader,
    InMemoryTargetStore,
    SyncConfig,
)

from tests.factories import make_attachment, make_link, make_version


@pytest.fixture
def sync_config():
    """Configuration snapshot with two-record chunks."""
    return SyncConfig(batch_size_by_stage={"content_version": 2, "content_document_link": 2, "attachment": 2})


@pytest.fixture
def source_reader():
    """Source data: two documents (one a note), their links, two attachments."""
    return InMemorySourceReader(
        versions=[
            make_version("068-1", "069-1"),
            make_version("068-2", "069-2", title="Call notes", file_type="SNOTE", extension=""),
        ],
        links=[
            make_link("06A-1", "069-1", "001-A"),
            make_link("06A-2", "069-2", "001-B", parent_type="Contact"),
        ],
        attachments=[
            make_attachment("00P-1"),
            make_attachment("00P-2", name="scan.pdf"),
        ],
    )


@pytest.fixture
def target_store():
    """Empty in-memory unified table."""
    return InMemoryTargetStore()


@pytest.fixture
def log_store():
    """Empty in-memory run log table."""
    return InMemoryRunLogStore()
