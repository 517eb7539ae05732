"""Tests for configuration loading."""

from __future__ import annotations

import os

import pytest

from unified_file_sync.config import current_sync_config, load_settings
from unified_file_sync.core.errors import ConfigurationError
from unified_file_sync.sync import SyncConfig


def _clear_sync_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("UNIFIED_SYNC_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.delenv("DATABASE_URL", raising=False)


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_sync_env(monkeypatch)

    settings = load_settings()

    assert settings.full_sync_enabled is True
    assert settings.delta_sync_enabled is True
    assert settings.delta_lookback_minutes == 90
    assert settings.max_upserts_per_txn == 200
    assert settings.retry_limit == 2
    assert settings.ownership_policy == "LATEST_VERSION_MODIFIER"
    assert settings.batch_size_by_stage == {
        "content_version": 200,
        "content_document_link": 200,
        "attachment": 200,
    }
    assert settings.disabled_stages == frozenset()
    assert settings.max_active_stages == 5
    assert settings.scheduler_enabled is False
    assert settings.delta_schedule == "0 * * * *"
    assert settings.full_schedule == "0 2 * * *"
    assert settings.database_url is None


def test_load_settings_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_sync_env(monkeypatch)
    monkeypatch.setenv("UNIFIED_SYNC_DELTA_ENABLED", "false")
    monkeypatch.setenv("UNIFIED_SYNC_DELTA_LOOKBACK_MINUTES", "30")
    monkeypatch.setenv("UNIFIED_SYNC_BATCH_SIZES", '{"attachment": 50}')
    monkeypatch.setenv("UNIFIED_SYNC_DISABLED_STAGES", "content_document_link, attachment")
    monkeypatch.setenv("UNIFIED_SYNC_OWNERSHIP_POLICY", "PARENT_OWNER")
    monkeypatch.setenv("UNIFIED_SYNC_CHUNK_TIMEOUT_SECONDS", "120")

    settings = load_settings()

    assert settings.delta_sync_enabled is False
    assert settings.delta_lookback_minutes == 30
    assert settings.batch_size_by_stage["attachment"] == 50
    assert settings.batch_size_by_stage["content_version"] == 200
    assert settings.disabled_stages == frozenset({"content_document_link", "attachment"})
    assert settings.ownership_policy == "PARENT_OWNER"
    assert settings.chunk_timeout_seconds == 120.0


def test_to_sync_config(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_sync_env(monkeypatch)
    monkeypatch.setenv("UNIFIED_SYNC_MAX_UPSERTS_PER_TXN", "25")
    monkeypatch.setenv("UNIFIED_SYNC_RETRY_LIMIT", "0")

    config = load_settings().to_sync_config()

    assert isinstance(config, SyncConfig)
    assert config.max_upserts_per_txn == 25
    assert config.retry_limit == 0
    assert config.batch_size_for("attachment") == 200
    assert config.successor_of("content_version") == "content_document_link"


@pytest.mark.parametrize(
    "name,value,message",
    [
        ("UNIFIED_SYNC_DELTA_LOOKBACK_MINUTES", "soon", "valid integer"),
        ("UNIFIED_SYNC_MAX_UPSERTS_PER_TXN", "0", ">= 1"),
        ("UNIFIED_SYNC_RETRY_LIMIT", "-1", ">= 0"),
        ("UNIFIED_SYNC_FULL_ENABLED", "maybe", "boolean"),
        ("UNIFIED_SYNC_BATCH_SIZES", "{not json", "valid JSON"),
        ("UNIFIED_SYNC_BATCH_SIZES", '{"folders": 10}', "unknown stage"),
        ("UNIFIED_SYNC_BATCH_SIZES", '{"attachment": 0}', ">= 1"),
        ("UNIFIED_SYNC_DISABLED_STAGES", "folders", "unknown stages"),
    ],
)
def test_invalid_values_raise(monkeypatch: pytest.MonkeyPatch, name: str, value: str, message: str) -> None:
    _clear_sync_env(monkeypatch)
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError) as excinfo:
        load_settings()

    assert message in str(excinfo.value)


def test_database_url_required_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_sync_env(monkeypatch)
    monkeypatch.setenv("APP_ENV", "production")

    with pytest.raises(ValueError) as excinfo:
        load_settings()

    assert "DATABASE_URL" in str(excinfo.value)


def test_unknown_policy_is_kept_for_run_time_validation(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_sync_env(monkeypatch)
    monkeypatch.setenv("UNIFIED_SYNC_OWNERSHIP_POLICY", "FOO")

    assert load_settings().ownership_policy == "FOO"


def test_current_sync_config_maps_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_sync_env(monkeypatch)
    monkeypatch.setenv("UNIFIED_SYNC_RETRY_LIMIT", "many")

    with pytest.raises(ConfigurationError):
        current_sync_config()
