"""Configuration management for the unified file sync service."""

import json
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
import structlog

from .core.errors import ConfigurationError
from .sync.models import (
    ATTACHMENT_STAGE,
    CONTENT_DOCUMENT_LINK_STAGE,
    CONTENT_VERSION_STAGE,
    DEFAULT_BATCH_SIZE,
    DEFAULT_DELTA_LOOKBACK_MINUTES,
    DEFAULT_MAX_ACTIVE_STAGES,
    DEFAULT_MAX_UPSERTS_PER_TXN,
    DEFAULT_PIPELINES,
    DEFAULT_RETRY_LIMIT,
    OwnershipPolicy,
    SyncConfig,
)
from .sync.scheduler import DEFAULT_DELTA_SCHEDULE, DEFAULT_FULL_SCHEDULE

logger = structlog.get_logger(__name__)

KNOWN_STAGES = (CONTENT_VERSION_STAGE, CONTENT_DOCUMENT_LINK_STAGE, ATTACHMENT_STAGE)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """Service settings loaded from environment variables."""

    app_env: str
    database_url: Optional[str]
    backend_host: str
    backend_port: int
    full_sync_enabled: bool
    delta_sync_enabled: bool
    delta_lookback_minutes: int
    batch_size_by_stage: dict[str, int]
    max_upserts_per_txn: int
    retry_limit: int
    retry_backoff_seconds: float
    ownership_policy: str
    disabled_stages: frozenset[str]
    excluded_parent_types: frozenset[str]
    max_active_stages: int
    chunk_timeout_seconds: Optional[float]
    scheduler_enabled: bool
    delta_schedule: str
    full_schedule: str

    def to_sync_config(self) -> SyncConfig:
        """Build the read-only configuration snapshot for one run."""
        return SyncConfig(
            full_sync_enabled=self.full_sync_enabled,
            delta_sync_enabled=self.delta_sync_enabled,
            delta_lookback_minutes=self.delta_lookback_minutes,
            batch_size_by_stage=dict(self.batch_size_by_stage),
            max_upserts_per_txn=self.max_upserts_per_txn,
            retry_limit=self.retry_limit,
            ownership_policy=self.ownership_policy,
            pipelines=DEFAULT_PIPELINES,
            disabled_stages=self.disabled_stages,
            excluded_parent_types=self.excluded_parent_types,
            max_active_stages=self.max_active_stages,
            chunk_timeout_seconds=self.chunk_timeout_seconds,
        )


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false). Got {raw!r}.")


def _get_int(name: str, default: int, minimum: int) -> int:
    try:
        value = int(os.getenv(name, str(default)))
    except ValueError as exc:
        raise ValueError(f"{name} must be a valid integer. Check your .env file.") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}.")
    return value


def _get_csv(name: str, default: frozenset[str]) -> frozenset[str]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


def _parse_batch_sizes(raw: str) -> dict[str, int]:
    sizes = {stage: DEFAULT_BATCH_SIZE for stage in KNOWN_STAGES}
    if not raw:
        return sizes
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(
            "UNIFIED_SYNC_BATCH_SIZES must be valid JSON (e.g. "
            '{"content_version": 200, "attachment": 100}).'
        ) from exc
    if not isinstance(parsed, dict):
        raise ValueError("UNIFIED_SYNC_BATCH_SIZES must be a JSON object.")
    for key, value in parsed.items():
        if key not in KNOWN_STAGES:
            raise ValueError(
                f"UNIFIED_SYNC_BATCH_SIZES has unknown stage {key!r}; "
                f"expected one of {', '.join(KNOWN_STAGES)}."
            )
        try:
            size = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("UNIFIED_SYNC_BATCH_SIZES values must be integers.") from exc
        if size < 1:
            raise ValueError("UNIFIED_SYNC_BATCH_SIZES values must be >= 1.")
        sizes[key] = size
    return sizes


def load_settings() -> Settings:
    """
    Load settings from environment variables.

    The ownership policy is kept as given; an unknown value fails the run at
    start rather than the service at boot.

    Returns:
        Settings instance with all configuration values

    Raises:
        ValueError: If an environment variable holds an invalid value
    """
    load_dotenv()

    app_env = os.getenv("APP_ENV", "development").strip().lower()

    backend_port = _get_int("BACKEND_PORT", 8000, minimum=1)
    delta_lookback_minutes = _get_int(
        "UNIFIED_SYNC_DELTA_LOOKBACK_MINUTES", DEFAULT_DELTA_LOOKBACK_MINUTES, minimum=1
    )
    max_upserts_per_txn = _get_int(
        "UNIFIED_SYNC_MAX_UPSERTS_PER_TXN", DEFAULT_MAX_UPSERTS_PER_TXN, minimum=1
    )
    retry_limit = _get_int("UNIFIED_SYNC_RETRY_LIMIT", DEFAULT_RETRY_LIMIT, minimum=0)
    max_active_stages = _get_int(
        "UNIFIED_SYNC_MAX_ACTIVE_STAGES", DEFAULT_MAX_ACTIVE_STAGES, minimum=1
    )

    try:
        retry_backoff_seconds = float(os.getenv("UNIFIED_SYNC_RETRY_BACKOFF_SECONDS", "0.5"))
    except ValueError:
        retry_backoff_seconds = 0.5
    if retry_backoff_seconds < 0:
        retry_backoff_seconds = 0.0

    chunk_timeout_seconds: Optional[float] = None
    raw_timeout = os.getenv("UNIFIED_SYNC_CHUNK_TIMEOUT_SECONDS", "").strip()
    if raw_timeout:
        try:
            chunk_timeout_seconds = float(raw_timeout)
        except ValueError as exc:
            raise ValueError("UNIFIED_SYNC_CHUNK_TIMEOUT_SECONDS must be a number.") from exc
        if chunk_timeout_seconds <= 0:
            raise ValueError("UNIFIED_SYNC_CHUNK_TIMEOUT_SECONDS must be > 0.")

    disabled_stages = _get_csv("UNIFIED_SYNC_DISABLED_STAGES", frozenset())
    unknown_stages = disabled_stages - set(KNOWN_STAGES)
    if unknown_stages:
        raise ValueError(
            "UNIFIED_SYNC_DISABLED_STAGES has unknown stages: "
            f"{', '.join(sorted(unknown_stages))}."
        )

    ownership_policy = os.getenv(
        "UNIFIED_SYNC_OWNERSHIP_POLICY", OwnershipPolicy.LATEST_VERSION_MODIFIER.value
    ).strip()
    if ownership_policy.upper() not in {policy.value for policy in OwnershipPolicy}:
        logger.warning("ownership_policy_unrecognized", value=ownership_policy)

    database_url = os.getenv("DATABASE_URL") or None
    if database_url is None and app_env not in {"development", "dev", "test", "local"}:
        raise ValueError(
            "Missing required environment variable: DATABASE_URL. "
            "Copy .env.example to .env and fill values."
        )

    return Settings(
        app_env=app_env,
        database_url=database_url,
        backend_host=os.getenv("BACKEND_HOST", "0.0.0.0"),
        backend_port=backend_port,
        full_sync_enabled=_get_bool("UNIFIED_SYNC_FULL_ENABLED", True),
        delta_sync_enabled=_get_bool("UNIFIED_SYNC_DELTA_ENABLED", True),
        delta_lookback_minutes=delta_lookback_minutes,
        batch_size_by_stage=_parse_batch_sizes(os.getenv("UNIFIED_SYNC_BATCH_SIZES", "")),
        max_upserts_per_txn=max_upserts_per_txn,
        retry_limit=retry_limit,
        retry_backoff_seconds=retry_backoff_seconds,
        ownership_policy=ownership_policy,
        disabled_stages=disabled_stages,
        excluded_parent_types=_get_csv("UNIFIED_SYNC_EXCLUDED_PARENT_TYPES", frozenset({"User"})),
        max_active_stages=max_active_stages,
        chunk_timeout_seconds=chunk_timeout_seconds,
        scheduler_enabled=_get_bool("UNIFIED_SYNC_SCHEDULER_ENABLED", False),
        delta_schedule=os.getenv("UNIFIED_SYNC_DELTA_SCHEDULE", DEFAULT_DELTA_SCHEDULE),
        full_schedule=os.getenv("UNIFIED_SYNC_FULL_SCHEDULE", DEFAULT_FULL_SCHEDULE),
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once
    from environment variables.

    Returns:
        Cached Settings instance
    """
    return load_settings()


def current_sync_config() -> SyncConfig:
    """
    Read settings afresh and return the snapshot for the next run.

    Raises:
        ConfigurationError: If an environment variable holds an invalid value
    """
    try:
        return load_settings().to_sync_config()
    except ValueError as e:
        raise ConfigurationError("settings", str(e)) from e
