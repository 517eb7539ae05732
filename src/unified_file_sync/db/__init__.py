"""Database clients for the unified file sync."""

from .postgres import (
    PostgresClient,
    PostgresRunLogStore,
    PostgresSourceReader,
    PostgresTargetStore,
)

__all__ = [
    "PostgresClient",
    "PostgresRunLogStore",
    "PostgresSourceReader",
    "PostgresTargetStore",
]
