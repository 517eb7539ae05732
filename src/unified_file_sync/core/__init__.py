"""Core utilities for the unified file sync service."""

from .errors import (
    AppError,
    ChainError,
    ConfigurationError,
    DatabaseError,
    ErrorCode,
    InvalidInputError,
    MappingError,
    ResolutionError,
    UpsertError,
)

__all__ = [
    "AppError",
    "ChainError",
    "ConfigurationError",
    "DatabaseError",
    "ErrorCode",
    "InvalidInputError",
    "MappingError",
    "ResolutionError",
    "UpsertError",
]
