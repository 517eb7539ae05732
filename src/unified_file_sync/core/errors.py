"""Error handling with RFC 7807 Problem Details support."""

from enum import Enum
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse


class ErrorCode(str, Enum):
    """Standardized error codes for the sync pipeline."""

    INVALID_INPUT = "invalid_input"
    CONFIGURATION_ERROR = "configuration_error"
    MAPPING_FAILED = "mapping_failed"
    RESOLUTION_FAILED = "resolution_failed"
    UPSERT_FAILED = "upsert_failed"
    CHAIN_FAILED = "chain_failed"
    DATABASE_ERROR = "database_error"
    INTERNAL_ERROR = "internal_error"


class AppError(Exception):
    """
    Structured application error following RFC 7807 Problem Details.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        status: HTTP status code
        details: Additional error context
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status: int = 500,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status = status
        self.details = details or {}
        super().__init__(message)

    def to_problem_detail(self, instance: str) -> dict[str, Any]:
        """
        Convert error to RFC 7807 Problem Details format.

        Args:
            instance: The request path where the error occurred

        Returns:
            Dictionary in RFC 7807 format
        """
        problem = {
            "type": f"https://api.example.com/errors/{self.code.value.replace('_', '-')}",
            "title": self.code.value.replace("_", " ").title(),
            "status": self.status,
            "detail": self.message,
            "instance": instance,
        }
        if self.details:
            problem["errors"] = self.details
        return problem


class InvalidInputError(AppError):
    """Error for malformed input to a pure helper (e.g. an empty record id)."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_INPUT,
            message=f"Invalid {field}: {reason}",
            status=400,
            details={"field": field},
        )


class ConfigurationError(AppError):
    """Invalid sync configuration. Raised before any extraction begins."""

    def __init__(self, option: str, reason: str) -> None:
        super().__init__(
            code=ErrorCode.CONFIGURATION_ERROR,
            message=f"Invalid configuration for '{option}': {reason}",
            status=422,
            details={"option": option},
        )


class MappingError(AppError):
    """A source record could not be mapped into a file record."""

    def __init__(self, record_id: Optional[str], reason: str) -> None:
        super().__init__(
            code=ErrorCode.MAPPING_FAILED,
            message=f"Failed to map record {record_id or '<unknown>'}: {reason}",
            status=500,
            details={"record_id": record_id},
        )


class ResolutionError(AppError):
    """Parent or owner could not be resolved, even after falling back."""

    def __init__(self, record_id: str, reason: str) -> None:
        super().__init__(
            code=ErrorCode.RESOLUTION_FAILED,
            message=f"Resolution failed for {record_id}: {reason}",
            status=500,
            details={"record_id": record_id},
        )


class UpsertError(AppError):
    """The target store rejected an individual record."""

    def __init__(self, identity_key: str, reason: str, retryable: bool = False) -> None:
        self.identity_key = identity_key
        self.retryable = retryable
        super().__init__(
            code=ErrorCode.UPSERT_FAILED,
            message=f"Upsert failed: {reason}",
            status=500,
            details={"identity_key": identity_key, "retryable": retryable},
        )


class ChainError(AppError):
    """The next stage of a pipeline could not be launched."""

    def __init__(self, stage: str, reason: str) -> None:
        super().__init__(
            code=ErrorCode.CHAIN_FAILED,
            message=f"Could not launch stage '{stage}': {reason}",
            status=503,
            details={"stage": stage},
        )


class DatabaseError(AppError):
    """Database operation error."""

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(
            code=ErrorCode.DATABASE_ERROR,
            message=f"Database error during {operation}: {reason}",
            status=500,
        )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """
    FastAPI exception handler for AppError.

    Converts AppError to RFC 7807 Problem Details JSON response.

    Args:
        request: The FastAPI request object
        exc: The AppError exception

    Returns:
        JSONResponse with Problem Details format
    """
    return JSONResponse(
        status_code=exc.status,
        content=exc.to_problem_detail(str(request.url.path)),
    )
