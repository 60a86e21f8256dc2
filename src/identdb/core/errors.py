"""identdb error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Store
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Store (3xxx)
    STORE_NOT_FOUND = 3001
    STORE_OPEN_FAILED = 3002
    STORE_READ_ONLY = 3003
    STORE_WRITE_FAILED = 3004
    STORE_CLOSED = 3005
    PROJECT_NOT_SET = 3006

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class IdentDbError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'STORE_WRITE_FAILED')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(IdentDbError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class StoreError(IdentDbError):
    """Entity store errors (opening, writing, lifecycle)."""

    @classmethod
    def not_found(cls, path: str) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_NOT_FOUND,
            message=f"No entity store at {path}",
            details={"path": path},
        )

    @classmethod
    def open_failed(cls, path: str, reason: str) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_OPEN_FAILED,
            message=f"Could not open entity store at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def read_only(cls, path: str) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_READ_ONLY,
            message=f"Entity store at {path} was opened read-only",
            details={"path": path},
        )

    @classmethod
    def write_failed(cls, step: str, reason: str, **details: Any) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_WRITE_FAILED,
            message=f"Could not store entity at step '{step}': {reason}",
            details={"step": step, "reason": reason, **details},
        )

    @classmethod
    def closed(cls) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_CLOSED,
            message="Entity store has been shut down",
        )

    @classmethod
    def project_not_set(cls) -> "StoreError":
        return cls(
            code=ErrorCode.PROJECT_NOT_SET,
            message="Project name and version must be set before storing entities",
        )


class InternalError(IdentDbError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
