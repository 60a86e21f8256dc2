"""Core module exports."""

from identdb.core.errors import (
    ConfigError,
    ErrorCode,
    IdentDbError,
    InternalError,
    StoreError,
)
from identdb.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_level,
    set_run_id,
)

__all__ = [
    # Errors
    "IdentDbError",
    "ConfigError",
    "ErrorCode",
    "InternalError",
    "StoreError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_level",
    "set_run_id",
]
