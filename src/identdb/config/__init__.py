"""Config module exports."""

from identdb.config.loader import load_config
from identdb.config.models import (
    DatabaseConfig,
    IdentDbConfig,
    LoggingConfig,
    SamplerConfig,
    StoreConfig,
    TokenizerConfig,
)

__all__ = [
    "load_config",
    "IdentDbConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "SamplerConfig",
    "StoreConfig",
    "TokenizerConfig",
]
