"""identdb - normalized storage of identifier names and program entities."""

from identdb.core.errors import ConfigError, ErrorCode, IdentDbError, StoreError
from identdb.store import (
    EntityShape,
    EntityStore,
    Modifier,
    ProgramEntity,
    RawProgramEntity,
    RawTypeName,
    Species,
    TypeGroup,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "EntityShape",
    "EntityStore",
    "ErrorCode",
    "IdentDbError",
    "Modifier",
    "ProgramEntity",
    "RawProgramEntity",
    "RawTypeName",
    "Species",
    "StoreError",
    "TypeGroup",
]
