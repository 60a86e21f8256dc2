"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (IDENTDB__SECTION__KEY)
3. Repo YAML (.identdb/config.yaml)
4. Global YAML (~/.config/identdb/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    IDENTDB__<SECTION>__<KEY>=<VALUE>

Examples:
    IDENTDB__LOGGING__LEVEL=DEBUG
    IDENTDB__STORE__WRITE_POLICY=best_effort
    IDENTDB__TOKENIZER__RECURSIVE_SPLIT=true
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
WritePolicy = Literal["atomic", "best_effort"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        IDENTDB__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every interned value.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class DatabaseConfig(BaseModel):
    """Database connection configuration.

    Env vars:
        IDENTDB__DATABASE__BUSY_TIMEOUT_MS: SQLite busy timeout
        IDENTDB__DATABASE__PATH: Default store location for the CLI
    """

    busy_timeout_ms: int = Field(
        default=30000,
        description="SQLite busy timeout (ms). How long to wait for locks.",
    )
    path: str | None = Field(
        default=None,
        description="Default entity store file used when the CLI is given none.",
    )

    @field_validator("busy_timeout_ms")
    @classmethod
    def validate_busy_timeout(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"busy_timeout_ms must be >= 0, got {v}")
        return v


class StoreConfig(BaseModel):
    """Entity writer behaviour.

    Env vars:
        IDENTDB__STORE__WRITE_POLICY: atomic or best_effort
        IDENTDB__STORE__DEDUPLICATE_ENTITIES: reuse rows with identical digests
    """

    write_policy: WritePolicy = Field(
        default="atomic",
        description="atomic: one transaction per stored entity, any unresolved key "
        "fails the whole call. best_effort: commit per step, log failures and continue.",
    )
    deduplicate_entities: bool = Field(
        default=False,
        description="When true, an entity whose (project, container digest, entity digest) "
        "is already stored is not written again.",
    )


class TokenizerConfig(BaseModel):
    """Identifier name tokenizer options.

    Env vars:
        IDENTDB__TOKENIZER__RECURSIVE_SPLIT: also split digits from letters
        IDENTDB__TOKENIZER__MODAL_EXPANSION: expand contractions (cant -> can not)
    """

    recursive_split: bool = False
    modal_expansion: bool = False


class SamplerConfig(BaseModel):
    """Random name sampler configuration.

    Env vars:
        IDENTDB__SAMPLER__SEED: fixed seed for reproducible name sets
    """

    seed: int | None = Field(
        default=None,
        description="Seed for the name sampler. None draws from system entropy.",
    )


class IdentDbConfig(BaseModel):
    """Root configuration for identdb."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    tokenizer: TokenizerConfig = Field(default_factory=TokenizerConfig)
    sampler: SamplerConfig = Field(default_factory=SamplerConfig)
