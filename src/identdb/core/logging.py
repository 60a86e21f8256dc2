"""structlog setup for identdb.

Events go through stdlib handlers, one per configured output, each with
its own level and renderer (JSON or console). Every event of an
ingestion run carries that run's ``run_id``.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

from identdb.core.progress import ConsoleMuteFilter

if TYPE_CHECKING:
    from identdb.config.models import LoggingConfig, LogOutputConfig

_run_id: ContextVar[str | None] = ContextVar("run_id", default=None)

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_STREAMS = {"stderr": lambda: sys.stderr, "stdout": lambda: sys.stdout}


def get_run_id() -> str | None:
    return _run_id.get()


def set_run_id(run_id: str | None = None) -> str:
    """Bind ``run_id`` (or a fresh 12-hex id) to the current context."""
    rid = run_id or uuid4().hex[:12]
    _run_id.set(rid)
    return rid


def clear_run_id() -> None:
    _run_id.set(None)


def level_for(name: str, default: int = logging.INFO) -> int:
    """Stdlib level for a case-insensitive level name."""
    return _LEVELS.get(name.upper(), default)


def _bind_run_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    rid = _run_id.get()
    if rid is not None:
        event_dict["run_id"] = rid
    return event_dict


_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
    _bind_run_id,  # type: ignore[list-item]
]


def configure_logging(*, config: LoggingConfig | None = None) -> None:
    """Install one root handler per output of ``config`` (defaults: console on stderr)."""
    from identdb.config.models import LoggingConfig

    config = config or LoggingConfig()
    root_level = level_for(config.level)

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Not cached so set_level and reconfiguration take effect
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(root_level)
    # SQLAlchemy logs every statement at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    for output in config.outputs:
        root.addHandler(_handler_for(output, level_for(output.level or config.level, root_level)))


def _handler_for(output: LogOutputConfig, level: int) -> logging.Handler:
    handler: logging.Handler
    stream = _STREAMS.get(output.destination)
    if stream is not None:
        handler = logging.StreamHandler(stream())
        handler.addFilter(ConsoleMuteFilter())
        colors = output.format == "console" and stream().isatty()
    else:
        path = Path(output.destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a")
        colors = False

    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=colors, pad_event_to=0, pad_level=False)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_PRE_CHAIN)
    )
    handler.setLevel(level)
    return handler


def set_level(level: str) -> None:
    """Change the level of the root logger, its handlers and structlog's filter."""
    numeric = level_for(level)
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(numeric))
    root = logging.getLogger()
    root.setLevel(numeric)
    for handler in root.handlers:
        handler.setLevel(numeric)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger=name)
    return logger  # type: ignore[no-any-return]
