"""Terminal feedback for ingestion runs.

- status(): one styled line on stderr
- IngestProgress: live bar with stored/skipped counts on a TTY, debug
  logs everywhere else
- Console log handlers are muted while a bar owns the terminal; file
  handlers keep receiving every event

Usage::

    with IngestProgress(len(entities)) as tracker:
        for raw in entities:
            tracker.record(store.store(raw) is not None)
    status(f"Stored {count_noun(tracker.stored, 'entity', 'entities')}", style="success")
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from types import TracebackType

import structlog
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TaskID, TextColumn

log = structlog.get_logger(__name__)

# Runs smaller than this finish before a bar is worth drawing
_BAR_MIN_ENTITIES = 100

_console = Console(stderr=True)

_MARKS = {
    "success": "[green]✓[/green]",
    "warning": "[yellow]![/yellow]",
    "error": "[red]✗[/red]",
    "info": " ",
}

_muted = threading.Event()


def console_muted() -> bool:
    return _muted.is_set()


@contextmanager
def mute_console() -> Iterator[None]:
    """Hold back console log output until the block exits."""
    _muted.set()
    try:
        yield
    finally:
        _muted.clear()


class ConsoleMuteFilter(logging.Filter):
    """Attached to stderr/stdout handlers; drops records while muted."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: ARG002
        return not _muted.is_set()


def status(message: str, *, style: str = "info") -> None:
    """Print ``message`` to stderr behind a style mark."""
    _console.print(f"{_MARKS.get(style, ' ')} {message}", highlight=False)


def count_noun(count: int, singular: str, plural: str | None = None) -> str:
    """``count_noun(1, "entity", "entities")`` -> ``"1 entity"``."""
    noun = singular if count == 1 else (plural or singular + "s")
    return f"{count} {noun}"


def _stderr_is_tty() -> bool:
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


class IngestProgress:
    """Counts stored and skipped entities of one ingest run.

    The bar is drawn only on a TTY and for runs of more than
    ``_BAR_MIN_ENTITIES`` entities, unless ``force`` is set.
    """

    def __init__(self, total: int, *, label: str = "Ingesting", force: bool = False) -> None:
        self.total = total
        self.label = label
        self.stored = 0
        self.skipped = 0
        self.show_bar = force or (_stderr_is_tty() and total > _BAR_MIN_ENTITIES)
        self._stack = ExitStack()
        self._bar: Progress | None = None
        self._task: TaskID | None = None

    def __enter__(self) -> IngestProgress:
        if self.show_bar:
            self._stack.enter_context(mute_console())
            self._bar = self._stack.enter_context(
                Progress(
                    TextColumn("  {task.description}"),
                    BarColumn(bar_width=30, style="cyan", complete_style="cyan"),
                    MofNCompleteColumn(),
                    TextColumn("[yellow]{task.fields[skipped]} skipped"),
                    console=_console,
                    transient=True,
                )
            )
            self._task = self._bar.add_task(self.label, total=self.total, skipped=0)
        log.debug("ingest_started", total=self.total)
        return self

    def record(self, stored: bool) -> None:
        """Count one entity as stored or skipped."""
        if stored:
            self.stored += 1
        else:
            self.skipped += 1
        if self._bar is not None and self._task is not None:
            self._bar.update(self._task, advance=1, skipped=self.skipped)

    @property
    def complete(self) -> bool:
        """True when every entity was stored."""
        return self.skipped == 0 and self.stored == self.total

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._stack.close()
        self._bar = None
        log.debug("ingest_finished", stored=self.stored, skipped=self.skipped)
