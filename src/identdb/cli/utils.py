"""CLI utilities."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click

from identdb.config.models import IdentDbConfig
from identdb.core.errors import IdentDbError
from identdb.store.ops import EntityStore


def store_path(ctx: click.Context) -> Path:
    """Entity store file selected with --db or database.path.

    Raises:
        click.UsageError: If neither is set
    """
    path: Path | None = ctx.obj.get("db_path")
    if path is None:
        raise click.UsageError(
            "No entity store given. Pass --db PATH or set database.path "
            "(IDENTDB__DATABASE__PATH)."
        )
    return path


@contextmanager
def open_store(ctx: click.Context, *, writable: bool = False) -> Iterator[EntityStore]:
    """Open the selected store, turning store errors into CLI errors."""
    config: IdentDbConfig = ctx.obj["config"]
    path = store_path(ctx)
    try:
        if writable:
            store = EntityStore.open_with_creation(path, config=config)
        else:
            store = EntityStore.open(path, config=config)
    except IdentDbError as e:
        raise click.ClickException(str(e)) from e

    try:
        yield store
    except IdentDbError as e:
        raise click.ClickException(str(e)) from e
    finally:
        store.shutdown()
