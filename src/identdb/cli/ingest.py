"""idb init / idb ingest commands - create a store and load raw entities."""

import json
import sys
from pathlib import Path
from typing import Any

import click

from identdb.cli.utils import open_store, store_path
from identdb.core.errors import ErrorCode, StoreError
from identdb.core.progress import IngestProgress, count_noun, status
from identdb.store.ops import EntityStore
from identdb.store.raw import RawProgramEntity


@click.command()
@click.pass_context
def init_command(ctx: click.Context) -> None:
    """Create an empty entity store (no-op if it already exists)."""
    path = store_path(ctx)
    existed = path.exists()
    with open_store(ctx, writable=True):
        pass
    if existed:
        status(f"Already initialized: {path}", style="info")
    else:
        status(f"Created entity store: {path}", style="success")


def _parse_lines(lines: list[str], source: str) -> list[RawProgramEntity]:
    """Parse JSON-lines raw entities. Blank lines are skipped."""
    entities = []
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            data: Any = json.loads(line)
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            entities.append(RawProgramEntity.from_dict(data))
        except (ValueError, KeyError) as e:
            raise click.ClickException(f"{source}:{number}: invalid entity: {e}") from e
    return entities


@click.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False, allow_dash=True))
@click.option("--project", "project_name", required=True, help="Project name")
@click.option("--version", "project_version", required=True, help="Project version")
@click.pass_context
def ingest_command(
    ctx: click.Context, source: str, project_name: str, project_version: str
) -> None:
    """Store raw entities read from SOURCE (JSON lines, '-' for stdin).

    Each line is one object with file_name, package_name, identifier_name,
    species and type_name, plus optional container_uid, entity_uid,
    method_signature, modifiers, super_classes, super_types, is_array,
    is_loop_control_variable and span.
    """
    if source == "-":
        lines = sys.stdin.read().splitlines()
    else:
        lines = Path(source).read_text().splitlines()
    entities = _parse_lines(lines, source)

    with open_store(ctx, writable=True) as store, IngestProgress(len(entities)) as tracker:
        store.set_project(project_name, project_version)
        for raw in entities:
            tracker.record(_store_one(store, raw) is not None)

    summary = f"Stored {count_noun(tracker.stored, 'entity', 'entities')}"
    if tracker.skipped:
        summary += f", skipped {tracker.skipped}"
    status(
        f"{summary} for {project_name} {project_version}",
        style="success" if tracker.complete else "warning",
    )


def _store_one(store: EntityStore, raw: RawProgramEntity) -> int | None:
    """Store ``raw``; an entity the atomic policy rejects counts as skipped."""
    try:
        return store.store(raw)
    except StoreError as e:
        if e.code != ErrorCode.STORE_WRITE_FAILED:
            raise
        return None
