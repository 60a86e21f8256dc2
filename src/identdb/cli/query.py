"""Read-only query commands over an entity store."""

import json
import random
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from identdb.cli.utils import open_store
from identdb.store.entities import ProgramEntity
from identdb.store.models import Species

_SPECIES_CHOICE = click.Choice([s.description for s in Species], case_sensitive=False)


def entity_to_dict(entity: ProgramEntity) -> dict[str, Any]:
    """JSON-ready view of a reconstructed entity."""
    data: dict[str, Any] = {
        "key": entity.key,
        "project": entity.project_name,
        "version": entity.project_version,
        "name": entity.identifier_name,
        "package": entity.package_name,
        "species": entity.species.description,
        "shape": entity.shape.value,
        "type": entity.type_name,
        "tokens": entity.tokens,
        "modifiers": [m.description for m in entity.modifiers],
        "file": entity.file_name,
        "span": [entity.start_line, entity.start_column, entity.end_line, entity.end_column],
        "is_array": entity.is_array,
        "is_loop_control_variable": entity.is_loop_control_variable,
        "container_uid": entity.container_uid,
        "entity_uid": entity.entity_uid,
    }
    if entity.method_signature is not None:
        data["method_signature"] = entity.method_signature
    if entity.super_classes or entity.super_types:
        data["super_classes"] = entity.super_classes
        data["super_types"] = entity.super_types
    return data


def _echo_names(names: list[str], as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(names))
        return
    for name in names:
        click.echo(name)


def _echo_entities(entities: list[ProgramEntity], as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps([entity_to_dict(e) for e in entities]))
        return

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("Name")
    table.add_column("Species")
    table.add_column("Package")
    table.add_column("Type")
    table.add_column("Location")
    for entity in entities:
        table.add_row(
            entity.identifier_name or "",
            entity.species.description,
            entity.package_name or "",
            entity.type_name or "",
            f"{entity.file_name}:{entity.start_line}",
        )
    Console().print(table)


_json_option = click.option("--json", "as_json", is_flag=True, help="Output as JSON")


@click.command()
@_json_option
@click.pass_context
def projects_command(ctx: click.Context, as_json: bool) -> None:
    """List stored projects as 'name version'."""
    with open_store(ctx) as store:
        _echo_names(store.reader.project_list(), as_json)


@click.command()
@click.argument("name")
@_json_option
@click.pass_context
def tokens_command(ctx: click.Context, name: str, as_json: bool) -> None:
    """Show the stored tokens of identifier NAME."""
    with open_store(ctx) as store:
        tokens = store.reader.tokens_for(name)
    if tokens is None:
        raise click.ClickException(f"Unknown identifier name: {name}")
    if as_json:
        click.echo(json.dumps(tokens))
    else:
        click.echo(" ".join(tokens))


@click.command()
@click.argument("project")
@_json_option
@click.pass_context
def packages_command(ctx: click.Context, project: str, as_json: bool) -> None:
    """List package names of PROJECT ('name version')."""
    with open_store(ctx) as store:
        _echo_names(store.reader.package_names_for_project(project), as_json)


@click.command()
@click.argument("project")
@click.argument("package")
@_json_option
@click.pass_context
def classes_command(ctx: click.Context, project: str, package: str, as_json: bool) -> None:
    """List class names declared in PACKAGE of PROJECT."""
    with open_store(ctx) as store:
        _echo_names(store.reader.class_names_for_package(project, package), as_json)


@click.command()
@click.argument("species", type=_SPECIES_CHOICE)
@click.option("-n", "--count", default=0, show_default=True, type=click.IntRange(min=0),
              help="Names to sample (0 for all)")
@click.option("--min-length", default=0, show_default=True, type=click.IntRange(min=0),
              help="Minimum name length")
@click.option("--project", default=None, help="Restrict to one project ('name version')")
@click.option("--tokenised", is_flag=True, help="Render names as space-joined tokens")
@click.option("--seed", type=int, default=None, help="Random seed for repeatable samples")
@_json_option
@click.pass_context
def names_command(
    ctx: click.Context,
    species: str,
    count: int,
    min_length: int,
    project: str | None,
    tokenised: bool,
    seed: int | None,
    as_json: bool,
) -> None:
    """Sample distinct names of SPECIES (e.g. 'method', 'local variable')."""
    target = Species.for_description(species.lower())
    with open_store(ctx) as store:
        reader = store.reader
        if seed is not None:
            reader.rng = random.Random(seed)
        if tokenised:
            names = reader.tokenised_name_set_for(target, count, min_length, project)
        else:
            names = reader.name_set_for(target, count, min_length, project)
    _echo_names(names, as_json)


@click.command()
@click.argument("name")
@_json_option
@click.pass_context
def subclasses_command(ctx: click.Context, name: str, as_json: bool) -> None:
    """List entities extending a class called NAME (matched by simple name)."""
    with open_store(ctx) as store:
        _echo_entities(store.reader.sub_classes_for(name), as_json)


@click.command()
@click.argument("name")
@_json_option
@click.pass_context
def subtypes_command(ctx: click.Context, name: str, as_json: bool) -> None:
    """List entities implementing an interface called NAME (matched by simple name)."""
    with open_store(ctx) as store:
        _echo_entities(store.reader.sub_types_for(name), as_json)


@click.command()
@click.argument("project")
@click.option("--species", type=_SPECIES_CHOICE, default=None, help="Only this species")
@_json_option
@click.pass_context
def entities_command(
    ctx: click.Context, project: str, species: str | None, as_json: bool
) -> None:
    """List the entities of PROJECT ('name version')."""
    with open_store(ctx) as store:
        entities = store.reader.entities_for(project)
    if species is not None:
        target = Species.for_description(species.lower())
        entities = [e for e in entities if e.species is target]
    _echo_entities(entities, as_json)
