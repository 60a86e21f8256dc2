"""identdb CLI - idb command."""

from pathlib import Path

import click

from identdb.cli.ingest import ingest_command, init_command
from identdb.cli.query import (
    classes_command,
    entities_command,
    names_command,
    packages_command,
    projects_command,
    subclasses_command,
    subtypes_command,
    tokens_command,
)
from identdb.config.loader import load_config
from identdb.core.errors import ConfigError
from identdb.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="idb")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Entity store file (default: database.path from config)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, db_path: Path | None) -> None:
    """identdb - store and query identifier names of analysed programs."""
    try:
        config = load_config(Path.cwd())
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    if verbose:
        config.logging.level = "DEBUG"
    configure_logging(config=config.logging)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config"] = config
    if db_path is None and config.database.path:
        db_path = Path(config.database.path)
    ctx.obj["db_path"] = db_path


cli.add_command(init_command, name="init")
cli.add_command(ingest_command, name="ingest")
cli.add_command(projects_command, name="projects")
cli.add_command(tokens_command, name="tokens")
cli.add_command(packages_command, name="packages")
cli.add_command(classes_command, name="classes")
cli.add_command(names_command, name="names")
cli.add_command(subclasses_command, name="subclasses")
cli.add_command(subtypes_command, name="subtypes")
cli.add_command(entities_command, name="entities")


if __name__ == "__main__":
    cli()
