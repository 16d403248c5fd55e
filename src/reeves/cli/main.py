"""Reeves CLI - reeves command."""

from pathlib import Path

import click

from reeves.cli.analyze import analyze_command
from reeves.cli.batch import batch_command
from reeves.cli.dump import dump_command
from reeves.cli.maintenance import rebuild_index_command, remove_command, stats_command
from reeves.cli.search import search_command
from reeves.cli.serve import serve_command
from reeves.cli.textindex import textindex_command
from reeves.config.loader import load_config
from reeves.core.errors import ConfigError
from reeves.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="reeves")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="YAML config file (default: ./reeves.yaml if present)",
)
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Signature store database (overrides store.db_path)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None, db_path: Path | None) -> None:
    """Reeves - search Rust crate APIs by the types of their functions."""
    overrides = {"store": {"db_path": str(db_path)}} if db_path is not None else {}
    try:
        config = load_config(config_path, **overrides)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    if verbose:
        config.logging.level = "DEBUG"
        for output in config.logging.outputs:
            output.level = "DEBUG"
    configure_logging(config=config.logging)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config"] = config


cli.add_command(analyze_command, name="analyze")
cli.add_command(batch_command, name="batch")
cli.add_command(search_command, name="search")
cli.add_command(dump_command, name="dump")
cli.add_command(textindex_command, name="textindex")
cli.add_command(rebuild_index_command, name="rebuild-index")
cli.add_command(remove_command, name="remove")
cli.add_command(stats_command, name="stats")
cli.add_command(serve_command, name="serve")


if __name__ == "__main__":
    cli()
