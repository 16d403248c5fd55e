"""reeves dump command - print the store contents."""

import click

from reeves.cli.utils import get_config, open_store, reeves_errors


@click.command()
@click.pass_context
def dump_command(ctx: click.Context) -> None:
    """Print every stored crate, function and type-index entry."""
    config = get_config(ctx)
    with open_store(config) as store, reeves_errors():
        for line in store.dump_lines():
            click.echo(line)
