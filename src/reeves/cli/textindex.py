"""reeves textindex command - rebuild the free-text index."""

from pathlib import Path

import click

from reeves.cli.utils import get_config, open_store, reeves_errors
from reeves.core.progress import pluralize, status, task
from reeves.text import TextIndex, TextIndexLoader


@click.command()
@click.option(
    "--index",
    "index_path",
    type=click.Path(file_okay=False, path_type=Path),
    help="Tantivy index directory (default: text.index_path)",
)
@click.pass_context
def textindex_command(ctx: click.Context, index_path: Path | None) -> None:
    """Load every stored function signature into the text index.

    The index is cleared first, so it always mirrors the store.
    """
    config = get_config(ctx)
    index = TextIndex(index_path or Path(config.text.index_path))
    loader = TextIndexLoader(batch_size=config.text.batch_size)

    with open_store(config) as store, reeves_errors(), task("Loading text index"):
        loaded = loader.load(store, index)
    status(f"Indexed {pluralize(loaded, 'function')} into {index.index_path}", style="success")
