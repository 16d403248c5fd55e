"""reeves search command - type-directed function search."""

import json
from pathlib import Path

import click

from reeves.cli.utils import get_config, open_store, reeves_errors
from reeves.core.progress import get_console
from reeves.query import QueryMatcher
from reeves.text import TextIndex


@click.command()
@click.argument("queries", nargs=-1, required=True)
@click.option("--limit", "-n", type=click.IntRange(min=0), help="Max structural hits")
@click.option("--text-limit", type=click.IntRange(min=0), help="Max free-text hits")
@click.option("--no-text", is_flag=True, help="Structural hits only")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def search_command(
    ctx: click.Context,
    queries: tuple[str, ...],
    limit: int | None,
    text_limit: int | None,
    no_text: bool,
    as_json: bool,
) -> None:
    """Find functions whose signatures mention every QUERIES type.

    \b
    Examples:
        reeves search 'Header' 'u8'
        reeves search '&[u8]' 'Result<Header>'
        reeves search 'Option'          # matches Option<anything>
    """
    config = get_config(ctx)
    text_index = None
    if config.text.enabled and not no_text and Path(config.text.index_path).exists():
        text_index = TextIndex(config.text.index_path)

    with open_store(config) as store, reeves_errors():
        matcher = QueryMatcher(
            store,
            text_index,
            limit=config.limits.search_default,
            text_limit=config.limits.text_default,
        )
        results = matcher.search(list(queries), limit=limit, text_limit=text_limit)

    if as_json:
        click.echo(json.dumps(results.to_dict(), indent=2))
        return

    console = get_console()
    if not results.hits:
        console.print("No matches", style="dim", highlight=False)
        return
    for hit in results.hits:
        tag = "" if hit.source == "structural" else " [dim](text)[/dim]"
        click.echo(f"{hit.signature}  ", nl=False)
        console.print(f"[cyan]{hit.crate}[/cyan]{tag}", highlight=False)
    if results.structural_total > len(results.structural):
        console.print(
            f"... {results.structural_total - len(results.structural)} more structural matches "
            "(raise --limit)",
            style="dim",
            highlight=False,
        )
    if results.text_degraded:
        console.print("Text search unavailable; showing structural matches only", style="yellow")
