"""Store maintenance commands: rebuild-index, remove, stats."""

import json
from datetime import UTC, datetime
from pathlib import Path

import click

from reeves.cli.utils import get_config, open_store, reeves_errors
from reeves.core.progress import get_console, pluralize, status
from reeves.signature import CrateId
from reeves.text import TextIndex


def _parse_crate(_ctx: click.Context, _param: click.Parameter, values: tuple[str, ...]) -> list[CrateId]:
    try:
        return [CrateId.parse(v) for v in values]
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


@click.command()
@click.pass_context
def rebuild_index_command(ctx: click.Context) -> None:
    """Recompute the type index from the stored function records."""
    config = get_config(ctx)
    with open_store(config) as store, reeves_errors():
        entries = store.rebuild_type_index()
    status(f"Type index rebuilt: {pluralize(entries, 'entry', 'entries')}", style="success")


@click.command()
@click.argument("crates", nargs=-1, required=True, callback=_parse_crate)
@click.pass_context
def remove_command(ctx: click.Context, crates: list[CrateId]) -> None:
    """Remove CRATES (name@version) from the store and the text index."""
    config = get_config(ctx)
    text_path = Path(config.text.index_path)
    text_index = TextIndex(text_path) if text_path.exists() else None

    missing = 0
    with open_store(config) as store, reeves_errors():
        for crate in crates:
            if not store.remove_crate(crate):
                missing += 1
                status(f"{crate}: not stored", style="warning")
                continue
            if text_index is not None:
                text_index.remove_crate(crate)
            status(f"{crate}: removed", style="success")

    if missing:
        ctx.exit(1)


@click.command()
@click.option("--crates", "list_crates", is_flag=True, help="Also list every stored crate")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def stats_command(ctx: click.Context, list_crates: bool, as_json: bool) -> None:
    """Show store size and, optionally, the stored crates."""
    config = get_config(ctx)
    with open_store(config) as store, reeves_errors():
        stats = store.stats()
        crates = store.list_crates() if list_crates else []

    if as_json:
        payload: dict[str, object] = {
            "db_path": config.store.db_path,
            "crates": stats.crates,
            "functions": stats.functions,
            "type_mentions": stats.type_mentions,
        }
        if list_crates:
            payload["stored"] = [
                {
                    "crate": str(c.crate),
                    "import_name": c.import_name,
                    "functions": c.fn_count,
                    "analyzed_at": c.analyzed_at,
                }
                for c in crates
            ]
        click.echo(json.dumps(payload, indent=2))
        return

    console = get_console()
    console.print(f"Store: {config.store.db_path}", highlight=False)
    console.print(f"  Crates:        {stats.crates}", highlight=False)
    console.print(f"  Functions:     {stats.functions}", highlight=False)
    console.print(f"  Type mentions: {stats.type_mentions}", highlight=False)
    for c in crates:
        when = (
            datetime.fromtimestamp(c.analyzed_at, UTC).strftime("%Y-%m-%d %H:%M")
            if c.analyzed_at is not None
            else "-"
        )
        console.print(f"  {c.crate}  {pluralize(c.fn_count, 'function')}  {when}", highlight=False)
