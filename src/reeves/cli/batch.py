"""reeves batch command - sandboxed analysis of a crate list."""

import json
from typing import TextIO

import click

from reeves.cli.utils import get_config, open_store, reeves_errors
from reeves.core.logging import clear_run_id, set_run_id
from reeves.core.progress import get_console, pluralize, status, tracker
from reeves.pipeline import BatchPipeline, BatchSummary, read_crate_list
from reeves.sandbox import ContainerSandbox

_CANCELLED_EXIT = 130


def _summary_json(summary: BatchSummary) -> str:
    return json.dumps(
        {
            "succeeded": summary.succeeded,
            "failed": summary.failed,
            "functions": summary.functions,
            "cancelled": summary.cancelled,
            "duration_ms": summary.duration_ms,
            "crates": [
                {
                    "crate": str(o.crate),
                    "state": o.state.value,
                    "reason": o.reason,
                    "functions": o.functions,
                    "attempts": o.attempts,
                    "duration_ms": o.duration_ms,
                }
                for o in summary.outcomes
            ],
        },
        indent=2,
    )


def _print_summary(summary: BatchSummary) -> None:
    console = get_console()
    console.print()
    status(
        f"{pluralize(summary.succeeded, 'crate')} analyzed, "
        f"{pluralize(summary.functions, 'function')} stored "
        f"({summary.duration_ms / 1000:.1f}s)",
        style="success" if not summary.failed else "warning",
    )
    for crate, reason in summary.failures().items():
        status(f"{crate}: {reason}", style="error", indent=2)


@click.command()
@click.argument("crate_list", type=click.File("r"))
@click.option("--mirror", help="Crate archive directory or base URL (default: pipeline.mirror)")
@click.option("--workers", "-j", type=click.IntRange(min=1), help="Crates analyzed in parallel")
@click.option(
    "--retry-failed",
    type=click.IntRange(min=0),
    help="Extra attempts for non-timeout failures (default: pipeline.retries)",
)
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON")
@click.pass_context
def batch_command(
    ctx: click.Context,
    crate_list: TextIO,
    mirror: str | None,
    workers: int | None,
    retry_failed: int | None,
    as_json: bool,
) -> None:
    """Analyze every crate in CRATE_LIST inside isolated containers.

    CRATE_LIST holds 'name version' lines or 'name@version' tokens ('-' reads
    stdin). A crate that fails is reported and skipped; the batch continues.
    Exits 1 if any crate failed.
    """
    config = get_config(ctx)
    try:
        crates = read_crate_list(crate_list)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="CRATE_LIST") from e
    if not crates:
        raise click.BadParameter("no crates listed", param_hint="CRATE_LIST")

    if workers is not None:
        config.pipeline.max_workers = workers
    if retry_failed is not None:
        config.pipeline.retries = retry_failed

    run_id = set_run_id()
    try:
        with open_store(config) as store, reeves_errors():
            pipeline = BatchPipeline.from_config(
                config, store, ContainerSandbox.from_config(config.sandbox), mirror=mirror
            )
            if not as_json:
                status(
                    f"Analyzing {pluralize(len(crates), 'crate')} from {pipeline.mirror} "
                    f"(run {run_id})"
                )
            with tracker(len(crates), desc="Analyzing") as advance:
                summary = pipeline.run(crates, on_outcome=lambda _outcome: advance())
    finally:
        clear_run_id()

    if as_json:
        click.echo(_summary_json(summary))
    else:
        _print_summary(summary)

    if summary.cancelled:
        ctx.exit(_CANCELLED_EXIT)
    if summary.failed:
        ctx.exit(1)
