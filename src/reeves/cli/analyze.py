"""reeves analyze command - analyze local crate workspaces."""

from pathlib import Path

import click

from reeves.analysis import AnalysisAdapter, RustdocEngine, analyze_and_save
from reeves.cli.utils import get_config, open_store, reeves_errors
from reeves.core.errors import AnalysisError
from reeves.core.progress import pluralize, progress, status


@click.command()
@click.argument(
    "paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option("--toolchain", help="rustup toolchain for rustdoc JSON (default: analysis.toolchain)")
@click.option("--online", is_flag=True, help="Let cargo fetch missing dependencies")
@click.pass_context
def analyze_command(
    ctx: click.Context, paths: tuple[Path, ...], toolchain: str | None, online: bool
) -> None:
    """Analyze crate workspaces on this machine and store their functions.

    Runs the analysis engine directly, without a sandbox. Only use this on
    code you trust; use 'reeves batch' for third-party crates.
    """
    config = get_config(ctx)
    engine = RustdocEngine.from_config(config.analysis)
    if toolchain is not None:
        engine.toolchain = toolchain
    if online:
        engine.offline = False
    adapter = AnalysisAdapter(engine)

    failed = 0
    with open_store(config) as store, reeves_errors():
        for path in progress(list(paths), desc="Analyzing", unit="crates"):
            workspace = path.resolve()
            try:
                count = analyze_and_save(store, adapter, workspace)
            except AnalysisError as e:
                failed += 1
                status(f"{workspace}: {e.message}", style="error")
                continue
            status(f"{workspace.name}: {pluralize(count, 'function')}", style="success")

    if failed:
        raise click.ClickException(f"{pluralize(failed, 'crate')} failed to analyze")
