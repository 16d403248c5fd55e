"""reeves serve command - run the HTTP query server."""

import click
import uvicorn

from reeves.cli.utils import get_config, reeves_errors
from reeves.core.progress import status
from reeves.server import create_app_from_config


@click.command()
@click.option("--host", help="Bind address (default: server.host)")
@click.option("--port", "-p", type=click.IntRange(0, 65535), help="Port (default: server.port)")
@click.pass_context
def serve_command(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Serve POST /reeves/search and GET /health over HTTP."""
    config = get_config(ctx)
    host = host or config.server.host
    port = config.server.port if port is None else port

    with reeves_errors():
        app = create_app_from_config(config)

    status(f"Serving {config.store.db_path} on http://{host}:{port}", style="info")
    uvicorn_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="warning",  # Use structlog instead
        ws="none",
    )
    uvicorn.Server(uvicorn_config).run()
