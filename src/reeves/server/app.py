"""Starlette application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette

from reeves.query import QueryMatcher
from reeves.server.middleware import RequestSizeMiddleware
from reeves.server.routes import create_routes
from reeves.store import SignatureStore
from reeves.text import TextIndex

if TYPE_CHECKING:
    from reeves.config.models import ReevesConfig

log = structlog.get_logger(__name__)


def create_app(
    matcher: QueryMatcher,
    *,
    max_request_bytes: int = 65536,
    on_shutdown: list[SignatureStore] | None = None,
) -> Starlette:
    """Create the query application around an existing matcher.

    Stores listed in ``on_shutdown`` are closed when the app stops.
    """
    routes = create_routes(matcher, max_request_bytes=max_request_bytes)
    owned = list(on_shutdown or [])

    @asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        log.info("server_started", text_search=matcher.text_index is not None)
        yield
        for store in owned:
            store.close()
        log.info("server_stopped")

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(RequestSizeMiddleware, max_request_bytes=max_request_bytes)
    return app


def create_app_from_config(config: ReevesConfig) -> Starlette:
    """Open the store (and text index, if built) named by config and serve them."""
    store = SignatureStore.from_config(config.store)
    text_index = None
    text_path = Path(config.text.index_path)
    if config.text.enabled and text_path.exists():
        text_index = TextIndex(text_path)

    matcher = QueryMatcher(
        store,
        text_index,
        limit=config.limits.search_default,
        text_limit=config.limits.text_default,
    )
    return create_app(
        matcher,
        max_request_bytes=config.server.max_request_bytes,
        on_shutdown=[store],
    )
