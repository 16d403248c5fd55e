"""HTTP routes for the query server."""

from __future__ import annotations

import importlib.metadata
import json
import time
from typing import TYPE_CHECKING, Any

import structlog
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from reeves.core.errors import QueryError, ReevesError

if TYPE_CHECKING:
    from reeves.query import QueryMatcher

log = structlog.get_logger(__name__)


def _get_version() -> str:
    """Get package version from installed metadata."""
    try:
        return importlib.metadata.version("reeves")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


async def read_limited_body(request: Request, max_bytes: int) -> bytes | None:
    """Read the body chunk by chunk, giving up once it exceeds ``max_bytes``.

    Returns None for an oversized body; the rest of the stream is never read.
    """
    received = bytearray()
    async for chunk in request.stream():
        received += chunk
        if len(received) > max_bytes:
            return None
    return bytes(received)


def parse_search_body(body: bytes) -> tuple[list[str], int | None]:
    """Validate a search request body.

    Expected shape: ``{"queries": ["Header", "u8"], "limit": 50}`` where
    ``limit`` is optional.

    Raises:
        QueryError: invalid_request for malformed JSON or wrong field types,
            empty_query for an empty ``queries`` list.
    """
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise QueryError.invalid_request(f"body is not JSON: {e}") from e
    if not isinstance(payload, dict):
        raise QueryError.invalid_request("body must be a JSON object")

    queries = payload.get("queries")
    if not isinstance(queries, list) or not all(isinstance(q, str) for q in queries):
        raise QueryError.invalid_request("'queries' must be a list of strings")
    if not queries:
        raise QueryError.empty_query()

    limit = payload.get("limit")
    # bool is an int subclass
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 0):
        raise QueryError.invalid_request("'limit' must be a non-negative integer")
    return queries, limit


def create_routes(matcher: QueryMatcher, *, max_request_bytes: int) -> list[Route]:
    """Create HTTP routes bound to a query matcher."""
    start_time = time.time()
    version = _get_version()

    async def health(request: Request) -> JSONResponse:
        """Liveness probe."""
        _ = request  # unused
        return JSONResponse(
            {
                "status": "healthy",
                "version": version,
                "text_search": matcher.text_index is not None,
                "uptime_seconds": round(time.time() - start_time, 1),
            }
        )

    async def search(request: Request) -> JSONResponse:
        """Structural plus free-text function search."""
        body = await read_limited_body(request, max_request_bytes)
        if body is None:
            error = QueryError.invalid_request(f"body exceeds {max_request_bytes} bytes")
            return JSONResponse(error.to_dict(), status_code=413)
        try:
            queries, limit = parse_search_body(body)
            results = await run_in_threadpool(matcher.search, queries, limit=limit)
        except QueryError as e:
            log.info("search_rejected", error=e.error_name, message=e.message)
            return JSONResponse(e.to_dict(), status_code=400)
        except ReevesError as e:
            log.error("search_failed", error=e.error_name, message=e.message)
            return JSONResponse(e.to_dict(), status_code=500)

        response: dict[str, Any] = results.to_dict()
        return JSONResponse(response)

    return [
        Route("/health", health, methods=["GET"]),
        Route("/reeves/search", search, methods=["POST"]),
    ]
