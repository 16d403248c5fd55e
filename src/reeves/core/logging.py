"""structlog over stdlib logging, correlated by run.

Every batch or single-crate analysis gets a short run id; events logged while
it runs carry it as ``run_id``, including those from pipeline worker threads
(they run in a copied context). Console handlers go quiet while a Rich live
display owns the terminal.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from reeves.config.models import LoggingConfig, LogOutputConfig

_run_id: ContextVar[str | None] = ContextVar("run_id", default=None)


def get_run_id() -> str | None:
    return _run_id.get()


def set_run_id(run_id: str | None = None) -> str:
    """Set the run id, generating one when none is given."""
    rid = run_id or uuid4().hex[:12]
    _run_id.set(rid)
    return rid


def clear_run_id() -> None:
    _run_id.set(None)


def _add_run_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    if rid := get_run_id():
        event_dict["run_id"] = rid
    return event_dict


class ConsoleSuppressingFilter(logging.Filter):
    """Drop console records while a progress display is live."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: ARG002
        # progress depends on this module
        from reeves.core.progress import is_console_suppressed

        return not is_console_suppressed()


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Route structlog through one stdlib handler per configured output."""
    from reeves.config.models import LoggingConfig

    config = config or LoggingConfig()
    root_level = logging.getLevelNamesMapping()[config.level]
    shared: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
        _add_run_id,  # type: ignore[list-item]
    ]

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # reconfigured per CLI invocation
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(root_level)
    # uvicorn access lines duplicate search_completed events
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    for output in config.outputs:
        handler = _handler_for(output, shared)
        handler.setLevel(logging.getLevelNamesMapping()[output.level or config.level])
        root.addHandler(handler)


def _handler_for(
    output: LogOutputConfig, shared: list[structlog.types.Processor]
) -> logging.Handler:
    stream = {"stderr": sys.stderr, "stdout": sys.stdout}.get(output.destination)
    handler: logging.Handler
    if stream is not None:
        handler = logging.StreamHandler(stream)
        handler.addFilter(ConsoleSuppressingFilter())
    else:
        path = Path(output.destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a")

    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=stream is not None and stream.isatty(), pad_event_to=0, pad_level=False
        )
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=shared))
    return handler


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger=name)
    return logger  # type: ignore[no-any-return]
