"""Core module exports."""

from reeves.core.errors import (
    AnalysisError,
    ConfigError,
    ErrorCode,
    InternalError,
    QueryError,
    ReevesError,
    SandboxError,
    StoreError,
    TextBackendError,
)
from reeves.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)
from reeves.core.progress import pluralize, progress, status, task, tracker

__all__ = [
    # Errors
    "AnalysisError",
    "ConfigError",
    "ErrorCode",
    "InternalError",
    "QueryError",
    "ReevesError",
    "SandboxError",
    "StoreError",
    "TextBackendError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
    # Progress
    "pluralize",
    "progress",
    "status",
    "task",
    "tracker",
]
