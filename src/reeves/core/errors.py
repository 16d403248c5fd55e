"""Reeves error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Store
- 4xxx: Analysis
- 5xxx: Sandbox
- 6xxx: Query
- 7xxx: Text backend
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_FILE_NOT_FOUND = 2004

    # Store (3xxx)
    STORE_IO_ERROR = 3001
    STORE_CORRUPT_RECORD = 3002

    # Analysis (4xxx)
    ANALYSIS_ENGINE_FAILED = 4001
    ANALYSIS_ENGINE_TIMEOUT = 4002
    ANALYSIS_MANIFEST_INVALID = 4003
    ANALYSIS_CRATE_NOT_FOUND = 4004
    ANALYSIS_OUTPUT_INVALID = 4005

    # Sandbox (5xxx)
    SANDBOX_SETUP_FAILED = 5001
    SANDBOX_TIMEOUT = 5002
    SANDBOX_RESOURCE_LIMIT = 5003
    SANDBOX_COMMAND_FAILED = 5004

    # Query (6xxx)
    QUERY_PARSE_ERROR = 6001
    QUERY_EMPTY = 6002
    QUERY_INVALID_REQUEST = 6003

    # Text backend (7xxx)
    TEXT_BACKEND_UNAVAILABLE = 7001
    TEXT_BACKEND_FAILED = 7002

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class ReevesError(Exception):
    """Base error with structured context for CLI and HTTP responses."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'QUERY_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(ReevesError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class StoreError(ReevesError):
    """Signature store failures. Always fatal to the triggering call."""

    @classmethod
    def io_failure(cls, operation: str, reason: str) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_IO_ERROR,
            message=f"Signature store {operation} failed: {reason}",
            retryable=True,
            details={"operation": operation, "reason": reason},
        )

    @classmethod
    def corrupt_record(cls, key: str, reason: str) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_CORRUPT_RECORD,
            message=f"Stored record {key} could not be decoded: {reason}",
            details={"key": key, "reason": reason},
        )


class AnalysisError(ReevesError):
    """A crate could not be analyzed. Aborts only that crate."""

    @classmethod
    def engine_failed(cls, workspace: str, reason: str) -> "AnalysisError":
        return cls(
            code=ErrorCode.ANALYSIS_ENGINE_FAILED,
            message=f"Analysis engine failed for {workspace}: {reason}",
            details={"workspace": workspace, "reason": reason},
        )

    @classmethod
    def engine_timeout(cls, workspace: str, timeout_sec: float) -> "AnalysisError":
        return cls(
            code=ErrorCode.ANALYSIS_ENGINE_TIMEOUT,
            message=f"Analysis engine timed out after {timeout_sec}s for {workspace}",
            retryable=True,
            details={"workspace": workspace, "timeout_sec": timeout_sec},
        )

    @classmethod
    def manifest_invalid(cls, path: str, reason: str) -> "AnalysisError":
        return cls(
            code=ErrorCode.ANALYSIS_MANIFEST_INVALID,
            message=f"Invalid crate manifest at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def crate_not_found(cls, crate_name: str, workspace: str) -> "AnalysisError":
        return cls(
            code=ErrorCode.ANALYSIS_CRATE_NOT_FOUND,
            message=f"Didn't find crate {crate_name} in {workspace}",
            details={"crate": crate_name, "workspace": workspace},
        )

    @classmethod
    def output_invalid(cls, source: str, reason: str) -> "AnalysisError":
        return cls(
            code=ErrorCode.ANALYSIS_OUTPUT_INVALID,
            message=f"Unusable analysis output from {source}: {reason}",
            details={"source": source, "reason": reason},
        )


class SandboxError(ReevesError):
    """Isolation failures. Terminal for the affected crate, never beyond it."""

    @classmethod
    def setup_failed(cls, reason: str) -> "SandboxError":
        return cls(
            code=ErrorCode.SANDBOX_SETUP_FAILED,
            message=f"Sandbox setup failed: {reason}",
            details={"reason": reason},
        )

    @classmethod
    def timeout(cls, phase: str, timeout_sec: float) -> "SandboxError":
        return cls(
            code=ErrorCode.SANDBOX_TIMEOUT,
            message=f"{phase} timed out after {timeout_sec}s",
            retryable=False,
            details={"phase": phase, "timeout_sec": timeout_sec},
        )

    @classmethod
    def resource_limit(cls, phase: str, reason: str) -> "SandboxError":
        return cls(
            code=ErrorCode.SANDBOX_RESOURCE_LIMIT,
            message=f"{phase} exceeded a resource limit: {reason}",
            details={"phase": phase, "reason": reason},
        )

    @classmethod
    def command_failed(cls, phase: str, exit_code: int, stderr: str) -> "SandboxError":
        return cls(
            code=ErrorCode.SANDBOX_COMMAND_FAILED,
            message=f"{phase} exited with status {exit_code}",
            retryable=True,
            details={"phase": phase, "exit_code": exit_code, "stderr": stderr[-2000:]},
        )


class QueryError(ReevesError):
    """Malformed search queries. No partial results are returned."""

    @classmethod
    def parse_error(cls, query: str, token: str, offset: int, reason: str) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_PARSE_ERROR,
            message=f"Cannot parse {query!r} at {token!r} (offset {offset}): {reason}",
            details={"query": query, "token": token, "offset": offset, "reason": reason},
        )

    @classmethod
    def empty_query(cls) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_EMPTY,
            message="At least one type query is required",
        )

    @classmethod
    def invalid_request(cls, reason: str) -> "QueryError":
        return cls(
            code=ErrorCode.QUERY_INVALID_REQUEST,
            message=f"Invalid search request: {reason}",
            details={"reason": reason},
        )


class TextBackendError(ReevesError):
    """Free-text backend errors. Search degrades to structural-only."""

    @classmethod
    def unavailable(cls, path: str, reason: str) -> "TextBackendError":
        return cls(
            code=ErrorCode.TEXT_BACKEND_UNAVAILABLE,
            message=f"Text index at {path} is unavailable: {reason}",
            retryable=True,
            details={"path": path, "reason": reason},
        )

    @classmethod
    def failed(cls, operation: str, reason: str) -> "TextBackendError":
        return cls(
            code=ErrorCode.TEXT_BACKEND_FAILED,
            message=f"Text index {operation} failed: {reason}",
            details={"operation": operation, "reason": reason},
        )


class InternalError(ReevesError):
    """Unexpected failures, such as an exception escaping one crate's analysis."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
