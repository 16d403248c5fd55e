"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (REEVES__SECTION__KEY)
3. Explicit or local YAML (reeves.yaml)
4. Global YAML (~/.config/reeves/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    REEVES__<SECTION>__<KEY>=<VALUE>

Examples:
    REEVES__LOGGING__LEVEL=DEBUG
    REEVES__STORE__DB_PATH=/var/lib/reeves/reeves.db
    REEVES__PIPELINE__MAX_WORKERS=8
    REEVES__SANDBOX__NETWORK=reeves-mirror
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        REEVES__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG adds engine, sandbox and crate state detail.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class StoreConfig(BaseModel):
    """Signature store configuration.

    Env vars:
        REEVES__STORE__DB_PATH: SQLite database file
        REEVES__STORE__BUSY_TIMEOUT_MS: SQLite busy timeout
        REEVES__STORE__MAX_RETRIES: Retries for locked database errors
    """

    db_path: str = Field(
        default="reeves.db",
        description="SQLite database file holding crate and function records.",
    )
    busy_timeout_ms: int = Field(
        default=30000,
        description="SQLite busy timeout (ms). How long a writer waits for the lock.",
    )
    max_retries: int = Field(
        default=3,
        description="Max retry attempts for locked database errors.",
    )
    retry_base_delay_sec: float = Field(
        default=0.1,
        description="Base delay between retries (exponential backoff).",
    )
    page_size: int = Field(
        default=500,
        description="Crate rows fetched per page when enumerating the store.",
    )

    @field_validator("page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"page_size must be positive, got {v}")
        return v


class AnalysisConfig(BaseModel):
    """Analysis engine configuration.

    Env vars:
        REEVES__ANALYSIS__CARGO: cargo executable
        REEVES__ANALYSIS__TOOLCHAIN: rustup toolchain providing rustdoc JSON
        REEVES__ANALYSIS__TIMEOUT_SEC: Engine timeout per crate
    """

    cargo: str = Field(default="cargo", description="cargo executable.")
    toolchain: str = Field(
        default="nightly",
        description="rustup toolchain. JSON output requires a nightly rustdoc.",
    )
    timeout_sec: float = Field(
        default=600.0,
        description="Wall-clock limit for one engine invocation.",
    )
    max_output_mb: int = Field(
        default=512,
        description="Refuse engine output larger than this (MB).",
    )
    offline: bool = Field(
        default=True,
        description="Pass --offline to cargo (dependencies must already be vendored or cached).",
    )


class SandboxConfig(BaseModel):
    """Isolation settings for untrusted crate analysis.

    Env vars:
        REEVES__SANDBOX__IMAGE: Minimal base image for the container
        REEVES__SANDBOX__NETWORK: Analyze-phase network (none, or a pinned mirror network)
        REEVES__SANDBOX__PREPARE_NETWORK: Network used while fetching sources
        REEVES__SANDBOX__REGISTRY: Registry index pinned for dependency fetching
        REEVES__SANDBOX__TOOLCHAIN_DIR: Host toolchain mounted read-only
    """

    docker: str = Field(default="docker", description="Docker CLI executable.")
    image: str = Field(
        default="buildpack-deps:bookworm-curl",
        description="Minimal base image providing a private root filesystem, curl and tar.",
    )
    network: str = Field(
        default="none",
        description="Network for the analyze phase: 'none', or a network that only reaches the mirror.",
    )
    prepare_network: str = Field(
        default="bridge",
        description="Network for fetching archives and dependencies; 'none' skips dependency fetching.",
    )
    registry: str | None = Field(
        default=None,
        description="Sparse registry index that replaces crates.io for dependency fetching.",
    )
    toolchain_dir: str = Field(
        default="~/.rustup/toolchains/nightly-x86_64-unknown-linux-gnu",
        description="Host Rust toolchain, mounted read-only at /opt/toolchain.",
    )
    memory_limit: str = Field(default="4g", description="Container memory limit.")
    cpus: float = Field(default=2.0, description="Container CPU quota.")
    pids_limit: int = Field(default=512, description="Container process limit.")
    tmpfs_size: str = Field(default="1g", description="Size of the private /tmp.")
    user: str = Field(default="65534:65534", description="Unprivileged uid:gid inside the sandbox.")
    prepare_timeout_sec: float = Field(
        default=120.0,
        description="Wall-clock limit for fetching and unpacking one crate.",
    )
    analyze_timeout_sec: float = Field(
        default=900.0,
        description="Wall-clock limit for analyzing one crate. "
        "RISK: Too low fails large crates; too high lets hostile build scripts stall workers.",
    )

    @field_validator("cpus")
    @classmethod
    def validate_cpus(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"cpus must be positive, got {v}")
        return v


class PipelineConfig(BaseModel):
    """Batch pipeline configuration.

    Env vars:
        REEVES__PIPELINE__MAX_WORKERS: Crates analyzed in parallel
        REEVES__PIPELINE__MIRROR: Package mirror directory or base URL
        REEVES__PIPELINE__RETRIES: Extra attempts for retryable failures
    """

    max_workers: int = Field(
        default=4,
        description="Crates analyzed in parallel, each in its own container.",
    )
    mirror: str = Field(
        default="https://static.crates.io/crates",
        description="Package mirror: a local directory of .crate archives or a base URL.",
    )
    retries: int = Field(
        default=0,
        description="Extra attempts for retryable failures before a crate is quarantined.",
    )
    work_dir: str | None = Field(
        default=None,
        description="Parent for per-crate work directories (default: system temp).",
    )

    @field_validator("max_workers")
    @classmethod
    def validate_max_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_workers must be at least 1, got {v}")
        return v

    @field_validator("retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"retries must not be negative, got {v}")
        return v


class TextConfig(BaseModel):
    """Free-text backend configuration.

    Env vars:
        REEVES__TEXT__ENABLED: Merge text hits into search results
        REEVES__TEXT__INDEX_PATH: Tantivy index directory
    """

    enabled: bool = Field(default=True, description="Merge free-text hits after structural hits.")
    index_path: str = Field(default="reeves.tantivy", description="Tantivy index directory.")
    batch_size: int = Field(default=1000, description="Documents per writer commit when loading.")


class LimitsConfig(BaseModel):
    """Query limit defaults.

    Env vars:
        REEVES__LIMITS__SEARCH_DEFAULT: Default structural results
        REEVES__LIMITS__TEXT_DEFAULT: Default free-text results
    """

    search_default: int = Field(
        default=200,
        description="Default structural results per query.",
    )
    text_default: int = Field(
        default=20,
        description="Default free-text results appended after structural hits.",
    )


class ServerConfig(BaseModel):
    """Query HTTP server configuration.

    Env vars:
        REEVES__SERVER__HOST: Bind address (default: 127.0.0.1)
        REEVES__SERVER__PORT: Port number (default: 8000)
    """

    host: str = Field(
        default="127.0.0.1",
        description="Bind address. Use 0.0.0.0 for network access.",
    )
    port: int = Field(default=8000, description="Server port.")
    max_request_bytes: int = Field(
        default=65536,
        description="Reject search requests with larger bodies.",
    )

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (0 <= v <= 65535):
            raise ValueError(f"Port must be 0-65535, got {v}")
        return v


class ReevesConfig(BaseModel):
    """Root configuration for Reeves."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    text: TextConfig = Field(default_factory=TextConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
