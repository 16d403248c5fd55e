"""Analysis engine boundary.

The engine turns a crate workspace into a raw model of its public API. The
only production engine is rustdoc's JSON backend, run as a subprocess.
"""

from __future__ import annotations

import json
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from reeves.analysis.manifest import Manifest, read_manifest
from reeves.core.errors import AnalysisError

if TYPE_CHECKING:
    from reeves.config.models import AnalysisConfig

log = structlog.get_logger(__name__)

_MB = 1024 * 1024
_STDERR_TAIL = 2000


@dataclass(frozen=True, slots=True)
class RawCrateModel:
    """Parsed rustdoc JSON plus the crate identity from Cargo.toml."""

    manifest: Manifest
    data: dict[str, Any]


class AnalysisEngine(Protocol):
    def analyze(self, workspace: Path) -> RawCrateModel: ...


def rustdoc_command(
    cargo: str = "cargo", toolchain: str | None = "nightly", offline: bool = True
) -> list[str]:
    """argv that makes cargo emit rustdoc JSON for the library target."""
    cmd = [cargo]
    if toolchain:
        cmd.append(f"+{toolchain}")
    cmd += ["rustdoc", "--lib"]
    if offline:
        cmd.append("--offline")
    cmd += [
        "--",
        "-Z",
        "unstable-options",
        "--output-format",
        "json",
    ]
    return cmd


def load_rustdoc_json(path: Path, manifest: Manifest, max_bytes: int) -> RawCrateModel:
    """Read engine output, refusing files above ``max_bytes``.

    Raises:
        AnalysisError: If the file is missing, too large, or not rustdoc JSON.
    """
    try:
        size = path.stat().st_size
    except FileNotFoundError as e:
        raise AnalysisError.crate_not_found(manifest.import_name, str(path.parent)) from e
    if size > max_bytes:
        raise AnalysisError.output_invalid(
            str(path), f"{size} bytes exceeds the {max_bytes} byte limit"
        )
    try:
        data = json.loads(path.read_bytes())
    except (OSError, ValueError, RecursionError) as e:
        raise AnalysisError.output_invalid(str(path), str(e)) from e
    if not isinstance(data, dict) or "index" not in data or "root" not in data:
        raise AnalysisError.output_invalid(str(path), "not a rustdoc JSON document")
    return RawCrateModel(manifest=manifest, data=data)


class RustdocEngine:
    """Runs ``cargo rustdoc`` in a workspace and loads the JSON it writes.

    Usage::

        engine = RustdocEngine(timeout_sec=300)
        raw = engine.analyze(Path("/path/to/crate"))
    """

    def __init__(
        self,
        cargo: str = "cargo",
        toolchain: str | None = "nightly",
        timeout_sec: float = 600.0,
        max_output_mb: int = 512,
        target_dir: Path | None = None,
        offline: bool = True,
    ) -> None:
        self.cargo = cargo
        self.toolchain = toolchain
        self.timeout_sec = timeout_sec
        self.max_output_bytes = max_output_mb * _MB
        self.target_dir = target_dir
        self.offline = offline

    @classmethod
    def from_config(cls, config: AnalysisConfig) -> RustdocEngine:
        return cls(
            cargo=config.cargo,
            toolchain=config.toolchain,
            timeout_sec=config.timeout_sec,
            max_output_mb=config.max_output_mb,
            offline=config.offline,
        )

    def analyze(self, workspace: Path) -> RawCrateModel:
        manifest = read_manifest(workspace)
        target_dir = self.target_dir or workspace / "target"
        cmd = rustdoc_command(self.cargo, self.toolchain, self.offline)
        env = {**os.environ, "CARGO_TARGET_DIR": str(target_dir), "CARGO_TERM_COLOR": "never"}

        start = time.monotonic()
        try:
            result = subprocess.run(
                cmd,
                cwd=workspace,
                capture_output=True,
                text=True,
                timeout=self.timeout_sec,
                env=env,
            )
        except subprocess.TimeoutExpired as e:
            raise AnalysisError.engine_timeout(str(workspace), self.timeout_sec) from e
        except OSError as e:
            raise AnalysisError.engine_failed(str(workspace), f"cannot run {cmd[0]}: {e}") from e

        duration_ms = int((time.monotonic() - start) * 1000)
        if result.returncode != 0:
            log.warning(
                "engine_failed",
                crate=str(manifest.crate),
                exit_code=result.returncode,
                duration_ms=duration_ms,
            )
            raise AnalysisError.engine_failed(
                str(workspace), result.stderr[-_STDERR_TAIL:].strip() or f"exit {result.returncode}"
            )

        log.debug("engine_completed", crate=str(manifest.crate), duration_ms=duration_ms)
        json_path = target_dir / "doc" / f"{manifest.import_name}.json"
        return load_rustdoc_json(json_path, manifest, self.max_output_bytes)
