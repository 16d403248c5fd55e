"""Isolated command execution for untrusted crate code.

A SandboxRunner executes one command against one per-crate work directory
and reports how it ended. ContainerSandbox does this with the Docker CLI:

- read-only root filesystem with a private tmpfs at /tmp
- the work directory bind-mounted read-write at /work
- the toolchain mounted read-only at /opt/toolchain
- no network unless the SandboxSpec names one
- all capabilities dropped, no-new-privileges, non-root user
- pids, memory and CPU limits

On timeout the container is killed with ``docker kill``.
"""

from __future__ import annotations

import subprocess
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog

from reeves.core.errors import SandboxError
from reeves.sandbox.environment import TOOLCHAIN_DIR, WORK_DIR

if TYPE_CHECKING:
    from reeves.config.models import SandboxConfig

log = structlog.get_logger(__name__)

# docker run reports its own failures (daemon, image, flags) with 125
_DOCKER_RUN_ERROR = 125
_KILL_TIMEOUT_SEC = 30.0


@dataclass(frozen=True, slots=True)
class Mount:
    host: Path
    container: str
    read_only: bool = True

    def as_arg(self) -> str:
        mode = "ro" if self.read_only else "rw"
        return f"{self.host}:{self.container}:{mode}"


@dataclass
class SandboxSpec:
    """What one sandboxed command may see."""

    work_dir: Path
    env: dict[str, str] = field(default_factory=dict)
    mounts: list[Mount] = field(default_factory=list)
    network: str = "none"
    label: str = ""


@dataclass
class SandboxResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


class SandboxRunner(Protocol):
    def run(self, spec: SandboxSpec, command: list[str], timeout_sec: float) -> SandboxResult: ...


def _as_text(output: str | bytes | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


class ContainerSandbox:
    """Docker-backed SandboxRunner."""

    def __init__(
        self,
        image: str,
        *,
        docker: str = "docker",
        toolchain_dir: Path | None = None,
        memory_limit: str = "4g",
        cpus: float = 2.0,
        pids_limit: int = 512,
        tmpfs_size: str = "1g",
        user: str = "65534:65534",
    ) -> None:
        self.image = image
        self.docker = docker
        self.toolchain_dir = toolchain_dir
        self.memory_limit = memory_limit
        self.cpus = cpus
        self.pids_limit = pids_limit
        self.tmpfs_size = tmpfs_size
        self.user = user

    @classmethod
    def from_config(cls, config: SandboxConfig) -> ContainerSandbox:
        return cls(
            config.image,
            docker=config.docker,
            toolchain_dir=Path(config.toolchain_dir).expanduser() if config.toolchain_dir else None,
            memory_limit=config.memory_limit,
            cpus=config.cpus,
            pids_limit=config.pids_limit,
            tmpfs_size=config.tmpfs_size,
            user=config.user,
        )

    def build_command(self, spec: SandboxSpec, command: list[str], name: str) -> list[str]:
        """Full ``docker run`` argv for one sandboxed command."""
        argv = [
            self.docker,
            "run",
            "--rm",
            "--name",
            name,
            "--read-only",
            "--tmpfs",
            f"/tmp:rw,nosuid,nodev,size={self.tmpfs_size}",
            "--network",
            spec.network,
            "--cap-drop",
            "ALL",
            "--security-opt",
            "no-new-privileges",
            "--pids-limit",
            str(self.pids_limit),
            "--memory",
            self.memory_limit,
            "--memory-swap",
            self.memory_limit,
            "--cpus",
            str(self.cpus),
            "--user",
            self.user,
            "--workdir",
            WORK_DIR,
            "--volume",
            Mount(spec.work_dir.resolve(), WORK_DIR, read_only=False).as_arg(),
        ]
        if self.toolchain_dir is not None:
            argv += ["--volume", Mount(self.toolchain_dir, TOOLCHAIN_DIR).as_arg()]
        for mount in spec.mounts:
            argv += ["--volume", mount.as_arg()]
        for key, value in sorted(spec.env.items()):
            argv += ["--env", f"{key}={value}"]
        argv.append(self.image)
        argv.extend(command)
        return argv

    def run(self, spec: SandboxSpec, command: list[str], timeout_sec: float) -> SandboxResult:
        name = f"reeves-{uuid.uuid4().hex[:12]}"
        argv = self.build_command(spec, command, name)
        start = time.monotonic()
        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout_sec,
            )
        except subprocess.TimeoutExpired as e:
            self._kill(name)
            duration_ms = int((time.monotonic() - start) * 1000)
            log.warning("sandbox_timeout", label=spec.label, container=name, timeout_sec=timeout_sec)
            return SandboxResult(
                exit_code=-1,
                stdout=_as_text(e.stdout),
                stderr=_as_text(e.stderr),
                timed_out=True,
                duration_ms=duration_ms,
            )
        except OSError as e:
            raise SandboxError.setup_failed(f"cannot run {self.docker}: {e}") from e

        duration_ms = int((time.monotonic() - start) * 1000)
        if proc.returncode == _DOCKER_RUN_ERROR:
            raise SandboxError.setup_failed(proc.stderr.strip() or "docker run failed")
        log.debug(
            "sandbox_command_completed",
            label=spec.label,
            exit_code=proc.returncode,
            duration_ms=duration_ms,
        )
        return SandboxResult(
            exit_code=proc.returncode,
            stdout=proc.stdout,
            stderr=proc.stderr,
            duration_ms=duration_ms,
        )

    def _kill(self, name: str) -> None:
        try:
            subprocess.run(
                [self.docker, "kill", name],
                capture_output=True,
                text=True,
                timeout=_KILL_TIMEOUT_SEC,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            log.error("sandbox_kill_failed", container=name, error=str(e))
