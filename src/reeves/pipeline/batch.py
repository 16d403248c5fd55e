"""Sandboxed batch analysis of many crates.

Each crate moves PENDING -> PREPARING -> ANALYZING -> SUCCEEDED | FAILED in
its own work directory and its own containers. A failing crate never stops
the batch; a failing store does.
"""

from __future__ import annotations

import contextvars
import shlex
import tempfile
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from reeves.analysis import AnalysisAdapter, load_rustdoc_json, read_manifest, rustdoc_command
from reeves.core.errors import (
    AnalysisError,
    ErrorCode,
    InternalError,
    ReevesError,
    SandboxError,
    StoreError,
)
from reeves.core.logging import get_run_id
from reeves.sandbox import PackageMirror, SandboxResult, SandboxRunner, SandboxSpec, sandbox_environment
from reeves.sandbox.environment import WORK_DIR
from reeves.sandbox.mirror import SOURCE_DIR
from reeves.signature import CrateId

if TYPE_CHECKING:
    from reeves.config.models import ReevesConfig
    from reeves.store import SignatureStore

log = structlog.get_logger(__name__)

OUT_DIR = f"{WORK_DIR}/out"
_MB = 1024 * 1024
_STDERR_TAIL = 2000
# SIGKILL from the kernel OOM killer or the pids limit
_KILLED_EXIT = 137
_TIMEOUT_CODES = frozenset({ErrorCode.SANDBOX_TIMEOUT, ErrorCode.ANALYSIS_ENGINE_TIMEOUT})


def _confined(work: Path, path: Path) -> bool:
    """Whether ``path`` is a plain entry inside ``work`` once links are resolved.

    The container controls the work directory; links it leaves there are
    never followed.
    """
    return not path.is_symlink() and path.resolve().is_relative_to(work.resolve())


class CrateState(StrEnum):
    PENDING = "pending"
    PREPARING = "preparing"
    ANALYZING = "analyzing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CrateState.SUCCEEDED, CrateState.FAILED)


@dataclass
class CrateOutcome:
    """Terminal result for one crate."""

    crate: CrateId
    state: CrateState
    reason: str | None = None
    functions: int = 0
    duration_ms: int = 0
    attempts: int = 1


@dataclass
class BatchSummary:
    outcomes: list[CrateOutcome] = field(default_factory=list)
    duration_ms: int = 0
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.state is CrateState.SUCCEEDED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.state is CrateState.FAILED)

    @property
    def functions(self) -> int:
        return sum(o.functions for o in self.outcomes)

    def failures(self) -> dict[CrateId, str]:
        return {o.crate: o.reason or "" for o in self.outcomes if o.state is CrateState.FAILED}

    def outcome_for(self, crate: CrateId) -> CrateOutcome | None:
        for outcome in self.outcomes:
            if outcome.crate == crate:
                return outcome
        return None


def _parse_crate_line(line: str) -> list[CrateId]:
    tokens = line.split()
    if all("@" in t for t in tokens):
        return [CrateId.parse(t) for t in tokens]
    if len(tokens) == 2 and not any("@" in t for t in tokens):
        return [CrateId(tokens[0], tokens[1])]
    raise ValueError(f"expected 'name version' or 'name@version' tokens, got {line!r}")


def read_crate_list(lines: Iterable[str]) -> list[CrateId]:
    """Parse a crate list, skipping blank lines and ``#`` comments.

    Each line is either ``name version`` or one or more ``name@version``
    tokens. Duplicates are dropped, first occurrence wins.

    Raises:
        ValueError: With the line number of the first malformed line.
    """
    crates: dict[CrateId, None] = {}
    for lineno, raw in enumerate(lines, start=1):
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        try:
            parsed = _parse_crate_line(line)
        except ValueError as e:
            raise ValueError(f"line {lineno}: {e}") from e
        for crate in parsed:
            crates.setdefault(crate, None)
    return list(crates)


class BatchPipeline:
    """Analyzes crates from a mirror in sandboxes and stores the results.

    Usage::

        pipeline = BatchPipeline(store, ContainerSandbox("image"), PackageMirror("/srv/crates"))
        summary = pipeline.run([CrateId("serde", "1.0.200")])
    """

    def __init__(
        self,
        store: SignatureStore,
        sandbox: SandboxRunner,
        mirror: PackageMirror,
        adapter: AnalysisAdapter | None = None,
        *,
        max_workers: int = 4,
        retries: int = 0,
        prepare_timeout_sec: float = 120.0,
        analyze_timeout_sec: float = 900.0,
        network: str = "none",
        prepare_network: str = "bridge",
        registry: str | None = None,
        max_output_mb: int = 512,
        work_root: Path | None = None,
    ) -> None:
        self.store = store
        self.sandbox = sandbox
        self.mirror = mirror
        self.adapter = adapter or AnalysisAdapter()
        self.max_workers = max_workers
        self.retries = retries
        self.prepare_timeout_sec = prepare_timeout_sec
        self.analyze_timeout_sec = analyze_timeout_sec
        self.network = network
        self.prepare_network = prepare_network
        self.registry = registry
        self.max_output_bytes = max_output_mb * _MB
        self.work_root = work_root
        self._states: dict[CrateId, CrateState] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: ReevesConfig,
        store: SignatureStore,
        sandbox: SandboxRunner,
        *,
        mirror: str | None = None,
    ) -> BatchPipeline:
        pipeline = config.pipeline
        return cls(
            store,
            sandbox,
            PackageMirror(mirror or pipeline.mirror),
            max_workers=pipeline.max_workers,
            retries=pipeline.retries,
            prepare_timeout_sec=config.sandbox.prepare_timeout_sec,
            analyze_timeout_sec=config.sandbox.analyze_timeout_sec,
            network=config.sandbox.network,
            prepare_network=config.sandbox.prepare_network,
            registry=config.sandbox.registry,
            max_output_mb=config.analysis.max_output_mb,
            work_root=Path(pipeline.work_dir).expanduser() if pipeline.work_dir else None,
        )

    def state_of(self, crate: CrateId) -> CrateState | None:
        with self._lock:
            return self._states.get(crate)

    def _transition(self, crate: CrateId, state: CrateState) -> None:
        with self._lock:
            self._states[crate] = state
        log.debug("crate_state", crate=str(crate), state=state.value)

    def run(
        self,
        crates: Iterable[CrateId],
        on_outcome: Callable[[CrateOutcome], None] | None = None,
    ) -> BatchSummary:
        """Process every crate to a terminal state.

        Store errors abort the batch and propagate. KeyboardInterrupt stops
        scheduling; crates that never started are reported FAILED as
        cancelled and the summary is marked ``cancelled``.
        """
        pending = list(dict.fromkeys(crates))
        for crate in pending:
            self._transition(crate, CrateState.PENDING)

        summary = BatchSummary()
        start = time.monotonic()
        log.info("batch_started", crates=len(pending), workers=self.max_workers)

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="reeves-batch")
        futures: dict[Future[CrateOutcome], CrateId] = {
            executor.submit(contextvars.copy_context().run, self.process, crate): crate
            for crate in pending
        }
        try:
            for future in as_completed(futures):
                outcome = future.result()
                summary.outcomes.append(outcome)
                if on_outcome is not None:
                    on_outcome(outcome)
        except KeyboardInterrupt:
            summary.cancelled = True
            log.warning("batch_cancelled")
            executor.shutdown(wait=True, cancel_futures=True)
            summary.outcomes.extend(self._collect_after_cancel(futures, summary))
        except StoreError:
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        finally:
            executor.shutdown(wait=True)

        order = {crate: i for i, crate in enumerate(pending)}
        summary.outcomes.sort(key=lambda o: order[o.crate])
        summary.duration_ms = int((time.monotonic() - start) * 1000)
        log.info(
            "batch_completed",
            succeeded=summary.succeeded,
            failed=summary.failed,
            functions=summary.functions,
            duration_ms=summary.duration_ms,
        )
        return summary

    def _collect_after_cancel(
        self, futures: dict[Future[CrateOutcome], CrateId], summary: BatchSummary
    ) -> Iterator[CrateOutcome]:
        reported = {o.crate for o in summary.outcomes}
        for future, crate in futures.items():
            if crate in reported:
                continue
            if future.cancelled():
                self._transition(crate, CrateState.FAILED)
                yield CrateOutcome(crate, CrateState.FAILED, reason="cancelled", attempts=0)
            else:
                yield future.result()

    def process(self, crate: CrateId) -> CrateOutcome:
        """Run one crate to a terminal state, retrying retryable failures other than timeouts.

        Only store errors and KeyboardInterrupt escape; anything else the crate
        causes becomes a FAILED outcome.
        """
        start = time.monotonic()
        attempts = 0
        reason = ""
        while True:
            attempts += 1
            try:
                with tempfile.TemporaryDirectory(
                    prefix=f"reeves-{crate.name}-",
                    dir=self.work_root,
                    ignore_cleanup_errors=True,
                ) as tmp:
                    functions = self._attempt(crate, Path(tmp))
            except (StoreError, KeyboardInterrupt):
                raise
            except ReevesError as e:
                reason = str(e)
                retryable = (
                    e.retryable and e.code not in _TIMEOUT_CODES and attempts <= self.retries
                )
                log.warning(
                    "crate_analysis_failed",
                    crate=str(crate),
                    attempt=attempts,
                    error=e.error_name,
                    will_retry=retryable,
                )
                if retryable:
                    continue
            except OSError as e:
                reason = f"work directory: {e}"
                log.warning("crate_analysis_failed", crate=str(crate), attempt=attempts, error=reason)
                if attempts <= self.retries:
                    continue
            except Exception as e:
                reason = str(InternalError.unexpected(f"{type(e).__name__}: {e}", crate=str(crate)))
                log.error(
                    "crate_analysis_crashed",
                    crate=str(crate),
                    attempt=attempts,
                    error=type(e).__name__,
                    exc_info=True,
                )
            else:
                self._transition(crate, CrateState.SUCCEEDED)
                return CrateOutcome(
                    crate,
                    CrateState.SUCCEEDED,
                    functions=functions,
                    duration_ms=int((time.monotonic() - start) * 1000),
                    attempts=attempts,
                )
            self._transition(crate, CrateState.FAILED)
            return CrateOutcome(
                crate,
                CrateState.FAILED,
                reason=reason,
                duration_ms=int((time.monotonic() - start) * 1000),
                attempts=attempts,
            )

    def _attempt(self, crate: CrateId, work: Path) -> int:
        # writable by the unprivileged container user
        work.chmod(0o777)
        env_id = get_run_id() or ""

        self._transition(crate, CrateState.PREPARING)
        if not self.mirror.has(crate):
            raise AnalysisError.crate_not_found(crate.name, str(self.mirror))
        script = self.mirror.fetch_script(crate)
        fetch_deps = self.prepare_network != "none"
        if fetch_deps:
            script += f" && cd {SOURCE_DIR} && cargo fetch"
        result = self.sandbox.run(
            SandboxSpec(
                work_dir=work,
                env=sandbox_environment(
                    run_id=env_id, offline=not fetch_deps, registry=self.registry
                ),
                mounts=self.mirror.mounts(),
                network=self.prepare_network,
                label=f"{crate}:prepare",
            ),
            ["sh", "-c", script],
            self.prepare_timeout_sec,
        )
        self._check(result, "prepare", self.prepare_timeout_sec)

        manifest_path = work / "src" / "Cargo.toml"
        if not _confined(work, manifest_path):
            raise AnalysisError.manifest_invalid(str(manifest_path), "links outside the work directory")
        manifest = read_manifest(manifest_path)
        if manifest.crate != crate:
            raise AnalysisError.manifest_invalid(
                str(manifest_path), f"archive contains {manifest.crate}, expected {crate}"
            )

        self._transition(crate, CrateState.ANALYZING)
        engine = shlex.join(rustdoc_command("cargo", toolchain=None, offline=True))
        json_name = f"{manifest.import_name}.json"
        script = (
            f"cd {SOURCE_DIR} && {engine} && mkdir -p {OUT_DIR} && "
            f"cp {WORK_DIR}/target/doc/{shlex.quote(json_name)} {OUT_DIR}/"
        )
        result = self.sandbox.run(
            SandboxSpec(
                work_dir=work,
                env=sandbox_environment(run_id=env_id, offline=True),
                network=self.network,
                label=f"{crate}:analyze",
            ),
            ["sh", "-c", script],
            self.analyze_timeout_sec,
        )
        self._check(result, "analyze", self.analyze_timeout_sec)

        output = work / "out" / json_name
        if not _confined(work, output):
            raise AnalysisError.output_invalid(str(output), "links outside the work directory")
        raw = load_rustdoc_json(output, manifest, self.max_output_bytes)
        analysis = self.adapter.translate(raw)
        self.store.put_crate(analysis.record)
        return analysis.function_count

    @staticmethod
    def _check(result: SandboxResult, phase: str, timeout_sec: float) -> None:
        if result.timed_out:
            raise SandboxError.timeout(phase, timeout_sec)
        if result.exit_code == _KILLED_EXIT:
            raise SandboxError.resource_limit(phase, "killed by the memory or process limit")
        if result.exit_code != 0:
            raise SandboxError.command_failed(phase, result.exit_code, result.stderr[-_STDERR_TAIL:])
