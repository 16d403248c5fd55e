"""Analysis adapter: engine output -> CrateRecord."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from reeves.analysis.engine import AnalysisEngine, RawCrateModel, RustdocEngine
from reeves.analysis.rustdoc import CrateWalker
from reeves.core.errors import AnalysisError
from reeves.signature import CrateRecord

if TYPE_CHECKING:
    from reeves.store import SignatureStore

log = structlog.get_logger(__name__)


@dataclass
class AnalysisResult:
    """Outcome of translating one crate."""

    record: CrateRecord
    skipped: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def function_count(self) -> int:
        return len(self.record.functions)


class AnalysisAdapter:
    """Turns a crate workspace (or raw engine output) into a CrateRecord.

    ``translate`` is pure and is what the batch pipeline calls on JSON
    produced inside the sandbox. ``analyze`` runs the engine first.
    """

    def __init__(self, engine: AnalysisEngine | None = None) -> None:
        self.engine = engine or RustdocEngine()

    def analyze(self, workspace: Path) -> AnalysisResult:
        start = time.monotonic()
        raw = self.engine.analyze(workspace)
        result = self.translate(raw)
        result.duration_ms = int((time.monotonic() - start) * 1000)
        return result

    def translate(self, raw: RawCrateModel) -> AnalysisResult:
        manifest = raw.manifest
        try:
            walk = CrateWalker(raw.data, manifest.import_name).walk()
        except (KeyError, TypeError, ValueError, AttributeError, RecursionError) as e:
            raise AnalysisError.output_invalid(str(manifest.crate), f"unreadable rustdoc JSON: {e}") from e
        record = CrateRecord(
            crate=manifest.crate,
            import_name=manifest.import_name,
            functions=tuple(walk.functions),
        )
        if walk.skipped:
            log.debug("analysis_skipped_symbols", crate=str(manifest.crate), count=len(walk.skipped))
        log.info(
            "crate_translated",
            crate=str(manifest.crate),
            functions=len(walk.functions),
            skipped=len(walk.skipped),
        )
        return AnalysisResult(record=record, skipped=walk.skipped)


def analyze_and_save(store: SignatureStore, adapter: AnalysisAdapter, workspace: Path) -> int:
    """Analyze one crate workspace and replace its stored record.

    Returns the number of functions stored.
    """
    result = adapter.analyze(workspace)
    store.put_crate(result.record)
    return result.function_count
