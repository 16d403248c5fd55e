"""Crate analysis: engine invocation and translation into function records."""

from reeves.analysis.adapter import AnalysisAdapter, AnalysisResult, analyze_and_save
from reeves.analysis.engine import (
    AnalysisEngine,
    RawCrateModel,
    RustdocEngine,
    load_rustdoc_json,
    rustdoc_command,
)
from reeves.analysis.manifest import Manifest, read_manifest
from reeves.analysis.rustdoc import CrateWalker, TypeTranslator

__all__ = [
    "AnalysisAdapter",
    "AnalysisEngine",
    "AnalysisResult",
    "CrateWalker",
    "Manifest",
    "RawCrateModel",
    "RustdocEngine",
    "TypeTranslator",
    "analyze_and_save",
    "load_rustdoc_json",
    "read_manifest",
    "rustdoc_command",
]
