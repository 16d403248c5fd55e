"""Config module exports."""

from reeves.config.loader import load_config
from reeves.config.models import (
    AnalysisConfig,
    LoggingConfig,
    PipelineConfig,
    ReevesConfig,
    SandboxConfig,
    StoreConfig,
    TextConfig,
)

__all__ = [
    "load_config",
    "AnalysisConfig",
    "LoggingConfig",
    "PipelineConfig",
    "ReevesConfig",
    "SandboxConfig",
    "StoreConfig",
    "TextConfig",
]
