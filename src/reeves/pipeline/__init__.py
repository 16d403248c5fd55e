"""Batch analysis pipeline."""

from reeves.pipeline.batch import (
    BatchPipeline,
    BatchSummary,
    CrateOutcome,
    CrateState,
    read_crate_list,
)

__all__ = [
    "BatchPipeline",
    "BatchSummary",
    "CrateOutcome",
    "CrateState",
    "read_crate_list",
]
