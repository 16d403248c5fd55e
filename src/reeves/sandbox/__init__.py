"""Sandboxed execution of untrusted crate builds."""

from reeves.sandbox.environment import sandbox_environment
from reeves.sandbox.mirror import PackageMirror
from reeves.sandbox.runner import (
    ContainerSandbox,
    Mount,
    SandboxResult,
    SandboxRunner,
    SandboxSpec,
)

__all__ = [
    "ContainerSandbox",
    "Mount",
    "PackageMirror",
    "SandboxResult",
    "SandboxRunner",
    "SandboxSpec",
    "sandbox_environment",
]
