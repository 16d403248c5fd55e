"""Environment overrides for commands run inside the sandbox.

Nothing from the host environment is inherited; the container sees only
what is returned here.

Key protections:
- Non-interactive, CI-like behaviour (no prompts, no colour)
- Cargo state confined to the per-crate work directory
- Network access off unless the phase explicitly needs it
- Crate sources pinned to the configured mirror
"""

from __future__ import annotations

WORK_DIR = "/work"
TOOLCHAIN_DIR = "/opt/toolchain"
MIRROR_DIR = "/mirror"


def sandbox_environment(
    *,
    run_id: str = "",
    offline: bool = True,
    registry: str | None = None,
) -> dict[str, str]:
    """Build the container environment.

    Args:
        run_id: Batch run identifier, exported as REEVES_RUN_ID
        offline: Forbid cargo from touching the network
        registry: Sparse registry index URL replacing crates.io

    Returns:
        Environment dict passed to the container with ``-e``
    """
    env = {
        # Signal CI environment - most tools respect this
        "CI": "true",
        "CONTINUOUS_INTEGRATION": "true",
        # Prevent interactive prompts
        "NONINTERACTIVE": "1",
        "DEBIAN_FRONTEND": "noninteractive",
        "GIT_TERMINAL_PROMPT": "0",
        # Disable color output for cleaner parsing
        "NO_COLOR": "1",
        "CARGO_TERM_COLOR": "never",
        "CARGO_TERM_PROGRESS_WHEN": "never",
        # Writable state lives under the work dir; the root fs is read-only
        "HOME": f"{WORK_DIR}/home",
        "CARGO_HOME": f"{WORK_DIR}/cargo-home",
        "CARGO_TARGET_DIR": f"{WORK_DIR}/target",
        "TMPDIR": "/tmp",
        "PATH": f"{TOOLCHAIN_DIR}/bin:/usr/local/bin:/usr/bin:/bin",
        "CARGO_INCREMENTAL": "0",
        "CARGO_NET_OFFLINE": "true" if offline else "false",
        "REEVES_EXECUTION": "1",
    }
    if run_id:
        env["REEVES_RUN_ID"] = run_id
    if registry:
        env["CARGO_SOURCE_CRATES_IO_REPLACE_WITH"] = "mirror"
        env["CARGO_SOURCE_MIRROR_REGISTRY"] = registry
    return env
