"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import os
import sys
from collections.abc import Generator
from pathlib import Path

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local reeves package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of reeves modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("reeves"):
        del sys.modules[module_name]

import reeves.config.loader as config_loader  # noqa: E402
from reeves.store import SignatureStore  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every test from an empty directory with no user config or REEVES__ env vars."""
    monkeypatch.setattr(config_loader, "GLOBAL_CONFIG_PATH", tmp_path / "no-global-config.yaml")
    for key in list(os.environ):
        if key.startswith("REEVES__"):
            monkeypatch.delenv(key)
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.chdir(workdir)


@pytest.fixture
def store(tmp_path: Path) -> Generator[SignatureStore, None, None]:
    """Empty signature store. A page size of 2 makes multi-page reads cheap to hit."""
    s = SignatureStore(tmp_path / "store" / "reeves.db", page_size=2)
    yield s
    s.close()
