"""Tests for sandbox/mirror.py module."""

from __future__ import annotations

from pathlib import Path

from reeves.sandbox import Mount, PackageMirror
from reeves.signature import CrateId

CRATE = CrateId("serde", "1.0.203")


class TestLocalMirror:
    """A directory of .crate archives."""

    def test_has_archive(self, tmp_path: Path) -> None:
        (tmp_path / "serde-1.0.203.crate").write_bytes(b"")
        mirror = PackageMirror(str(tmp_path))

        assert not mirror.is_remote
        assert mirror.has(CRATE)
        assert not mirror.has(CrateId("serde", "0.9.0"))

    def test_mounted_read_only(self, tmp_path: Path) -> None:
        mirror = PackageMirror(str(tmp_path) + "/")
        assert mirror.mounts() == [Mount(tmp_path.resolve(), "/mirror", read_only=True)]

    def test_fetch_script_unpacks_from_mount(self, tmp_path: Path) -> None:
        script = PackageMirror(str(tmp_path)).fetch_script(CRATE)

        assert script.startswith("test -f /mirror/serde-1.0.203.crate && ")
        assert "tar -xzf /mirror/serde-1.0.203.crate -C /work/src --strip-components=1" in script
        assert "curl" not in script


class TestRemoteMirror:
    """A static.crates.io style base URL."""

    def test_archive_url(self) -> None:
        mirror = PackageMirror("https://static.crates.io/crates/")
        assert mirror.archive_url(CRATE) == (
            "https://static.crates.io/crates/serde/serde-1.0.203.crate"
        )

    def test_assumed_present_and_not_mounted(self) -> None:
        mirror = PackageMirror("https://mirror.internal/crates")
        assert mirror.is_remote
        assert mirror.has(CRATE)
        assert mirror.mounts() == []

    def test_fetch_script_downloads_into_work_dir(self) -> None:
        script = PackageMirror("https://mirror.internal/crates").fetch_script(CRATE)

        assert script.startswith("curl --fail")
        assert "-o /work/serde-1.0.203.crate" in script
        assert "https://mirror.internal/crates/serde/serde-1.0.203.crate" in script
        assert "tar -xzf /work/serde-1.0.203.crate" in script

    def test_str(self) -> None:
        assert str(PackageMirror("https://mirror.internal/crates/")) == (
            "https://mirror.internal/crates"
        )
