"""Tests for analysis/manifest.py module."""

from __future__ import annotations

from pathlib import Path

import pytest

from factories import write_manifest
from reeves.analysis import read_manifest
from reeves.core.errors import AnalysisError, ErrorCode
from reeves.signature import CrateId


class TestReadManifest:
    """Tests for read_manifest function."""

    def test_reads_directory(self, tmp_path: Path) -> None:
        """A directory is resolved to its Cargo.toml."""
        write_manifest(tmp_path, "serde-json", "1.0.117")

        manifest = read_manifest(tmp_path)

        assert manifest.crate == CrateId("serde-json", "1.0.117")
        assert manifest.import_name == "serde_json"

    def test_reads_file(self, tmp_path: Path) -> None:
        path = write_manifest(tmp_path, "bytes", "1.6.0")
        assert read_manifest(path).name == "bytes"

    def test_lib_name_overrides_import_name(self, tmp_path: Path) -> None:
        write_manifest(tmp_path, "rust-crypto", "0.2.36", lib_name="crypto")
        assert read_manifest(tmp_path).import_name == "crypto"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(AnalysisError) as exc_info:
            read_manifest(tmp_path)
        assert exc_info.value.code == ErrorCode.ANALYSIS_MANIFEST_INVALID
        assert "not found" in exc_info.value.message

    def test_invalid_toml(self, tmp_path: Path) -> None:
        (tmp_path / "Cargo.toml").write_text("[package\nname = ")
        with pytest.raises(AnalysisError, match="invalid TOML"):
            read_manifest(tmp_path)

    def test_missing_package_table(self, tmp_path: Path) -> None:
        (tmp_path / "Cargo.toml").write_text('[workspace]\nmembers = ["a"]\n')
        with pytest.raises(AnalysisError, match=r"\[package\]"):
            read_manifest(tmp_path)

    def test_workspace_inherited_version_rejected(self, tmp_path: Path) -> None:
        """version.workspace = true is not resolved."""
        (tmp_path / "Cargo.toml").write_text(
            '[package]\nname = "member"\nversion.workspace = true\n'
        )
        with pytest.raises(AnalysisError, match="version"):
            read_manifest(tmp_path)
