"""Cargo.toml reading."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

from reeves.core.errors import AnalysisError
from reeves.signature import CrateId


@dataclass(frozen=True, slots=True)
class Manifest:
    """Package identity and library target name."""

    name: str
    version: str
    import_name: str

    @property
    def crate(self) -> CrateId:
        return CrateId(self.name, self.version)


def read_manifest(path: Path) -> Manifest:
    """Read package name, version and library import name.

    ``path`` may be a Cargo.toml file or the directory holding one. The import
    name is ``[lib] name`` when set, otherwise the package name with ``-``
    replaced by ``_``.

    Raises:
        AnalysisError: If the manifest is missing, malformed, or lacks a
            literal package name and version (workspace-inherited versions
            are not resolved).
    """
    manifest_path = path / "Cargo.toml" if path.is_dir() else path
    try:
        data = tomllib.loads(manifest_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise AnalysisError.manifest_invalid(str(manifest_path), "file not found") from e
    except (OSError, UnicodeDecodeError) as e:
        raise AnalysisError.manifest_invalid(str(manifest_path), str(e)) from e
    except tomllib.TOMLDecodeError as e:
        raise AnalysisError.manifest_invalid(str(manifest_path), f"invalid TOML: {e}") from e

    package = data.get("package")
    if not isinstance(package, dict):
        raise AnalysisError.manifest_invalid(str(manifest_path), "missing [package] table")

    name = package.get("name")
    version = package.get("version")
    if not isinstance(name, str) or not name:
        raise AnalysisError.manifest_invalid(str(manifest_path), "package.name must be a string")
    if not isinstance(version, str) or not version:
        raise AnalysisError.manifest_invalid(
            str(manifest_path), "package.version must be a literal string"
        )

    import_name = name.replace("-", "_")
    lib = data.get("lib")
    if isinstance(lib, dict) and isinstance(lib.get("name"), str):
        import_name = lib["name"]

    return Manifest(name=name, version=version, import_name=import_name)
