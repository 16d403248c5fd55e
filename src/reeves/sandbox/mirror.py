"""Read-only source of crate archives."""

from __future__ import annotations

import shlex
from pathlib import Path

from reeves.sandbox.environment import MIRROR_DIR, WORK_DIR
from reeves.sandbox.runner import Mount
from reeves.signature import CrateId

SOURCE_DIR = f"{WORK_DIR}/src"


class PackageMirror:
    """Crate archives addressed by (name, version).

    ``location`` is either a local directory holding ``{name}-{version}.crate``
    files, mounted read-only into the sandbox, or a base URL laid out like
    static.crates.io (``{base}/{name}/{name}-{version}.crate``) that the
    sandbox downloads from. The mirror is never written to.
    """

    def __init__(self, location: str) -> None:
        self.location = location.rstrip("/")

    @property
    def is_remote(self) -> bool:
        return "://" in self.location

    @property
    def local_dir(self) -> Path:
        return Path(self.location).expanduser().resolve()

    @staticmethod
    def archive_name(crate: CrateId) -> str:
        return f"{crate.name}-{crate.version}.crate"

    def archive_url(self, crate: CrateId) -> str:
        return f"{self.location}/{crate.name}/{self.archive_name(crate)}"

    def has(self, crate: CrateId) -> bool:
        """False only when a local mirror is known to lack the archive."""
        if self.is_remote:
            return True
        return (self.local_dir / self.archive_name(crate)).is_file()

    def mounts(self) -> list[Mount]:
        if self.is_remote:
            return []
        return [Mount(self.local_dir, MIRROR_DIR, read_only=True)]

    def fetch_script(self, crate: CrateId) -> str:
        """Shell snippet that leaves the unpacked crate at /work/src."""
        if self.is_remote:
            archive = f"{WORK_DIR}/{self.archive_name(crate)}"
            fetch = (
                f"curl --fail --silent --show-error --location --retry 2 "
                f"--max-filesize 104857600 -o {shlex.quote(archive)} "
                f"{shlex.quote(self.archive_url(crate))}"
            )
        else:
            archive = f"{MIRROR_DIR}/{self.archive_name(crate)}"
            fetch = f"test -f {shlex.quote(archive)}"
        unpack = (
            f"mkdir -p {SOURCE_DIR} && "
            f"tar -xzf {shlex.quote(archive)} -C {SOURCE_DIR} --strip-components=1 --no-same-owner"
        )
        return f"{fetch} && {unpack}"

    def __str__(self) -> str:
        return self.location
