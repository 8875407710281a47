"""Root filesystem reference model."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class RootFsReference:
    """The named base filesystem a jail is built on.

    Resolved once at startup; mounted as the read-only lower layer of /
    unless --fs-edit makes it writable.
    """

    name: str
    path: Path

    def __str__(self) -> str:
        if self.name == str(self.path):
            return self.name
        return f"{self.name} ({self.path})"

    def subpath(self, jail_path: str) -> Path:
        """Host path of a location inside the root fs."""
        return self.path / jail_path.lstrip("/")

    def has_file(self, jail_path: str) -> bool:
        return self.subpath(jail_path).exists()


def looks_like_path(value: str) -> bool:
    """True if an --fs value names a directory rather than a store entry."""
    return "/" in value or value.startswith((".", "~"))
