"""Binding model: a resolved source -> destination mapping with a mode."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath

# Bound read-only over a hidden file
EMPTY_FILE = "/dev/null"


class BindingMode(Enum):
    """How a binding is mounted.

    Modes:
        ephemeral: overlay on the source, writes go to a scratch upper layer
        persistent: source bound read/write, writes land on the source
        hidden: empty writable directory, nothing underneath is visible
    """

    EPHEMERAL = "ephemeral"
    PERSISTENT = "persistent"
    HIDDEN = "hidden"


@dataclass
class Binding:
    """One entry of the mount plan.

    Files cannot be overlay or tmpfs mount points, so a file binding is
    mounted differently: hidden files get /dev/null bound over them, and an
    ephemeral file is a scratch copy of the source bound read/write.
    """

    source: str  # absolute host path (empty for hidden bindings)
    dest: str  # absolute path inside the jail
    mode: BindingMode = BindingMode.EPHEMERAL
    origin: str = "host"  # host, cwd, mount, rootfs, upstream
    is_file: bool = False  # source (or hidden target) is not a directory
    upper_dir: str = ""  # set by the overlay materializer; the copy for a file
    work_dir: str = ""  # set by the overlay materializer; unused for a file

    def __str__(self) -> str:
        if self.mode == BindingMode.HIDDEN:
            return f"{self.dest} (hidden)"
        if self.source == self.dest:
            return f"{self.dest} ({self.mode.value})"
        return f"{self.source} -> {self.dest} ({self.mode.value})"

    @property
    def depth(self) -> int:
        """Number of path components below /."""
        return len(PurePosixPath(self.dest).parts) - 1

    @property
    def is_materialized(self) -> bool:
        if self.is_file:
            return bool(self.upper_dir)
        return bool(self.upper_dir and self.work_dir)

    def to_args(self) -> list[str]:
        """Convert to bwrap arguments."""
        if not self.dest:
            return []

        if self.mode == BindingMode.HIDDEN:
            if self.is_file:
                return ["--ro-bind", EMPTY_FILE, self.dest]
            # Empty writable directory, no lower layer
            return ["--tmpfs", self.dest]
        elif self.mode == BindingMode.PERSISTENT:
            return ["--bind", self.source, self.dest]
        elif self.mode == BindingMode.EPHEMERAL:
            if not self.source or not self.is_materialized:
                return []  # needs a scratch area first
            if self.is_file:
                return ["--bind", self.upper_dir, self.dest]
            return ["--overlay-src", self.source, "--overlay", self.upper_dir, self.work_dir, self.dest]
        return []


def is_within(path: str, ancestor: str) -> bool:
    """True if path equals ancestor or is nested beneath it."""
    return PurePosixPath(path).is_relative_to(PurePosixPath(ancestor))
