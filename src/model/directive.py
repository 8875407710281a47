"""Directive model: one parsed user instruction and where it came from."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DirectiveKind(Enum):
    """What a directive asks for."""

    RO_OVERLAY = "ro"  # host path, writes land in a discarded overlay
    PERSISTENT = "rw"  # host path, read/write passthrough
    HIDE = "hide"  # path shows up empty
    MOUNT = "mount"  # arbitrary SRC -> DST
    FS_EDIT = "fs-edit"  # root fs (or a subtree of it) is writable in place
    HOME_EDIT = "home-edit"  # /root inside the root fs is writable in place
    NO_NETWORK = "no-net"
    CLONE = "clone"
    SELECT_FS = "fs"
    QUIET = "quiet"


# Kinds whose path is a host path resolved against the working directory
HOST_PATH_KINDS = frozenset({DirectiveKind.RO_OVERLAY, DirectiveKind.PERSISTENT, DirectiveKind.HIDE})

# Kinds that take part in the mount plan fold
MOUNT_KINDS = HOST_PATH_KINDS | {DirectiveKind.MOUNT, DirectiveKind.FS_EDIT, DirectiveKind.HOME_EDIT}


class DirectiveSource(Enum):
    """Where a directive was read from. ENV directives are applied first."""

    ENV = "env"
    ARG = "arg"


@dataclass(frozen=True)
class Directive:
    """A single directive.

    Directives have no identity beyond their position in the resolved
    sequence; a later directive overrides an earlier one for the paths
    they share.
    """

    kind: DirectiveKind
    path: str = ""  # empty: the working directory (or the whole root fs for FS_EDIT)
    source: DirectiveSource = DirectiveSource.ARG
    dest: str = ""  # MOUNT only
    persistent: bool = False  # MOUNT only
    value: str = ""  # SELECT_FS: name or path
    enabled: bool = True  # NO_NETWORK / CLONE / QUIET toggles

    def __str__(self) -> str:
        flag = f"--{self.kind.value}"
        if self.kind == DirectiveKind.MOUNT:
            spec = f"{self.path},{self.dest}" + (",rw" if self.persistent else "")
            return f"{flag}={spec}"
        if self.kind == DirectiveKind.SELECT_FS:
            return f"{flag}={self.value}"
        if self.kind == DirectiveKind.NO_NETWORK and not self.enabled:
            return "--net"
        if self.path:
            return f"{flag}={self.path}"
        return flag
