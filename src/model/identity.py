"""Identity mapping: the invoking user becomes root inside the jail."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class IdentityMapping:
    """Single-entry user namespace mapping (host_uid, host_gid) -> (0, 0).

    This is the whole mapping table. No other identities exist inside the
    jail, so package tools that expect several system users see everything
    owned by root.
    """

    host_uid: int
    host_gid: int

    @classmethod
    def current(cls) -> IdentityMapping:
        """Mapping for the effective uid/gid of this process."""
        return cls(host_uid=os.geteuid(), host_gid=os.getegid())

    def uid_map_line(self) -> str:
        """uid_map entry: inside outside count."""
        return f"0 {self.host_uid} 1"

    def gid_map_line(self) -> str:
        return f"0 {self.host_gid} 1"

    def to_args(self) -> list[str]:
        """Convert to bwrap arguments."""
        return ["--unshare-user", "--uid", "0", "--gid", "0"]
