"""Jail configuration: everything the sandbox invoker needs in one place."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from model.binding import Binding, BindingMode
from model.identity import IdentityMapping
from model.rootfs import RootFsReference

if TYPE_CHECKING:
    from clone import CloneSubstitution


@dataclass
class JailConfig:
    """A fully composed jail.

    ``root`` is the binding of the root filesystem at /. ``bindings`` is the
    flattened mount plan, parents before children.
    """

    rootfs: RootFsReference
    root: Binding
    command: list[str] = field(default_factory=list)
    bindings: list[Binding] = field(default_factory=list)
    identity: IdentityMapping = field(default_factory=IdentityMapping.current)
    environment: dict[str, str] = field(default_factory=dict)
    share_net: bool = True
    chdir: str = ""
    quiet: bool = False
    clone: CloneSubstitution | None = None

    @property
    def root_mode(self) -> BindingMode:
        return self.root.mode

    def all_bindings(self) -> list[Binding]:
        """Root binding followed by the mount plan."""
        return [self.root, *self.bindings]

    def build_command(self) -> list[str]:
        """Build the complete bwrap command."""
        from bwrap import BubblewrapSerializer
        return BubblewrapSerializer(self).serialize()

    def get_explanation(self) -> str:
        """Generate a human-readable explanation of the jail."""
        from bwrap import BubblewrapSummarizer
        return BubblewrapSummarizer(self).summarize()
