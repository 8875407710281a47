"""Bubblewrap command serialization and summarization.

Arguments are produced in named groups so the review screen can color the
command and the summary line of each group the same way.
"""

from __future__ import annotations

import shlex
from typing import TYPE_CHECKING

from constants import DELIVERED_REFS_PREFIX
from environment import environment_to_args
from model import Binding, BindingMode

if TYPE_CHECKING:
    from model import JailConfig


COLORS = [
    "#F472B6",  # pink-400 (warm)
    "#FBBF24",  # amber-400 (warm)
    "#34D399",  # emerald-400 (cool)
    "#A78BFA",  # violet-400 (cool)
]

# Mounted by bwrap itself, on top of the root fs
VFS_ARGS = ["--dev", "/dev", "--proc", "/proc"]


class BubblewrapSerializer:
    """Serializes JailConfig to bwrap command-line arguments."""

    def __init__(self, config: JailConfig) -> None:
        self.config = config

    def get_groups(self) -> list[tuple[str, list[str]]]:
        """Argument groups in command order.

        Raises:
            ValueError: if an ephemeral binding has no scratch area yet
        """
        config = self.config
        for binding in config.all_bindings():
            if binding.mode == BindingMode.EPHEMERAL and not binding.is_materialized:
                raise ValueError(f"Binding {binding.dest} has no scratch area")

        binding_args: list[str] = []
        for binding in config.bindings:
            binding_args.extend(binding.to_args())

        return [
            ("process", ["--die-with-parent"]),
            ("namespaces", self._get_namespace_args()),
            ("identity", config.identity.to_args()),
            ("root", config.root.to_args()),
            ("vfs", list(VFS_ARGS)),
            ("bindings", binding_args),
            ("environment", environment_to_args(config.environment)),
            ("directory", ["--chdir", config.chdir] if config.chdir else []),
        ]

    def serialize(self) -> list[str]:
        """Build the complete bwrap command."""
        args = ["bwrap"]
        for _name, group_args in self.get_groups():
            args.extend(group_args)

        # Command separator and command
        args.append("--")
        args.extend(self.config.command)
        return args

    def _get_namespace_args(self) -> list[str]:
        # --unshare-all includes the network namespace; hand it back unless denied
        args = ["--unshare-all"]
        if self.config.share_net:
            args.append("--share-net")
        return args

    def serialize_colored(self) -> str:
        """Build the command with Rich color markup, rotating colors by group."""
        parts = ["[bold]bwrap[/bold]"]
        color_idx = 0

        for _name, args in self.get_groups():
            if not args:
                continue
            color = COLORS[color_idx % len(COLORS)]
            color_idx += 1
            for arg in args:
                parts.append(f"[{color}]{shlex.quote(arg)}[/]")

        # Separator and command (white, not colored - it's what the user asked to run)
        parts.append("[dim]--[/]")
        for arg in self.config.command:
            parts.append(shlex.quote(arg))

        return " ".join(parts)


def describe_binding(binding: Binding) -> str:
    """One line describing what the jailed program sees at a destination."""
    if binding.mode == BindingMode.HIDDEN:
        return f"{binding.dest}: empty, host contents hidden"
    where = binding.dest if binding.source == binding.dest else f"{binding.source} → {binding.dest}"
    if binding.mode == BindingMode.PERSISTENT:
        return f"{where}: read-write, changes persist"
    return f"{where}: writable, changes discarded on exit"


class BubblewrapSummarizer:
    """Generates human-readable summaries of JailConfig."""

    def __init__(self, config: JailConfig) -> None:
        self.config = config

    def get_group_summaries(self) -> dict[str, list[str]]:
        """Summary lines keyed by the serializer group they describe."""
        config = self.config
        identity = config.identity

        if config.root_mode == BindingMode.PERSISTENT:
            root = f"Root fs: {config.rootfs} (EDITED IN PLACE)"
        else:
            root = f"Root fs: {config.rootfs} (changes discarded on exit)"

        bindings = [f"Mounts ({len(config.bindings)}):"] if config.bindings else ["Mounts: none"]
        bindings.extend(f"  - {describe_binding(b)}" for b in config.bindings)
        if config.clone:
            bindings.append(
                f"  - Working copy: clone of {config.clone.original}; "
                f"pushes are fetched into {DELIVERED_REFS_PREFIX} there on exit"
            )

        return {
            "process": [],
            "namespaces": [f"Network: {'shared with host' if config.share_net else 'none'}"],
            "identity": [
                f"Identity: host uid {identity.host_uid} / gid {identity.host_gid} runs as root "
                f"(uid_map '{identity.uid_map_line()}')"
            ],
            "root": [root],
            "vfs": [],
            "bindings": bindings,
            "environment": [f"Environment: {', '.join(sorted(config.environment)) or 'empty'}"],
            "directory": [f"Directory: {config.chdir}"] if config.chdir else [],
        }

    def summarize(self) -> str:
        """Generate a human-readable explanation of the jail."""
        lines: list[str] = []
        for summary in self.get_group_summaries().values():
            for line in summary:
                # Bullets for top-level items only
                lines.append(line if line[0].isspace() else f"• {line}")
        lines.append(f"• Running: {shlex.join(self.config.command)}")
        return "\n".join(lines)

    def summarize_colored(self) -> str:
        """Generate a colored summary matching command group colors."""
        summaries = self.get_group_summaries()
        lines: list[str] = []
        color_idx = 0

        for name, args in BubblewrapSerializer(self.config).get_groups():
            if not args:
                continue
            color = COLORS[color_idx % len(COLORS)]
            color_idx += 1
            for line in summaries.get(name, []):
                text = line if line[0].isspace() else f"• {line}"
                lines.append(f"[{color}]{text}[/]")

        lines.append(f"• Running: {shlex.join(self.config.command)}")
        return "\n".join(lines)
