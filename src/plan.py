"""Mount plan builder: fold ordered directives into a conflict-free binding list.

The plan is a path-indexed table. Each mount directive inserts one entry;
an insert replaces any earlier entry at the same destination and any earlier
entry nested beneath it, so the last directive touching a path decides its
mode. Earlier ancestors are kept, which lets a later nested directive punch a
hole through them (``--hide=. --rw=build`` exposes build inside a hidden cwd).
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from constants import JAIL_HOME
from errors import JailConfigError
from model import Binding, BindingMode, Directive, DirectiveKind, RootFsReference
from model.binding import is_within
from model.directive import MOUNT_KINDS

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanState:
    """Intermediate fold state. Never mutated; apply_directive returns a new one."""

    table: dict[str, Binding] = field(default_factory=dict)
    root_mode: BindingMode = BindingMode.EPHEMERAL


@dataclass
class MountPlan:
    """Result of folding the directives.

    ``bindings`` is ordered parents first, so a nested mount always lands
    on top of its ancestor.
    """

    root: Binding
    bindings: list[Binding]
    cwd: str

    @property
    def root_mode(self) -> BindingMode:
        return self.root.mode

    @property
    def cwd_binding(self) -> Binding | None:
        """Binding for the working directory, or None if a directive replaced it."""
        return self.find(self.cwd)

    def find(self, dest: str) -> Binding | None:
        for binding in self.bindings:
            if binding.dest == dest:
                return binding
        return None

    def with_binding(self, binding: Binding) -> MountPlan:
        """Copy of this plan with binding inserted under the usual override rules."""
        table = _insert({b.dest: b for b in self.bindings}, binding)
        return dataclasses.replace(self, bindings=flatten(table))


def _insert(table: dict[str, Binding], binding: Binding) -> dict[str, Binding]:
    # Same destination or anything beneath it: the new entry wins
    kept = {dest: b for dest, b in table.items() if not is_within(dest, binding.dest)}
    kept[binding.dest] = binding
    return kept


def flatten(table: dict[str, Binding]) -> list[Binding]:
    """Order bindings by depth, then path, so parents mount before children."""
    return sorted(table.values(), key=lambda b: (b.depth, b.dest))


def resolve_host_path(raw: str, cwd: Path) -> Path:
    """Resolve a directive path on the host.

    Empty means the working directory, ``~`` expands, relative paths are
    taken from cwd.

    Raises:
        JailConfigError: if ``~user`` names an unknown user
    """
    if not raw:
        return cwd
    try:
        path = Path(raw).expanduser()
    except RuntimeError as e:
        raise JailConfigError(f"Cannot resolve path: {raw}", str(e)) from e
    if not path.is_absolute():
        path = cwd / path
    return path.resolve()


def resolve_jail_path(raw: str) -> str:
    """Normalize a destination inside the jail; relative means relative to /."""
    return os.path.normpath("/" + raw.lstrip("/")) if raw else "/"


def _require_exists(path: Path, directive: Directive) -> None:
    if not path.exists():
        raise JailConfigError(
            f"Path not found: {path}",
            f"From directive {directive} ({directive.source.value})",
        )


def _require_not_root(dest: str, directive: Directive) -> None:
    if dest == "/":
        raise JailConfigError(
            f"Cannot mount over / with {directive}",
            "The jail root is the root filesystem; choose it with --fs=NAME|PATH.",
        )


def _binding_for(directive: Directive, cwd: Path, rootfs: RootFsReference) -> Binding:
    """Translate one mount directive into the binding it inserts."""
    kind = directive.kind

    if kind == DirectiveKind.HIDE:
        # Hide targets need not exist on the host
        target = resolve_host_path(directive.path, cwd)
        _require_not_root(str(target), directive)
        is_file = target.exists() and not target.is_dir()
        return Binding(source="", dest=str(target), mode=BindingMode.HIDDEN, is_file=is_file)

    if kind in (DirectiveKind.RO_OVERLAY, DirectiveKind.PERSISTENT):
        path = resolve_host_path(directive.path, cwd)
        _require_exists(path, directive)
        _require_not_root(str(path), directive)
        mode = BindingMode.PERSISTENT if kind == DirectiveKind.PERSISTENT else BindingMode.EPHEMERAL
        origin = "cwd" if path == cwd else "host"
        return Binding(source=str(path), dest=str(path), mode=mode, origin=origin, is_file=not path.is_dir())

    if kind == DirectiveKind.MOUNT:
        source = resolve_host_path(directive.path, cwd)
        _require_exists(source, directive)
        dest = resolve_jail_path(directive.dest)
        _require_not_root(dest, directive)
        mode = BindingMode.PERSISTENT if directive.persistent else BindingMode.EPHEMERAL
        return Binding(source=str(source), dest=dest, mode=mode, origin="mount", is_file=not source.is_dir())

    # FS_EDIT with a subdirectory, or HOME_EDIT
    dest = JAIL_HOME if kind == DirectiveKind.HOME_EDIT else resolve_jail_path(directive.path)
    source = rootfs.subpath(dest)
    if not source.is_dir():
        raise JailConfigError(
            f"{dest} does not exist in root filesystem {rootfs.name}",
            f"From directive {directive} ({directive.source.value})",
        )
    return Binding(source=str(source), dest=dest, mode=BindingMode.PERSISTENT, origin="rootfs")


def apply_directive(state: PlanState, directive: Directive, *, cwd: Path, rootfs: RootFsReference) -> PlanState:
    """Apply one directive to the fold state.

    Non-mount directives (network, clone, fs selection, quiet) leave the
    state untouched.
    """
    if directive.kind not in MOUNT_KINDS:
        return state

    if directive.kind == DirectiveKind.FS_EDIT and not directive.path:
        return dataclasses.replace(state, root_mode=BindingMode.PERSISTENT)

    binding = _binding_for(directive, cwd, rootfs)
    log.debug("Directive %s -> %s", directive, binding)
    return dataclasses.replace(state, table=_insert(state.table, binding))


def initial_state(cwd: Path) -> PlanState:
    """The working directory starts out as an ephemeral overlay."""
    if str(cwd) == "/":
        return PlanState()
    seed = Binding(source=str(cwd), dest=str(cwd), mode=BindingMode.EPHEMERAL, origin="cwd")
    return PlanState(table={seed.dest: seed})


def build_mount_plan(directives: Iterable[Directive], cwd: Path, rootfs: RootFsReference) -> MountPlan:
    """Fold directives, in order, into a MountPlan.

    Args:
        directives: Environment directives followed by argument directives
        cwd: Absolute, resolved working directory
        rootfs: Root filesystem the jail is built on

    Raises:
        JailConfigError: missing source, mount over /, missing root fs subtree
    """
    step = functools.partial(apply_directive, cwd=cwd, rootfs=rootfs)
    state = functools.reduce(step, directives, initial_state(cwd))

    root = Binding(source=str(rootfs.path), dest="/", mode=state.root_mode, origin="rootfs")
    plan = MountPlan(root=root, bindings=flatten(state.table), cwd=str(cwd))
    log.info("Mount plan: root %s, %d bindings", root.mode.value, len(plan.bindings))
    return plan
