"""Repository clone resolver for --clone.

The jail works on a full, private clone of the current repository instead
of the repository itself. The clone keeps the original path as its origin
URL for fetches. Pushes go to an empty bare staging repository in scratch,
which the jail sees at UPSTREAM_GIT_DEST. Nothing of the original's git
directory is mounted.

Once the jailed command exits, ajail fetches whatever was pushed into the
staging repository from the original's side, into
``refs/remotes/ajail/<branch>``. The transfer runs on the host with the
original's own configuration, and it never touches the original's working
tree or its local branches.
"""

from __future__ import annotations

import dataclasses
import logging
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from constants import DELIVERED_REFS_PREFIX, UPSTREAM_GIT_DEST
from errors import JailConfigError, JailResourceError
from model import Binding, BindingMode
from plan import MountPlan, flatten

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CloneSubstitution:
    """Where the clone lives and where its pushes are staged."""

    original: Path
    clone: Path
    staging: Path  # bare repository receiving pushes from inside the jail
    upstream_dest: str = UPSTREAM_GIT_DEST


def is_repository_root(path: Path) -> bool:
    """True if path is the top of a git working tree (.git dir or gitfile)."""
    return (path / ".git").exists()


def require_repository_root(path: Path) -> None:
    """Raise JailConfigError unless path is a repository root."""
    if not is_repository_root(path):
        raise JailConfigError(
            f"--clone requires a git repository root: {path}",
            "Run ajail from the top of the working tree, or drop --clone.",
        )


def check_clone_plan(plan: MountPlan) -> None:
    """Raise JailConfigError if the plan leaves no place to mount the clone."""
    cwd_binding = plan.cwd_binding
    if cwd_binding is not None and cwd_binding.mode == BindingMode.HIDDEN:
        raise JailConfigError(
            "--clone conflicts with hiding the working directory",
            f"Remove --hide for {plan.cwd}.",
        )


def _git(*args: str, cwd: Path | None = None) -> str:
    """Run git and return stdout.

    Raises:
        JailResourceError: git missing or exited non-zero
    """
    if not shutil.which("git"):
        raise JailResourceError("git not found", "--clone needs git installed on the host.")
    cmd = ["git", *args]
    log.debug("Running: %s", " ".join(cmd))
    result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True)
    if result.returncode != 0:
        raise JailResourceError(
            f"git {args[0]} failed (exit {result.returncode})",
            *result.stderr.strip().splitlines(),
        )
    return result.stdout.strip()


def resolve_clone(cwd: Path, scratch_root: Path) -> CloneSubstitution:
    """Clone the repository at cwd into the scratch root.

    Args:
        cwd: Working directory; must be a repository root
        scratch_root: Invocation scratch root (removed on exit)

    Raises:
        JailConfigError: cwd is not a repository root
        JailResourceError: clone failed
    """
    require_repository_root(cwd)
    dest = scratch_root / "clone" / cwd.name
    staging = scratch_root / "upstream.git"

    log.info("Cloning %s into %s", cwd, dest)
    _git("clone", "--no-hardlinks", "--quiet", str(cwd), str(dest))
    _git("init", "--bare", "--quiet", str(staging))
    _git("config", "remote.origin.pushurl", UPSTREAM_GIT_DEST, cwd=dest)

    return CloneSubstitution(original=cwd, clone=dest, staging=staging)


def apply_clone(plan: MountPlan, substitution: CloneSubstitution) -> MountPlan:
    """Mount the clone at the working directory and the staging repository for pushes.

    The clone is already private and transient, so it is bound read/write.
    Bindings nested under the working directory keep their own sources.
    """
    check_clone_plan(plan)
    cwd_binding = plan.cwd_binding

    clone_binding = Binding(
        source=str(substitution.clone),
        dest=plan.cwd,
        mode=BindingMode.PERSISTENT,
        origin="cwd",
    )
    if cwd_binding is None:
        # Entries nested under the working directory stay on top of the clone
        table = {b.dest: b for b in plan.bindings}
        table[clone_binding.dest] = clone_binding
        plan = dataclasses.replace(plan, bindings=flatten(table))
    else:
        plan = dataclasses.replace(
            plan,
            bindings=[clone_binding if b is cwd_binding else b for b in plan.bindings],
        )

    upstream = Binding(
        source=str(substitution.staging),
        dest=substitution.upstream_dest,
        mode=BindingMode.PERSISTENT,
        origin="upstream",
    )
    return plan.with_binding(upstream)


def deliver_pushes(substitution: CloneSubstitution) -> None:
    """Fetch branches pushed from the jail into the original repository.

    Runs in the original, so only its configuration and hooks apply; the
    staging repository is just a fetch source. Branches land under
    ``refs/remotes/ajail/``.

    Raises:
        JailResourceError: the fetch failed
    """
    refspec = f"+refs/heads/*:{DELIVERED_REFS_PREFIX}*"
    _git("fetch", "--quiet", "--no-write-fetch-head", str(substitution.staging), refspec, cwd=substitution.original)
    log.info("Fetched pushes from %s into %s", substitution.staging, substitution.original)


def report_pushes(substitution: CloneSubstitution) -> None:
    """deliver_pushes(), reporting a failure on stderr instead of raising.

    The jailed command has already run, so its exit status stands.
    """
    try:
        deliver_pushes(substitution)
    except JailResourceError as e:
        log.error("%s: %s", e.title, "; ".join(e.details))
        print(f"Warning: pushes from the jail were not delivered: {e.title}", file=sys.stderr)
        for detail in e.details:
            print(f"  {detail}", file=sys.stderr)
