"""Overlay materializer: scratch upper/work directories for ephemeral bindings.

Each invocation owns one root created with mkdtemp, so concurrent
invocations never share scratch space. Everything an invocation writes
outside persistent bindings (overlay layers, --clone checkouts) lives under
that root and is removed when the ScratchManager exits.
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from constants import SCRATCH_DIR_ENV, SCRATCH_PREFIX
from errors import JailResourceError
from model import Binding, BindingMode

log = logging.getLogger(__name__)

# Written into each scratch root so --clean can skip live invocations
OWNER_FILE = "owner.pid"


def get_scratch_base() -> Path:
    """Directory that holds scratch roots ($AJAIL_SCRATCH_DIR or the system temp dir)."""
    return Path(os.environ.get(SCRATCH_DIR_ENV) or tempfile.gettempdir())


def normalize_dest_path(dest: str) -> str:
    """Turn a jail destination into a directory name.

    '/home/user/project' becomes 'home-user-project' and '/' becomes 'root'.
    Not reversible; callers prefix an index to keep names unique.
    """
    normalized = dest.strip("/").replace("/", "-")
    return normalized if normalized else "root"


@dataclass(frozen=True)
class ScratchArea:
    """Upper and work directories backing one ephemeral binding.

    For a file binding both name the private copy of the file.
    """

    dest: str
    upper: Path
    work: Path


class ScratchManager:
    """Owns the scratch root of one invocation.

    Use as a context manager; the root is created on first use and removed
    on exit whatever happened inside the block.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        self.base_dir = base_dir or get_scratch_base()
        self.root: Path | None = None
        self.areas: list[ScratchArea] = []
        self._released = False

    def __enter__(self) -> ScratchManager:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            self.release()
        except JailResourceError as e:
            # Reported only: the exit status is already decided
            log.error("%s: %s", e.title, "; ".join(e.details))
            print(f"Warning: {e.title}", file=sys.stderr)
            for detail in e.details:
                print(f"  {detail}", file=sys.stderr)
        return False

    def ensure_root(self) -> Path:
        """Create the invocation root if it does not exist yet."""
        if self._released:
            raise JailResourceError("Scratch area already released")
        if self.root is None:
            try:
                self.base_dir.mkdir(parents=True, exist_ok=True)
                self.root = Path(tempfile.mkdtemp(prefix=SCRATCH_PREFIX, dir=self.base_dir))
                (self.root / OWNER_FILE).write_text(f"{os.getpid()}\n")
            except OSError as e:
                raise JailResourceError(f"Cannot create scratch area in {self.base_dir}", str(e)) from e
            log.info("Scratch root: %s", self.root)
        return self.root

    def allocate(self, binding: Binding) -> ScratchArea:
        """Create upper/work directories for an ephemeral binding and record them on it."""
        root = self.ensure_root()
        area_dir = root / f"{len(self.areas)}-{normalize_dest_path(binding.dest)}"
        if binding.is_file:
            return self._allocate_file(binding, area_dir)

        area = ScratchArea(dest=binding.dest, upper=area_dir / "upper", work=area_dir / "work")
        try:
            area.upper.mkdir(parents=True)
            area.work.mkdir()
        except OSError as e:
            raise JailResourceError(f"Cannot create overlay directories for {binding.dest}", str(e)) from e

        binding.upper_dir = str(area.upper)
        binding.work_dir = str(area.work)
        self.areas.append(area)
        log.debug("Allocated %s for %s", area_dir, binding.dest)
        return area

    def _allocate_file(self, binding: Binding, area_dir: Path) -> ScratchArea:
        # Overlayfs only stacks directories; a file gets a private copy instead
        copy = area_dir / "copy"
        try:
            area_dir.mkdir()
            shutil.copy2(binding.source, copy)
        except OSError as e:
            raise JailResourceError(f"Cannot copy {binding.source} into scratch", str(e)) from e

        area = ScratchArea(dest=binding.dest, upper=copy, work=copy)
        binding.upper_dir = str(copy)
        self.areas.append(area)
        log.debug("Copied %s to %s for %s", binding.source, copy, binding.dest)
        return area

    def materialize(self, bindings: Iterable[Binding]) -> list[ScratchArea]:
        """Allocate scratch for every ephemeral binding; others pass through."""
        return [
            self.allocate(binding)
            for binding in bindings
            if binding.mode == BindingMode.EPHEMERAL and not binding.is_materialized
        ]

    def release(self) -> None:
        """Remove the scratch root. Safe to call more than once.

        Raises:
            JailResourceError: if the root could not be removed
        """
        if self._released:
            return
        self._released = True
        if self.root is None or not self.root.exists():
            return

        log.info("Removing scratch root %s", self.root)
        _fix_overlay_workdir_permissions(self.root)
        try:
            shutil.rmtree(self.root)
        except OSError as e:
            raise JailResourceError(f"Failed to remove scratch area {self.root}", str(e)) from e


def _fix_overlay_workdir_permissions(path: Path) -> None:
    """Restore owner permissions before deletion.

    Overlayfs leaves work/work at mode 000, and the jailed program may have
    created directories without write permission. The invoking user owns
    all of them, so chmod is enough.
    """
    for root, dirs, _files in os.walk(path, topdown=True):
        for d in dirs:
            dir_path = Path(root) / d
            try:
                current_mode = dir_path.lstat().st_mode
                if current_mode & 0o700 != 0o700:
                    os.chmod(dir_path, current_mode | 0o700)
            except OSError as e:
                log.debug("Cannot fix permissions on %s: %s", dir_path, e)


def _owner_alive(root: Path) -> bool:
    try:
        pid = int((root / OWNER_FILE).read_text().strip())
    except (OSError, ValueError):
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def clean_stale_scratch(base_dir: Path | None = None) -> int:
    """Remove scratch roots left behind by invocations that no longer run.

    Returns:
        Number of directories that could not be removed
    """
    base = base_dir or get_scratch_base()
    removed = 0
    errors = 0

    for item in sorted(base.glob(f"{SCRATCH_PREFIX}*")):
        if not item.is_dir() or _owner_alive(item):
            continue
        try:
            _fix_overlay_workdir_permissions(item)
            shutil.rmtree(item)
            print(f"  Removed: {item}")
            removed += 1
        except OSError as e:
            print(f"  Error removing {item}: {e}")
            errors += 1

    if removed == 0 and errors == 0:
        print("No leftover scratch directories found.")
    else:
        print(f"\nCleaned up {removed} scratch director{'y' if removed == 1 else 'ies'}.")
        if errors:
            print(f"Failed to remove {errors} director{'y' if errors == 1 else 'ies'}.")
    return errors
