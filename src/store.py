"""Root filesystem store: named base trees under ~/.ajail/fs."""

from __future__ import annotations

import logging
import re
import shutil
import sys
from pathlib import Path

from constants import AJAIL_FS_DIR, DEFAULT_FS_NAME
from errors import JailConfigError, JailResourceError
from model.rootfs import RootFsReference, looks_like_path

log = logging.getLogger(__name__)

# Store names become directory names
VALID_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def get_fs_dir(name: str) -> Path:
    """Get the store directory for a root fs name.

    Returns:
        Path to ~/.ajail/fs/{name}/
    """
    return AJAIL_FS_DIR / name


def resolve_rootfs(value: str | None) -> RootFsReference:
    """Resolve an --fs value (or the default) to a root fs.

    Args:
        value: Store name, directory path, or None for the default name

    Raises:
        JailConfigError: if the root fs does not exist
    """
    value = value or DEFAULT_FS_NAME

    if looks_like_path(value):
        path = Path(value).expanduser().resolve()
        if not path.is_dir():
            raise JailConfigError(
                f"Root filesystem not found: {path}",
                "The --fs path must be an existing directory.",
            )
        return RootFsReference(name=str(path), path=path)

    if not VALID_NAME.match(value):
        raise JailConfigError(f"Invalid root filesystem name: {value!r}")

    path = get_fs_dir(value)
    if not path.is_dir():
        available = list_filesystem_names()
        hint = f"Available: {', '.join(available)}" if available else "The store is empty."
        raise JailConfigError(
            f"Root filesystem '{value}' not found in {AJAIL_FS_DIR}",
            hint,
            "Create one with a bootstrap script, then: ajail --import NAME PATH",
        )
    log.debug("Resolved root fs %s -> %s", value, path)
    return RootFsReference(name=value, path=path)


def list_filesystem_names() -> list[str]:
    """Names of all root filesystems in the store, sorted."""
    if not AJAIL_FS_DIR.exists():
        return []
    return sorted(d.name for d in AJAIL_FS_DIR.iterdir() if d.is_dir() and not d.name.startswith("."))


def list_filesystems() -> None:
    """Print the root filesystems in the store."""
    names = list_filesystem_names()

    if not names:
        print("No root filesystems found")
        print(f"(root filesystems are stored in {AJAIL_FS_DIR})")
        return

    print("Root filesystems:")
    for name in names:
        marker = " (default)" if name == DEFAULT_FS_NAME else ""
        print(f"  {name}{marker}")
    print(f"\nStore directory: {AJAIL_FS_DIR}")


def import_filesystem(name: str, source: Path) -> Path:
    """Copy a prepared root fs tree into the store.

    The tree is expected to be owned by the invoking user (the bootstrap
    scripts chown it with -u). Symlinks are copied as symlinks.

    Raises:
        JailConfigError: invalid name, existing name, or missing source
        JailResourceError: copy failed (partial copies are removed)
    """
    if not VALID_NAME.match(name):
        raise JailConfigError(f"Invalid root filesystem name: {name!r}")

    source = source.expanduser().resolve()
    if not source.is_dir():
        raise JailConfigError(f"Import source is not a directory: {source}")

    dest = get_fs_dir(name)
    if dest.exists():
        raise JailConfigError(
            f"Root filesystem '{name}' already exists",
            f"Remove {dest} first to replace it.",
        )

    AJAIL_FS_DIR.mkdir(parents=True, exist_ok=True)
    log.info("Importing %s into %s", source, dest)
    try:
        shutil.copytree(source, dest, symlinks=True)
    except (OSError, shutil.Error) as e:
        shutil.rmtree(dest, ignore_errors=True)
        raise JailResourceError(f"Import of '{name}' failed", str(e)) from e

    print(f"Imported: {dest}", file=sys.stderr)
    return dest
