"""Command-line interface for ajail."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from pathlib import Path

from clone import apply_clone, check_clone_plan, report_pushes, require_repository_root, resolve_clone
from command_execution import execute_jail, interrupt_on_signals
from constants import AJAIL_VERSION
from directives import ParsedArgs, resolve_directives
from environment import build_jail_env
from errors import JailError, JailInterrupted
from model import IdentityMapping, JailConfig, RootFsReference
from overlays import ScratchManager, clean_stale_scratch
from plan import build_mount_plan
from store import import_filesystem, list_filesystems, resolve_rootfs

log = logging.getLogger(__name__)


def _get_log_path() -> Path:
    """Get the log file path using XDG Base Directory spec."""
    xdg_state = os.environ.get("XDG_STATE_HOME", str(Path.home() / ".local" / "state"))
    log_dir = Path(xdg_state) / "ajail"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / "ajail.log"


def setup_logging() -> None:
    """Log to a file so nothing interleaves with the jailed program's output."""
    try:
        filename = str(_get_log_path())
    except OSError:
        # Unwritable state dir: run without a log file
        logging.basicConfig(level=logging.WARNING, handlers=[logging.NullHandler()])
        return
    logging.basicConfig(
        filename=filename,
        level=logging.DEBUG,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )


def print_error_box(title: str, *lines: str) -> None:
    """Print a formatted error box to stderr.

    Args:
        title: The error title (will be prefixed with "Error: ")
        *lines: Additional lines to print in the box
    """
    print("=" * 60, file=sys.stderr)
    print(f"Error: {title}", file=sys.stderr)
    if lines:
        print("", file=sys.stderr)
    for line in lines:
        print(line, file=sys.stderr)
    print("=" * 60, file=sys.stderr)


def needs_shell_wrap(command: list[str]) -> bool:
    """Check if a single-argument command needs to be wrapped in a shell.

    ``ajail -- 'make && make test'`` arrives as one argument containing
    shell metacharacters.
    """
    shell_chars = ["|", "&&", "||", ";", ">", "<", "$(", "`", " "]
    return len(command) == 1 and any(c in command[0] for c in shell_chars)


def default_command(rootfs: RootFsReference) -> list[str]:
    """Login shell of the root fs: bash if present, else sh."""
    if rootfs.has_file("bin/bash"):
        return ["/bin/bash", "-l"]
    return ["/bin/sh", "-l"]


def build_jail_config(
    args: ParsedArgs,
    environ: Mapping[str, str],
    cwd: Path,
    scratch: ScratchManager,
) -> JailConfig:
    """Compose the jail for an invocation.

    Configuration is validated before the scratch manager is touched; only
    --clone and overlay materialization create anything on disk.
    """
    rootfs = resolve_rootfs(args.fs_value)
    plan = build_mount_plan(args.directives, cwd, rootfs)
    if args.clone:
        require_repository_root(cwd)
        check_clone_plan(plan)

    command = list(args.command) or default_command(rootfs)
    if needs_shell_wrap(command):
        command = ["/bin/sh", "-c", command[0]]

    clone = None
    if args.clone:
        clone = resolve_clone(cwd, scratch.ensure_root())
        plan = apply_clone(plan, clone)

    config = JailConfig(
        rootfs=rootfs,
        root=plan.root,
        command=command,
        bindings=plan.bindings,
        identity=IdentityMapping.current(),
        environment=build_jail_env(environ),
        share_net=args.share_net,
        chdir=plan.cwd,
        quiet=args.quiet,
        clone=clone,
    )
    scratch.materialize(config.all_bindings())
    return config


def run(args: ParsedArgs, environ: Mapping[str, str], cwd: Path) -> int:
    """Compose and run one jail.

    Returns:
        Exit status of the jailed command

    Raises:
        JailError: configuration, resource or sandbox failure
    """
    with interrupt_on_signals(), ScratchManager() as scratch:
        config = build_jail_config(args, environ, cwd, scratch)

        if args.review:
            from app import review_plan

            if not review_plan(config):
                print("Cancelled.", file=sys.stderr)
                return 0

        status = execute_jail(config)
        if config.clone:
            report_pushes(config.clone)
        return status


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    setup_logging()
    argv = sys.argv[1:] if argv is None else argv
    log.info("ajail %s: %s", AJAIL_VERSION, argv)

    try:
        args = resolve_directives(os.environ, argv)

        if args.version:
            print(f"ajail {AJAIL_VERSION}")
            sys.exit(0)

        if args.list_fs:
            list_filesystems()
            sys.exit(0)

        if args.import_fs:
            name, path = args.import_fs
            import_filesystem(name, path)
            sys.exit(0)

        if args.clean:
            errors = clean_stale_scratch()
            sys.exit(1 if errors else 0)

        cwd = Path.cwd().resolve()
        exit_code = run(args, os.environ, cwd)
    except JailInterrupted as e:
        log.info("%s", e.title)
        print(e.title, file=sys.stderr)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        sys.exit(130)
    except JailError as e:
        log.error("%s: %s", type(e).__name__, e.title)
        print_error_box(e.title, *e.details)
        sys.exit(e.exit_code)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
