"""Command execution for jailed processes."""

from __future__ import annotations

import logging
import shutil
import signal
import subprocess
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from errors import JailInterrupted, SandboxUnavailableError

if TYPE_CHECKING:
    from model import JailConfig

log = logging.getLogger(__name__)

# Passed on to bwrap, which passes them on to the jailed program
FORWARDED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP, signal.SIGQUIT)


def find_bwrap() -> str:
    """Absolute path of bwrap on PATH.

    Raises:
        SandboxUnavailableError: bwrap is not installed
    """
    path = shutil.which("bwrap")
    if not path:
        raise SandboxUnavailableError(
            "bwrap not found",
            "ajail needs bubblewrap on PATH.",
            "Install it with your package manager (e.g. apt install bubblewrap).",
        )
    return path


@contextmanager
def interrupt_on_signals() -> Iterator[None]:
    """Turn termination signals into JailInterrupted while setting up a jail.

    The exception unwinds the caller's scratch manager, so scratch areas
    and clones are removed even if the invocation is killed mid-setup.
    Previous handlers are restored on exit.
    """

    def _interrupt(signum, frame) -> None:
        raise JailInterrupted(signum)

    previous = {sig: signal.signal(sig, _interrupt) for sig in FORWARDED_SIGNALS}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def exit_status(returncode: int) -> int:
    """Shell-style exit status: 128 + N for a child killed by signal N."""
    if returncode < 0:
        return 128 - returncode
    return returncode


def wait_forwarding_signals(proc: subprocess.Popen) -> int:
    """Wait for proc, relaying termination signals to it.

    Previous handlers are restored before returning.

    Returns:
        The child's exit status (see exit_status)
    """

    def _forward(signum, frame) -> None:
        if proc.poll() is None:
            log.info("Forwarding signal %d to pid %d", signum, proc.pid)
            proc.send_signal(signum)

    previous = {sig: signal.signal(sig, _forward) for sig in FORWARDED_SIGNALS}
    try:
        returncode = proc.wait()
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    log.info("Child %d exited with %d", proc.pid, returncode)
    return exit_status(returncode)


def execute_jail(config: JailConfig) -> int:
    """Run bwrap for a composed jail and wait for it.

    Scratch areas belong to the caller, which releases them after this
    returns or raises.

    Returns:
        Exit status of the jailed command

    Raises:
        SandboxUnavailableError: bwrap missing or could not be started
    """
    from commandoutput import print_execution_header

    bwrap = find_bwrap()
    cmd = config.build_command()
    log.info("Executing: %s", " ".join(cmd))

    if not config.quiet:
        print_execution_header(cmd, config)

    try:
        proc = subprocess.Popen([bwrap, *cmd[1:]])
    except OSError as e:
        raise SandboxUnavailableError(f"Failed to start {bwrap}", str(e)) from e

    try:
        return wait_forwarding_signals(proc)
    except JailInterrupted:
        # Signal landed before forwarding was in place
        proc.kill()
        proc.wait()
        raise
