"""Exception hierarchy for ajail.

Configuration errors are raised before anything is created on disk or any
child is started. Resource errors may be raised once scratch areas exist;
callers hold the scratch manager in a ``with`` block so cleanup still runs.
"""

from __future__ import annotations

import signal

from constants import EXIT_CONFIG_ERROR, EXIT_RESOURCE_ERROR, EXIT_SANDBOX_MISSING


class JailError(Exception):
    """Base class for errors that abort an invocation."""

    exit_code = 1

    def __init__(self, title: str, *details: str) -> None:
        super().__init__(title)
        self.title = title
        self.details = list(details)


class JailConfigError(JailError):
    """Malformed directive, unknown root fs, unresolvable path, --clone outside a repo."""

    exit_code = EXIT_CONFIG_ERROR


class JailResourceError(JailError):
    """Scratch area, clone or store operation failed."""

    exit_code = EXIT_RESOURCE_ERROR


class SandboxUnavailableError(JailError):
    """bwrap is missing or could not be started."""

    exit_code = EXIT_SANDBOX_MISSING


class JailInterrupted(JailError):
    """A termination signal arrived before the jailed command was started."""

    def __init__(self, signum: int) -> None:
        super().__init__(f"Interrupted by {signal.Signals(signum).name}")
        self.signum = signum
        self.exit_code = 128 + signum
