"""Environment variable filtering for the jail."""

from __future__ import annotations

from collections.abc import Mapping

from constants import ENV_PREFIX, JAIL_HOME

DEFAULT_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"

# Enough to run a login shell
BASELINE_ENV: dict[str, str] = {
    "PATH": DEFAULT_PATH,
    "HOME": JAIL_HOME,
    "USER": "root",
    "LOGNAME": "root",
    "SHELL": "/bin/sh",
    "LANG": "C.UTF-8",
}

DEFAULT_TERM = "xterm"


def build_jail_env(host_env: Mapping[str, str]) -> dict[str, str]:
    """Build the variable set passed into the jail.

    Only the baseline and prefixed host variables get in; the prefix is
    stripped, so AJAIL_ENV_PATH=/x becomes PATH=/x and overrides the
    baseline. Every other host variable is dropped.

    Args:
        host_env: Host environment (usually os.environ)

    Returns:
        Dict of variables for the jail
    """
    env = dict(BASELINE_ENV)
    env["TERM"] = host_env.get("TERM") or DEFAULT_TERM

    for name, value in host_env.items():
        if not name.startswith(ENV_PREFIX):
            continue
        stripped = name[len(ENV_PREFIX):]
        if stripped:
            env[stripped] = value

    return env


def environment_to_args(env: Mapping[str, str]) -> list[str]:
    """Convert a jail environment to bwrap arguments.

    Starts from --clearenv so nothing from the host leaks through bwrap.
    """
    args = ["--clearenv"]
    for name in sorted(env):
        args.extend(["--setenv", name, env[name]])
    return args
