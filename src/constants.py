"""Paths, environment variable names and exit codes shared across ajail."""

from __future__ import annotations

import os
from pathlib import Path

AJAIL_VERSION = "0.3.0"

# Per-user store: ~/.ajail/fs/<name> holds one root filesystem per name
AJAIL_DIR = Path(os.environ.get("AJAIL_DIR", str(Path.home() / ".ajail")))
AJAIL_FS_DIR = AJAIL_DIR / "fs"
DEFAULT_FS_NAME = "default"

# Scratch roots (upper/work layers, clones) live here; default is the system temp dir
SCRATCH_DIR_ENV = "AJAIL_SCRATCH_DIR"
SCRATCH_PREFIX = "ajail-"

# Directives read before the command line, semicolon-delimited
ARGS_ENV = "AJAIL_ARGS"
# Host variables carrying this prefix are passed into the jail, prefix stripped
ENV_PREFIX = "AJAIL_ENV_"

# Inside the jail everyone is root, so home is /root
JAIL_HOME = "/root"
# Where --clone pushes are received inside the jail (a bare staging repository)
UPSTREAM_GIT_DEST = "/run/ajail/upstream.git"
# Branches pushed from a --clone jail land here in the original repository
DELIVERED_REFS_PREFIX = "refs/remotes/ajail/"

EXIT_CONFIG_ERROR = 125
EXIT_RESOURCE_ERROR = 126
EXIT_SANDBOX_MISSING = 127
