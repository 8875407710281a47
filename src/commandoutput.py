"""Status output printed before a jailed command runs."""

from __future__ import annotations

import shlex
import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from model import JailConfig


def print_execution_header(cmd: list[str], config: JailConfig) -> None:
    """Print the execution header with command and jail summary.

    Goes to stderr so the jailed program owns stdout.

    Args:
        cmd: The bwrap command to display
        config: The jail being started
    """
    out = sys.stderr
    print("=" * 60, file=out)
    print("Executing:", file=out)
    print(shlex.join(cmd), file=out)
    print(file=out)
    print(config.get_explanation(), file=out)

    # upper dirs are <scratch root>/<n>-<dest>/upper
    scratch = {str(Path(b.upper_dir).parent.parent) for b in config.all_bindings() if b.upper_dir}
    if scratch:
        print("\nDiscarded writes are kept until exit in:", file=out)
        for d in sorted(scratch):
            print(f"  {d}/", file=out)

    print("=" * 60 + "\n", file=out)
