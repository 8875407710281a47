"""Directive parsing from AJAIL_ARGS and the command line.

Directives are collected in appearance order by argparse actions, so the
position of each one survives parsing. Environment directives come first,
then command-line directives; later directives override earlier ones.
"""

from __future__ import annotations

import argparse
import shlex
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from constants import ARGS_ENV
from errors import JailConfigError
from model import Directive, DirectiveKind, DirectiveSource


@dataclass
class ParsedArgs:
    """Parsed command-line arguments."""

    directives: tuple[Directive, ...] = ()
    command: list[str] = field(default_factory=list)
    review: bool = False
    list_fs: bool = False
    import_fs: tuple[str, Path] | None = None
    clean: bool = False
    version: bool = False

    def last(self, kind: DirectiveKind) -> Directive | None:
        return last_value(self.directives, kind)

    @property
    def fs_value(self) -> str | None:
        directive = self.last(DirectiveKind.SELECT_FS)
        return directive.value if directive else None

    @property
    def share_net(self) -> bool:
        directive = self.last(DirectiveKind.NO_NETWORK)
        return not (directive and directive.enabled)

    @property
    def clone(self) -> bool:
        directive = self.last(DirectiveKind.CLONE)
        return bool(directive and directive.enabled)

    @property
    def quiet(self) -> bool:
        directive = self.last(DirectiveKind.QUIET)
        return bool(directive and directive.enabled)


def last_value(directives: Sequence[Directive], kind: DirectiveKind) -> Directive | None:
    """Last directive of a kind, or None. Later wins, so arguments beat AJAIL_ARGS."""
    for directive in reversed(directives):
        if directive.kind == kind:
            return directive
    return None


def parse_mount_spec(spec: str, source: DirectiveSource) -> Directive:
    """Parse SRC,DST[,rw] into a MOUNT directive."""
    parts = spec.split(",")
    if len(parts) not in (2, 3) or not parts[0] or not parts[1]:
        raise JailConfigError(
            f"Invalid --mount value: {spec!r}",
            "Expected --mount=SRC,DST or --mount=SRC,DST,rw",
        )
    persistent = False
    if len(parts) == 3:
        if parts[2] not in ("rw", "ro"):
            raise JailConfigError(
                f"Invalid --mount mode: {parts[2]!r}",
                "The optional third field must be 'rw' or 'ro'",
            )
        persistent = parts[2] == "rw"
    return Directive(
        kind=DirectiveKind.MOUNT,
        path=parts[0],
        dest=parts[1],
        persistent=persistent,
        source=source,
    )


class DirectiveAction(argparse.Action):
    """Append a Directive to namespace.directives, keeping appearance order."""

    def __init__(self, option_strings, dest, kind: DirectiveKind, enabled: bool = True, **kwargs) -> None:
        self.kind = kind
        self.enabled = enabled
        super().__init__(option_strings, dest, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None) -> None:
        source = parser.directive_source
        value = values if isinstance(values, str) else ""

        if self.kind == DirectiveKind.MOUNT:
            directive = parse_mount_spec(value, source)
        elif self.kind == DirectiveKind.SELECT_FS:
            if not value:
                raise JailConfigError("--fs requires a name or path")
            directive = Directive(kind=self.kind, value=value, source=source)
        else:
            directive = Directive(kind=self.kind, path=value, enabled=self.enabled, source=source)

        directives = list(getattr(namespace, "directives", None) or [])
        directives.append(directive)
        setattr(namespace, "directives", directives)


class AjailHelpFormatter(argparse.RawDescriptionHelpFormatter):
    """Custom formatter that shows our structured help."""

    def format_help(self) -> str:
        from constants import AJAIL_VERSION, ENV_PREFIX

        lines = [
            "ajail - run a command in an unprivileged jail built on a named root filesystem.",
            f"Version: {AJAIL_VERSION}",
            "",
            "Core:",
            "  ajail [directives] [-- <command> [args...]]",
            "                                        Run command (default: login shell)",
            "",
            "Directives (later ones override earlier ones):",
            "  --fs=NAME|PATH                        Root filesystem (default: 'default')",
            "  --ro[=DIR]                            Bind DIR, writes discarded on exit",
            "  --rw[=DIR]                            Bind DIR read/write, writes persist",
            "  --hide[=PATH]                         Show PATH as an empty directory (or file)",
            "  --mount=SRC,DST[,rw]                  Mount host SRC at jail DST",
            "  --fs-edit[=SUBDIR]                    Make the root fs (or SUBDIR) persistent",
            "  --home-edit                           Make /root in the root fs persistent",
            "  --no-net / --net                      Deny / allow network access",
            "  --clone                               Run in a fresh git clone of the current dir",
            "                                        (pushes land in refs/remotes/ajail/ on exit)",
            "  -q, --quiet                           Suppress status output",
            "",
            "  DIR defaults to the current directory, which is bound with --ro unless",
            "  overridden. Use the --opt=VALUE form for options with optional values.",
            "",
            "Root Filesystems:",
            "  ajail --list-fs                       List root filesystems in the store",
            "  ajail --import NAME PATH              Copy a prepared tree into the store",
            "  ajail --clean                         Remove leftover scratch directories",
            "",
            "Other:",
            "  ajail --review [directives] -- cmd    Review the jail plan before running",
            "",
            "Environment:",
            f"  {ARGS_ENV}='--no-net;--rw=~/.cache'  Directives applied before the command line",
            f"  {ENV_PREFIX}NAME=VALUE               Set NAME=VALUE inside the jail",
            "",
            "Examples:",
            "  ajail --fs=debian -- make test",
            "  ajail --rw --hide=.env -- npm install",
            "  ajail --clone --no-net -- ./run-untrusted-build.sh",
            "  ajail --fs=nix --fs-edit=nix -- nix profile add nixpkgs#git",
        ]
        return "\n".join(lines) + "\n"


class DirectiveParser(argparse.ArgumentParser):
    """ArgumentParser that raises JailConfigError instead of exiting."""

    def __init__(self, *args, directive_source: DirectiveSource = DirectiveSource.ARG, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.directive_source = directive_source

    def error(self, message: str) -> None:
        origin = f"{ARGS_ENV}" if self.directive_source == DirectiveSource.ENV else "command line"
        raise JailConfigError(f"Invalid directive ({origin}): {message}")


def create_parser(source: DirectiveSource = DirectiveSource.ARG) -> DirectiveParser:
    """Create argument parser for ajail."""
    parser = DirectiveParser(
        prog="ajail",
        formatter_class=AjailHelpFormatter,
        add_help=True,
        allow_abbrev=False,
        directive_source=source,
    )
    parser.set_defaults(directives=[])

    def directive(*flags: str, kind: DirectiveKind, value: str = "none", enabled: bool = True) -> None:
        # value: "none" (flag), "optional" (--opt[=VALUE]) or "required"
        kwargs = {}
        if value == "none":
            kwargs["nargs"] = 0
        elif value == "optional":
            kwargs.update(nargs="?", const="")
        parser.add_argument(
            *flags,
            action=DirectiveAction,
            kind=kind,
            enabled=enabled,
            dest="directives",
            help=argparse.SUPPRESS,
            **kwargs,
        )

    directive("-f", "--fs", kind=DirectiveKind.SELECT_FS, value="required")
    directive("--ro", kind=DirectiveKind.RO_OVERLAY, value="optional")
    directive("--rw", kind=DirectiveKind.PERSISTENT, value="optional")
    directive("--hide", kind=DirectiveKind.HIDE, value="optional")
    directive("--mount", kind=DirectiveKind.MOUNT, value="required")
    directive("--fs-edit", kind=DirectiveKind.FS_EDIT, value="optional")
    directive("--home-edit", kind=DirectiveKind.HOME_EDIT)
    directive("--no-net", kind=DirectiveKind.NO_NETWORK)
    directive("--net", kind=DirectiveKind.NO_NETWORK, enabled=False)
    directive("--clone", kind=DirectiveKind.CLONE)
    directive("-q", "--quiet", kind=DirectiveKind.QUIET)

    # Standalone actions
    parser.add_argument("--review", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument("--list-fs", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument("--import", dest="import_fs", nargs=2, metavar=("NAME", "PATH"), help=argparse.SUPPRESS)
    parser.add_argument("--clean", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument("--version", action="store_true", help=argparse.SUPPRESS)

    # Command to run (everything after --)
    parser.add_argument("command", nargs="*", help=argparse.SUPPRESS)

    return parser


def split_env_args(value: str) -> list[str]:
    """Split AJAIL_ARGS into argument tokens.

    Segments are separated by ';' and each segment is shell-split, so
    "--no-net; --rw='my dir'" yields ["--no-net", "--rw=my dir"].
    """
    tokens: list[str] = []
    for segment in value.split(";"):
        segment = segment.strip()
        if not segment:
            continue
        try:
            tokens.extend(shlex.split(segment))
        except ValueError as e:
            raise JailConfigError(f"Invalid {ARGS_ENV} segment: {segment!r}", str(e)) from e
    return tokens


def parse_directives(tokens: Sequence[str], source: DirectiveSource) -> argparse.Namespace:
    """Parse tokens into a namespace whose ``directives`` keeps appearance order."""
    parser = create_parser(source)
    return parser.parse_args(list(tokens))


def resolve_directives(environ: Mapping[str, str], argv: Sequence[str]) -> ParsedArgs:
    """Parse AJAIL_ARGS and argv into one ordered directive sequence.

    Args:
        environ: Environment to read AJAIL_ARGS from
        argv: Command-line arguments (without the program name)

    Returns:
        ParsedArgs with environment directives first, then argument
        directives, each in left-to-right order.
    """
    env_tokens = split_env_args(environ.get(ARGS_ENV, ""))
    env_ns = parse_directives(env_tokens, DirectiveSource.ENV)
    if env_ns.command or env_ns.review or env_ns.list_fs or env_ns.import_fs or env_ns.clean or env_ns.version:
        raise JailConfigError(
            f"{ARGS_ENV} may only contain directives",
            f"Got: {environ.get(ARGS_ENV)}",
        )

    # Handle -- separator: argparse treats it specially, but we want to capture
    # everything after -- as the command, including things that look like flags
    argv = list(argv)
    if "--" in argv:
        sep_idx = argv.index("--")
        ajail_args = argv[:sep_idx]
        command_args = argv[sep_idx + 1 :]
    else:
        ajail_args = argv
        command_args = []

    arg_ns = parse_directives(ajail_args, DirectiveSource.ARG)
    if command_args and arg_ns.command:
        raise JailConfigError(
            "Command given both before and after --",
            f"Unexpected arguments before --: {' '.join(arg_ns.command)}",
        )

    import_fs = None
    if arg_ns.import_fs:
        name, path = arg_ns.import_fs
        import_fs = (name, Path(path))

    return ParsedArgs(
        directives=tuple(env_ns.directives) + tuple(arg_ns.directives),
        command=command_args if command_args else list(arg_ns.command),
        review=arg_ns.review,
        list_fs=arg_ns.list_fs,
        import_fs=import_fs,
        clean=arg_ns.clean,
        version=arg_ns.version,
    )
