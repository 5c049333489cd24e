"""Command line interface."""

from __future__ import annotations

import argparse
import subprocess
from importlib.metadata import PackageNotFoundError, version as _dist_version
from pathlib import Path

from .cache import CleanupError, cleanup
from .config import Config, ConfigError
from .log_setup import ensure_log_error, init_logging


class CliError(Exception):
    """Raised when a command fails; the underlying error is its cause."""


def _package_version() -> str:
    try:
        return _dist_version("symbolstash")
    except PackageNotFoundError:
        return "0.0.0"


def git_version() -> str | None:
    """Describe the checked-out commit, or None when git cannot tell."""
    try:
        result = subprocess.run(
            ["git", "describe", "--always", "--dirty=-modified"],
            cwd=Path(__file__).resolve().parent,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def long_version() -> str:
    """Version text including the git commit."""
    return f"version: {_package_version()}\ngit commit: {git_version() or 'unknown'}"


class _VersionAction(argparse.Action):
    def __init__(self, option_strings, dest, long=False, **kwargs):
        super().__init__(option_strings, dest, nargs=0, default=argparse.SUPPRESS, **kwargs)
        self._long = long

    def __call__(self, parser, namespace, values, option_string=None):
        text = long_version() if self._long else f"{parser.prog} {_package_version()}"
        print(text)
        parser.exit()


def _build_parser() -> argparse.ArgumentParser:
    config_options = argparse.ArgumentParser(add_help=False)
    config_options.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        type=Path,
        default=argparse.SUPPRESS,
        help="Path to the configuration file.",
    )
    parser = argparse.ArgumentParser(prog="symbolstash", parents=[config_options])
    parser.add_argument("-V", action=_VersionAction, help="Print version information.")
    parser.add_argument(
        "--version", action=_VersionAction, long=True, help="Print detailed version information."
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)
    commands.add_parser("cleanup", parents=[config_options], help="Clean local caches.")
    return parser


def execute(argv: list[str] | None = None) -> None:
    """Parse arguments and run the chosen command."""
    args = _build_parser().parse_args(argv)
    try:
        config = Config.load(getattr(args, "config", None))
    except ConfigError as exc:
        raise CliError("Failed loading config") from exc

    init_logging(config)

    if args.command == "cleanup":
        try:
            cleanup(config)
        except CleanupError as exc:
            raise CliError("Failed to clean up caches") from exc


def main(argv: list[str] | None = None) -> int:
    """Run the command line application and return its exit status."""
    try:
        execute(argv)
    except CliError as error:
        ensure_log_error(error)
        return 1
    return 0