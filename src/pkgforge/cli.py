"""Command-line entry point.

Usage:
    pkgforge [-k|--keep] [-v|--verbose] [-p|--patch] [-4|-6] <definition> <prefix>
    pkgforge --definitions
    pkgforge --version
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

from pkgforge._version import __version__
from pkgforge.config import BuildConfig
from pkgforge.definitions import find_definition, list_definitions, load_definition
from pkgforge.errors import DefinitionError, PkgforgeError
from pkgforge.installer import Installer
from pkgforge.observability import Reporter

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pkgforge",
        description="Download, build and install a package from a build definition.",
    )
    parser.add_argument("definition", nargs="?", help="Definition name or path")
    parser.add_argument("prefix", nargs="?", help="Installation prefix")
    parser.add_argument(
        "-k", "--keep", action="store_true", help="Keep the build directory after installing"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Mirror the build log to the terminal"
    )
    parser.add_argument(
        "-p",
        "--patch",
        action="store_true",
        help="Apply a patch read from standard input to the last package",
    )
    ip = parser.add_mutually_exclusive_group()
    ip.add_argument("-4", dest="ip_version", action="store_const", const="4", help="Use IPv4 only")
    ip.add_argument("-6", dest="ip_version", action="store_const", const="6", help="Use IPv6 only")
    parser.add_argument(
        "--definitions", action="store_true", help="List the available definitions and exit"
    )
    parser.add_argument("--version", action="version", version=f"pkgforge {__version__}")
    return parser


def main(argv: Sequence[str] | None = None, *, environ: Mapping[str, str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    reporter = Reporter()
    prefix = Path(args.prefix or ".").expanduser().absolute()
    try:
        config = BuildConfig.from_env(environ, prefix=prefix)
    except DefinitionError as exc:
        reporter.info(f"pkgforge: {exc}")
        return EXIT_USAGE

    if args.definitions:
        for name in list_definitions(config.definition_paths):
            print(name)
        return EXIT_OK
    if not args.definition or not args.prefix:
        parser.print_usage(sys.stderr)
        return EXIT_USAGE

    config.keep = config.keep or args.keep
    config.verbose = config.verbose or args.verbose
    config.apply_patch = args.patch
    if args.ip_version:
        config.ip_version = args.ip_version

    try:
        definition = load_definition(find_definition(args.definition, config.definition_paths))
    except DefinitionError as exc:
        reporter.info(f"pkgforge: {exc}")
        return EXIT_USAGE

    installer = Installer(config, reporter=reporter)
    try:
        results = installer.install_definition(definition)
    except DefinitionError as exc:
        reporter.info(f"pkgforge: {exc}")
        return EXIT_USAGE
    except PkgforgeError as exc:
        reporter.info(f"pkgforge: {exc}")
        return EXIT_FAILURE
    return EXIT_OK if all(result.ok for result in results) else EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
