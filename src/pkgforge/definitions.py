"""Build definition files: parsing, lookup and listing.

A definition is a small shell-like file with one call per line::

    # comments are allowed
    package_option ruby configure --with-openssl-dir=/opt/ssl
    require_cc
    install_package "openssl-3.0.13" "https://example.org/openssl.tar.gz#<sha256>" --if is_mac
    install_git "ruby-dev" "https://github.com/ruby/ruby.git" "master" autoconf standard

Lines ending with a backslash continue on the next line.
"""

from __future__ import annotations

import shlex
import sys
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path

from pkgforge.build.steps import BuildPlan
from pkgforge.errors import DefinitionError, UnknownBuildStep
from pkgforge.models import (
    Definition,
    GitRef,
    PackageOption,
    PackageRequest,
    SourceDescriptor,
    SvnRef,
    Tarball,
)

Predicate = Callable[[], bool]

DEFAULT_PREDICATES: dict[str, Predicate] = {
    "always": lambda: True,
    "never": lambda: False,
    "is_linux": lambda: sys.platform.startswith("linux"),
    "is_mac": lambda: sys.platform == "darwin",
    "is_freebsd": lambda: sys.platform.startswith("freebsd"),
}

_INSTALL_ARITY = {"install_package": 2, "install_git": 3, "install_svn": 3}


def parse_definition(
    text: str,
    *,
    name: str = "<definition>",
    predicates: Mapping[str, Predicate] = DEFAULT_PREDICATES,
) -> Definition:
    requests: list[PackageRequest] = []
    options: list[PackageOption] = []
    prerequisites: list[tuple[str, ...]] = []

    for lineno, line in _logical_lines(text):
        try:
            tokens = shlex.split(line, comments=True)
        except ValueError as exc:
            raise _error(name, lineno, f"Cannot parse line: {exc}.") from exc
        if not tokens:
            continue
        command, args = tokens[0], tokens[1:]
        if command in _INSTALL_ARITY:
            request = _parse_install(
                command, args, name=name, lineno=lineno, predicates=predicates
            )
            requests.append(request)
        elif command == "package_option":
            if len(args) < 3:
                raise _error(
                    name, lineno, "package_option requires a family, a command and arguments."
                )
            options.append(PackageOption(family=args[0], command=args[1], args=tuple(args[2:])))
        elif command.startswith("require_"):
            prerequisites.append((command, *args))
        else:
            raise _error(name, lineno, f"Unknown definition command `{command}`.")

    if not requests:
        raise DefinitionError(
            "Definition does not install any package.",
            context={"definition": name},
        )
    return Definition(
        name=name,
        requests=tuple(requests),
        options=tuple(options),
        prerequisites=tuple(prerequisites),
    )


def load_definition(
    path: Path,
    *,
    predicates: Mapping[str, Predicate] = DEFAULT_PREDICATES,
) -> Definition:
    return parse_definition(path.read_text(encoding="utf-8"), name=path.name, predicates=predicates)


def find_definition(name: str, search_path: Sequence[Path]) -> Path:
    """Resolve *name* as a file path first, then against *search_path*."""
    candidate = Path(name)
    if candidate.is_file():
        return candidate
    if candidate.name == name:
        for directory in search_path:
            path = directory / name
            if path.is_file():
                return path
    raise DefinitionError(
        f"Definition not found: {name}",
        hint="Run with --definitions to list the available definitions.",
        context={"search_path": ":".join(str(path) for path in search_path)},
    )


def list_definitions(search_path: Iterable[Path]) -> list[str]:
    names: set[str] = set()
    for directory in search_path:
        if not directory.is_dir():
            continue
        names.update(
            entry.name
            for entry in directory.iterdir()
            if entry.is_file() and not entry.name.startswith(".")
        )
    return sorted(names)


def _parse_install(
    command: str,
    args: list[str],
    *,
    name: str,
    lineno: int,
    predicates: Mapping[str, Predicate],
) -> PackageRequest:
    condition: str | None = None
    if "--if" in args:
        index = args.index("--if")
        if index != len(args) - 2:
            raise _error(name, lineno, "--if must be the last option and name one predicate.")
        condition = args[index + 1]
        if condition not in predicates:
            raise _error(name, lineno, f"Unknown predicate `{condition}`.")
        args = args[:index]

    arity = _INSTALL_ARITY[command]
    if len(args) < arity:
        raise _error(name, lineno, f"{command} requires at least {arity} arguments.")
    package, location, rest = args[0], args[1], args[2:]
    source: SourceDescriptor
    if command == "install_package":
        source = Tarball.from_url(location)
    elif command == "install_git":
        source = GitRef(url=location, ref=rest[0])
        rest = rest[1:]
    else:
        source = SvnRef(url=location, revision=rest[0])
        rest = rest[1:]
    try:
        BuildPlan.resolve(rest)
    except UnknownBuildStep as exc:
        raise _error(name, lineno, str(exc.args[0])) from exc
    return PackageRequest(name=package, source=source, steps=tuple(rest), condition=condition)


def _logical_lines(text: str) -> Iterable[tuple[int, str]]:
    pending: list[str] = []
    start = 0
    for lineno, raw in enumerate(text.splitlines(), start=1):
        if not pending:
            start = lineno
        if raw.endswith("\\"):
            pending.append(raw[:-1])
            continue
        pending.append(raw)
        yield start, " ".join(pending)
        pending = []
    if pending:
        yield start, " ".join(pending)


def _error(definition: str, lineno: int, message: str) -> DefinitionError:
    return DefinitionError(message, context={"definition": definition, "line": str(lineno)})


__all__ = [
    "DEFAULT_PREDICATES",
    "Predicate",
    "find_definition",
    "list_definitions",
    "load_definition",
    "parse_definition",
]
