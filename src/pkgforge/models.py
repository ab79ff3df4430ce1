"""Core typed dataclasses for source descriptors, requests and results."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit

from pkgforge.errors import DefinitionError, PkgforgeError


@dataclass(frozen=True, slots=True)
class Tarball:
    url: str
    checksum: str = ""

    @classmethod
    def from_url(cls, url: str) -> Tarball:
        """Split an optional ``#<checksum>`` fragment off *url*."""
        if not url:
            raise DefinitionError("Tarball source requires a URL.")
        base, _, checksum = url.partition("#")
        return cls(url=base, checksum=checksum)

    @property
    def filename(self) -> str:
        path = urlsplit(self.url).path
        return path.rstrip("/").rsplit("/", 1)[-1]


@dataclass(frozen=True, slots=True)
class GitRef:
    url: str
    ref: str


@dataclass(frozen=True, slots=True)
class SvnRef:
    url: str
    revision: str


SourceDescriptor = Tarball | GitRef | SvnRef


@dataclass(frozen=True, slots=True)
class PackageRequest:
    """One install call: a package name, where to get it, and its build plan."""

    name: str
    source: SourceDescriptor
    steps: tuple[str, ...] = ()
    condition: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise DefinitionError("Package requests require a non-empty name.")


@dataclass(frozen=True, slots=True)
class PackageOption:
    family: str
    command: str
    args: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class Definition:
    """A parsed build definition: ordered install calls plus their settings."""

    name: str
    requests: tuple[PackageRequest, ...]
    options: tuple[PackageOption, ...] = ()
    prerequisites: tuple[tuple[str, ...], ...] = ()


@dataclass(slots=True)
class InstallResult:
    package: str
    prefix: Path
    log_path: Path
    error: PkgforgeError | None = None
    build_dir: Path | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def exit_code(self) -> int:
        return 0 if self.error is None else 1


__all__ = [
    "Definition",
    "GitRef",
    "InstallResult",
    "PackageOption",
    "PackageRequest",
    "SourceDescriptor",
    "SvnRef",
    "Tarball",
]
