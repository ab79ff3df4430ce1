"""Public package entrypoint for pkgforge."""

from ._version import __version__
from .config import BuildConfig, PackageOptionSet, PackageOverrides
from .definitions import find_definition, list_definitions, load_definition, parse_definition
from .errors import BuildError, DefinitionError, FetchError, PkgforgeError
from .installer import Installer, Phase
from .models import (
    Definition,
    GitRef,
    InstallResult,
    PackageOption,
    PackageRequest,
    SvnRef,
    Tarball,
)

__all__ = [
    "BuildConfig",
    "BuildError",
    "Definition",
    "DefinitionError",
    "FetchError",
    "GitRef",
    "InstallResult",
    "Installer",
    "PackageOption",
    "PackageOptionSet",
    "PackageOverrides",
    "PackageRequest",
    "Phase",
    "PkgforgeError",
    "SvnRef",
    "Tarball",
    "__version__",
    "find_definition",
    "list_definitions",
    "load_definition",
    "parse_definition",
]
