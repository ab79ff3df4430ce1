"""Run configuration, per-package overrides and registered package options."""

from __future__ import annotations

import os
import shlex
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal
from urllib.parse import urlsplit

from pkgforge.errors import DefinitionError

IpVersion = Literal["any", "4", "6"]

HTTP_CLIENTS = ("aria2c", "curl", "wget")

_TRUE_VALUES = ("1", "true", "yes", "on")


def package_family(package_name: str) -> str:
    """Return the option family of a package: its name up to the first ``-``."""
    return package_name.split("-", 1)[0].lower()


@dataclass(slots=True)
class PackageOptionSet:
    """Append-only ``(family, command) -> args`` registry for one run."""

    _options: dict[tuple[str, str], list[str]] = field(default_factory=dict)

    def register(self, family: str, command: str, *args: str) -> None:
        key = (package_family(family), command)
        self._options.setdefault(key, []).extend(args)

    def get(self, package_name: str, command: str) -> tuple[str, ...]:
        return tuple(self._options.get((package_family(package_name), command), ()))

    def __len__(self) -> int:
        return len(self._options)


@dataclass(frozen=True, slots=True)
class PackageOverrides:
    """Per-family overrides resolved from ``<FAMILY>_*`` variables."""

    configure: str | None = None
    prefix: Path | None = None
    configure_opts: tuple[str, ...] = ()
    make_opts: tuple[str, ...] = ()
    make_install_opts: tuple[str, ...] = ()
    make_install_target: str = "install"
    cflags: str | None = None


@dataclass(slots=True)
class BuildConfig:
    prefix: Path
    cache_dir: Path | None = None
    mirror_url: str | None = None
    skip_mirror: bool = False
    skip_mirror_hosts: tuple[str, ...] = ()
    http_client: str | None = None
    downloader_opts: dict[str, tuple[str, ...]] = field(default_factory=dict)
    ip_version: IpVersion = "any"
    make: str = "make"
    make_opts: tuple[str, ...] | None = None
    make_install_opts: tuple[str, ...] = ()
    configure_opts: tuple[str, ...] = ()
    jobs: int | None = None
    apply_patch: bool = False
    keep: bool = False
    verbose: bool = False
    tmp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    build_path: Path | None = None
    log_path: Path | None = None
    event_log: Path | None = None
    definition_paths: tuple[Path, ...] = ()
    environ: Mapping[str, str] = field(default_factory=dict)
    overrides: dict[str, PackageOverrides] = field(default_factory=dict)
    package_options: PackageOptionSet = field(default_factory=PackageOptionSet)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        prefix: str | Path,
    ) -> BuildConfig:
        env = dict(os.environ if environ is None else environ)
        http_client = env.get("PKGFORGE_HTTP_CLIENT") or None
        make_opts = env.get("MAKE_OPTS")
        return cls(
            prefix=Path(prefix),
            cache_dir=_optional_path(env.get("PKGFORGE_CACHE_PATH")),
            mirror_url=(env.get("PKGFORGE_MIRROR_URL") or "").rstrip("/") or None,
            skip_mirror=_flag(env.get("PKGFORGE_SKIP_MIRROR")),
            skip_mirror_hosts=tuple(
                host.strip().lower()
                for host in env.get("PKGFORGE_SKIP_MIRROR_HOSTS", "").split(",")
                if host.strip()
            ),
            http_client=http_client,
            downloader_opts={
                "aria2c": _split(env.get("PKGFORGE_ARIA2_OPTS")),
                "curl": _split(env.get("PKGFORGE_CURL_OPTS")),
                "wget": _split(env.get("PKGFORGE_WGET_OPTS")),
            },
            make=env.get("MAKE") or "make",
            make_opts=_split(make_opts) if make_opts is not None else None,
            make_install_opts=_split(env.get("MAKE_INSTALL_OPTS")),
            configure_opts=_split(env.get("CONFIGURE_OPTS")),
            jobs=_jobs(env.get("PKGFORGE_JOBS")),
            keep=_flag(env.get("PKGFORGE_KEEP")),
            verbose=_flag(env.get("PKGFORGE_VERBOSE")),
            tmp_dir=Path(env.get("TMPDIR") or tempfile.gettempdir()),
            build_path=_optional_path(env.get("PKGFORGE_BUILD_PATH")),
            log_path=_optional_path(env.get("PKGFORGE_LOG_PATH")),
            event_log=_optional_path(env.get("PKGFORGE_EVENT_LOG")),
            definition_paths=tuple(
                Path(entry) for entry in env.get("PKGFORGE_DEFINITIONS", "").split(":") if entry
            ),
            environ=env,
        )

    def overrides_for(self, package_name: str) -> PackageOverrides:
        """Explicit overrides win; otherwise read ``<FAMILY>_*`` variables."""
        family = package_family(package_name)
        if family in self.overrides:
            return self.overrides[family]
        var = family.upper().replace(".", "_")
        prefix = self.environ.get(f"{var}_PREFIX_PATH")
        return PackageOverrides(
            configure=self.environ.get(f"{var}_CONFIGURE") or None,
            prefix=Path(prefix) if prefix else None,
            configure_opts=_split(self.environ.get(f"{var}_CONFIGURE_OPTS")),
            make_opts=_split(self.environ.get(f"{var}_MAKE_OPTS")),
            make_install_opts=_split(self.environ.get(f"{var}_MAKE_INSTALL_OPTS")),
            make_install_target=self.environ.get(f"{var}_MAKE_INSTALL_TARGET") or "install",
            cflags=self.environ.get(f"{var}_CFLAGS"),
        )

    def effective_make_opts(self) -> tuple[str, ...]:
        """``MAKE_OPTS`` when set, else a parallel job flag sized to the host."""
        if self.make_opts is not None:
            return self.make_opts
        return ("-j", str(self.jobs or os.cpu_count() or 1))

    def mirror_allowed(self, url: str) -> bool:
        if self.skip_mirror or not self.mirror_url:
            return False
        host = (urlsplit(url).hostname or "").lower()
        return host not in self.skip_mirror_hosts


def _split(value: str | None) -> tuple[str, ...]:
    return tuple(shlex.split(value)) if value else ()


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUE_VALUES


def _jobs(value: str | None) -> int | None:
    if not value:
        return None
    if not value.isdigit() or int(value) < 1:
        raise DefinitionError(
            f"Invalid PKGFORGE_JOBS value `{value}`.",
            hint="Set PKGFORGE_JOBS to a positive integer.",
            context={"PKGFORGE_JOBS": value},
        )
    return int(value)


def _optional_path(value: str | None) -> Path | None:
    return Path(value).expanduser() if value else None


__all__ = [
    "HTTP_CLIENTS",
    "BuildConfig",
    "IpVersion",
    "PackageOptionSet",
    "PackageOverrides",
    "package_family",
]
