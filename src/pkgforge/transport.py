"""HTTP transport over whichever command-line downloader the host provides."""

from __future__ import annotations

import os
import shutil
import sys
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Protocol

from pkgforge.config import HTTP_CLIENTS, BuildConfig, IpVersion
from pkgforge.errors import DownloadFailed, NoTransportAvailable
from pkgforge.observability import StructuredLogger
from pkgforge.runner import Runner


class Transport(Protocol):
    def head(self, url: str) -> None:
        """Probe *url* without downloading it."""

    def get(self, url: str, dest: Path | None = None) -> None:
        """Download *url* to *dest*, or to standard output when *dest* is ``None``."""


class HttpClient(Protocol):
    name: str

    def head_argv(self, url: str) -> list[str]:
        """Return the command probing *url*."""

    def get_argv(self, url: str, dest: Path) -> list[str]:
        """Return the command downloading *url* into *dest*."""


@dataclass(frozen=True, slots=True)
class Aria2cClient:
    name: str = "aria2c"
    options: tuple[str, ...] = ()
    ip_version: IpVersion = "any"

    def head_argv(self, url: str) -> list[str]:
        return [self.name, "--dry-run", "--no-conf=true", *self._ip_flags(), *self.options, url]

    def get_argv(self, url: str, dest: Path) -> list[str]:
        return [
            self.name,
            "--allow-overwrite=true",
            "--no-conf=true",
            f"--dir={dest.parent}",
            f"--out={dest.name}",
            *self._ip_flags(),
            *self.options,
            url,
        ]

    def _ip_flags(self) -> list[str]:
        # aria2c can only disable IPv6; IPv6-only is left to the resolver.
        return ["--disable-ipv6=true"] if self.ip_version == "4" else []


@dataclass(frozen=True, slots=True)
class CurlClient:
    name: str = "curl"
    options: tuple[str, ...] = ()
    ip_version: IpVersion = "any"

    def head_argv(self, url: str) -> list[str]:
        return [self.name, "-q", "-fsSIL", *self._ip_flags(), *self.options, url]

    def get_argv(self, url: str, dest: Path) -> list[str]:
        return [self.name, "-q", "-fsSL", "-o", str(dest), *self._ip_flags(), *self.options, url]

    def _ip_flags(self) -> list[str]:
        return [f"-{self.ip_version}"] if self.ip_version != "any" else []


@dataclass(frozen=True, slots=True)
class WgetClient:
    name: str = "wget"
    options: tuple[str, ...] = ()
    ip_version: IpVersion = "any"

    def head_argv(self, url: str) -> list[str]:
        return [self.name, "-q", "--spider", *self._ip_flags(), *self.options, url]

    def get_argv(self, url: str, dest: Path) -> list[str]:
        return [self.name, "-nv", "-O", str(dest), *self._ip_flags(), *self.options, url]

    def _ip_flags(self) -> list[str]:
        return [f"-{self.ip_version}"] if self.ip_version != "any" else []


_CLIENT_TYPES: dict[str, type[Aria2cClient] | type[CurlClient] | type[WgetClient]] = {
    "aria2c": Aria2cClient,
    "curl": CurlClient,
    "wget": WgetClient,
}


@dataclass(slots=True)
class HttpTransport:
    config: BuildConfig
    runner: Runner
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    stdout: BinaryIO | None = None
    _client: HttpClient | None = field(default=None, init=False, repr=False)

    @property
    def client(self) -> HttpClient:
        if self._client is None:
            self._client = self._select_client()
        return self._client

    def head(self, url: str) -> None:
        argv = self.client.head_argv(url)
        if self.runner.run(argv) != 0:
            raise DownloadFailed(
                "Source is not reachable.",
                context={"operation": "head", "url": url, "client": self.client.name},
            )

    def get(self, url: str, dest: Path | None = None) -> None:
        if dest is None:
            self._get_to_stream(url)
            return
        dest.parent.mkdir(parents=True, exist_ok=True)
        partial = dest.with_name(f".{dest.name}.part-{uuid.uuid4().hex[:8]}")
        try:
            status = self.runner.run(self.client.get_argv(url, partial))
            if status != 0 or not partial.exists():
                raise DownloadFailed(
                    f"Failed to download {dest.name}.",
                    hint="Check network connectivity or configure a mirror.",
                    context={
                        "operation": "get",
                        "url": url,
                        "client": self.client.name,
                        "returncode": str(status),
                    },
                )
            os.replace(partial, dest)
        finally:
            partial.unlink(missing_ok=True)
        self.logger.log(
            operation="http_get",
            package=None,
            message="Downloaded.",
            extra={"url": url, "dest": str(dest), "client": self.client.name},
        )

    def _get_to_stream(self, url: str) -> None:
        stream = self.stdout if self.stdout is not None else sys.stdout.buffer
        with tempfile.TemporaryDirectory(prefix="pkgforge-get-") as scratch:
            body = Path(scratch) / "body"
            self.get(url, body)
            with open(body, "rb") as handle:
                shutil.copyfileobj(handle, stream)
        stream.flush()

    def _select_client(self) -> HttpClient:
        candidates = (self.config.http_client,) if self.config.http_client else HTTP_CLIENTS
        for name in candidates:
            client_type = _CLIENT_TYPES.get(name)
            if client_type is None or self.runner.which(name) is None:
                continue
            client = client_type(
                options=self.config.downloader_opts.get(name, ()),
                ip_version=self.config.ip_version,
            )
            self.logger.log(
                operation="select_http_client",
                package=None,
                message="Selected HTTP client.",
                extra={"client": name},
            )
            return client
        raise NoTransportAvailable(
            "No HTTP client available.",
            hint="Install aria2c, curl or wget.",
            context={"searched": ", ".join(candidates)},
        )


__all__ = [
    "Aria2cClient",
    "CurlClient",
    "HttpClient",
    "HttpTransport",
    "Transport",
    "WgetClient",
]
