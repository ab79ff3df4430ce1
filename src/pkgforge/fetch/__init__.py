"""Source acquisition backends and the dispatching fetcher."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pkgforge.checksum import ChecksumVerifier
from pkgforge.errors import DefinitionError
from pkgforge.fetch.base import FetchContext, first_success
from pkgforge.fetch.git import GitFetcher
from pkgforge.fetch.svn import SvnFetcher
from pkgforge.fetch.tarball import TarballFetcher
from pkgforge.models import GitRef, SourceDescriptor, SvnRef, Tarball
from pkgforge.transport import Transport


@dataclass(slots=True)
class Fetcher:
    tarball: TarballFetcher
    git: GitFetcher
    svn: SvnFetcher

    @classmethod
    def create(
        cls,
        context: FetchContext,
        *,
        transport: Transport,
        verifier: ChecksumVerifier,
    ) -> Fetcher:
        return cls(
            tarball=TarballFetcher(context=context, transport=transport, verifier=verifier),
            git=GitFetcher(context=context),
            svn=SvnFetcher(context=context),
        )

    def fetch(self, source: SourceDescriptor, dest_name: str, build_dir: Path) -> Path:
        """Place the source tree for *source* at ``build_dir / dest_name``."""
        backends: dict[type, Callable[[Any, str, Path], Path]] = {
            Tarball: self.tarball.fetch,
            GitRef: self.git.fetch,
            SvnRef: self.svn.fetch,
        }
        backend = backends.get(type(source))
        if backend is None:
            raise DefinitionError(f"Unsupported source descriptor: {type(source).__name__}")
        return backend(source, dest_name, build_dir)


__all__ = [
    "FetchContext",
    "Fetcher",
    "GitFetcher",
    "SvnFetcher",
    "TarballFetcher",
    "first_success",
]
