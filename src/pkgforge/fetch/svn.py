"""Subversion checkout of a pinned revision."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pkgforge.errors import VcsClientMissing, VcsCommandFailed
from pkgforge.fetch.base import FetchContext
from pkgforge.models import SvnRef

SVN_CLIENTS = ("svn", "svnlite")


@dataclass(slots=True)
class SvnFetcher:
    context: FetchContext

    def fetch(self, source: SvnRef, dest_name: str, build_dir: Path) -> Path:
        client = next(
            (found for name in SVN_CLIENTS if (found := self.context.runner.which(name))),
            None,
        )
        if client is None:
            raise VcsClientMissing(
                "Subversion is required to fetch this package.",
                hint="Install svn (or svnlite) and ensure it is on PATH.",
                context={"package": dest_name, "searched": ", ".join(SVN_CLIENTS)},
            )
        self.context.reporter.progress(f"Checking out {source.url}@{source.revision}...")
        target = build_dir / dest_name
        argv = [client, "co", "-r", source.revision, source.url, str(target)]
        status = self.context.runner.run(argv, cwd=build_dir)
        if status != 0:
            raise VcsCommandFailed(
                "Subversion checkout failed.",
                context={
                    "operation": "fetch_svn",
                    "url": source.url,
                    "revision": source.revision,
                    "returncode": str(status),
                },
            )
        return target
