"""Git checkout with an optional bare mirror kept in the cache."""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from pkgforge.cache import cache_key
from pkgforge.errors import VcsClientMissing, VcsCommandFailed
from pkgforge.fetch.base import FetchContext
from pkgforge.models import GitRef

_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}


@dataclass(slots=True)
class GitFetcher:
    context: FetchContext

    def fetch(self, source: GitRef, dest_name: str, build_dir: Path) -> Path:
        git = self.context.runner.which("git")
        if git is None:
            raise VcsClientMissing(
                "Git is required to fetch this package.",
                hint="Install git and ensure it is on PATH.",
                context={"package": dest_name, "url": source.url},
            )
        self.context.reporter.progress(f"Cloning {source.url}...")

        remote = source.url
        mirror = self.context.cache.git_mirror(cache_key(source))
        if mirror is not None:
            self._update_mirror(git, source, mirror)
            remote = mirror.resolve().as_uri()

        target = build_dir / dest_name
        if target.exists():
            self._git(git, ["fetch", "--depth", "1", "origin", f"+{source.ref}"], cwd=target)
            self._git(git, ["checkout", "-q", "-f", "-B", source.ref, "FETCH_HEAD"], cwd=target)
        else:
            self._git(
                git,
                [
                    "clone",
                    "--depth",
                    "1",
                    "--single-branch",
                    "--branch",
                    source.ref,
                    remote,
                    str(target),
                ],
                cwd=build_dir,
            )
        self.context.logger.log(
            operation="fetch_git",
            package=dest_name,
            message="Checked out git ref.",
            extra={"url": source.url, "ref": source.ref, "mirror": str(mirror or "")},
        )
        return target

    def _update_mirror(self, git: str, source: GitRef, mirror: Path) -> None:
        if mirror.exists():
            self._git(
                git,
                ["fetch", "--force", source.url, f"+{source.ref}:{source.ref}"],
                cwd=mirror,
            )
            return
        staging = Path(tempfile.mkdtemp(prefix=f".{mirror.name}.tmp-", dir=mirror.parent))
        try:
            self._git(git, ["clone", "--bare", "--branch", source.ref, source.url, str(staging)])
            try:
                staging.rename(mirror)
            except OSError:
                # Another run populated the mirror first; keep theirs.
                if not mirror.exists():
                    raise
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

    def _git(self, git: str, argv: list[str], cwd: Path | None = None) -> None:
        status = self.context.runner.run([git, *argv], cwd=cwd, env=_GIT_ENV)
        if status != 0:
            raise VcsCommandFailed(
                "Git command failed.",
                hint="Inspect repository/ref inputs and the run log.",
                context={
                    "operation": "fetch_git",
                    "argv": " ".join(["git", *argv]),
                    "returncode": str(status),
                },
            )
