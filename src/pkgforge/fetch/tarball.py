"""Archive download, verification and extraction."""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from pkgforge.cache import ArchiveFormat, archive_format, cache_key
from pkgforge.checksum import ChecksumVerifier, algorithm_for
from pkgforge.errors import ExtractedDirectoryNotFound, ExtractFailed
from pkgforge.fetch.base import FetchContext, Strategy, first_success
from pkgforge.models import Tarball
from pkgforge.transport import Transport


@dataclass(slots=True)
class TarballFetcher:
    context: FetchContext
    transport: Transport
    verifier: ChecksumVerifier = field(default_factory=ChecksumVerifier)

    def fetch(self, source: Tarball, dest_name: str, build_dir: Path) -> Path:
        if source.checksum:
            algorithm_for(source.checksum)
        key = cache_key(source)
        fmt = archive_format(key)
        archive = self._acquire(source, key, dest_name, build_dir)
        target = self._extract(archive, fmt, dest_name, build_dir)
        if not self.context.config.keep:
            archive.unlink(missing_ok=True)
        return target

    def mirror_url(self, source: Tarball) -> str | None:
        config = self.context.config
        if not source.checksum or not config.mirror_allowed(source.url):
            return None
        return f"{config.mirror_url}/{source.checksum}"

    def _acquire(self, source: Tarball, key: str, dest_name: str, build_dir: Path) -> Path:
        cache = self.context.cache

        def reuse() -> Path | None:
            found = cache.try_reuse(key, build_dir=build_dir, checksum=source.checksum)
            if found is None:
                self.context.reporter.progress(f"Downloading {key}...")
            return found

        strategies: list[Strategy[Path]] = [("reuse", reuse)]
        mirror = self.mirror_url(source)
        if mirror is not None:
            strategies.append(
                (
                    "mirror",
                    lambda: self._download(mirror, key, source.checksum, build_dir, probe=True),
                )
            )
        strategies.append(
            ("origin", lambda: self._download(source.url, key, source.checksum, build_dir))
        )
        return first_success(strategies, logger=self.context.logger, package=dest_name)

    def _download(
        self,
        url: str,
        key: str,
        checksum: str,
        build_dir: Path,
        *,
        probe: bool = False,
    ) -> Path:
        if probe:
            self.transport.head(url)
        self.context.reporter.progress(url)
        dest = build_dir / key
        self.transport.get(url, dest)
        # A mismatched download stays in the build dir for inspection.
        self.verifier.verify(dest, checksum)
        stored = self.context.cache.store(key, dest, build_dir=build_dir)
        self.context.cache.mark_verified(stored, checksum)
        return stored

    def _extract(self, archive: Path, fmt: ArchiveFormat, dest_name: str, build_dir: Path) -> Path:
        staging = Path(tempfile.mkdtemp(prefix=f".extract-{dest_name}-", dir=build_dir))
        try:
            status = self.context.runner.run(
                ["tar", fmt.tar_flags, str(archive.absolute())],
                cwd=staging,
            )
            if status != 0:
                raise ExtractFailed(
                    f"Failed to extract {archive.name}.",
                    hint="Ensure tar and the matching decompressor are installed.",
                    context={"archive": str(archive), "format": fmt, "returncode": str(status)},
                )
            extracted = next(
                (entry for entry in sorted(staging.iterdir()) if entry.is_dir()),
                None,
            )
            if extracted is None:
                raise ExtractedDirectoryNotFound(
                    "Archive did not contain a top-level directory.",
                    context={"archive": str(archive), "package": dest_name},
                )
            target = build_dir / dest_name
            if target.exists():
                shutil.rmtree(target)
            extracted.rename(target)
        finally:
            shutil.rmtree(staging, ignore_errors=True)
        self.context.logger.log(
            operation="extract",
            package=dest_name,
            message="Extracted archive.",
            extra={"archive": archive.name, "format": str(fmt), "source_dir": str(target)},
        )
        return target
