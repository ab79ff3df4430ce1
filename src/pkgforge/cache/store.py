"""Persistent artifact cache shared across runs.

Entries are files (downloaded archives) or bare Git repositories under the cache
root. They are never edited in place: new content is written under a temporary
name inside the cache root and moved over the entry with ``os.replace``. The build
directory only ever holds symbolic links to cached archives.
"""

from __future__ import annotations

import os
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from pkgforge.checksum import ChecksumVerifier
from pkgforge.observability import StructuredLogger


@dataclass(slots=True)
class CacheManager:
    cache_dir: Path | None
    verifier: ChecksumVerifier = field(default_factory=ChecksumVerifier)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    _verified: set[tuple[str, str]] = field(default_factory=set, init=False, repr=False)

    def try_reuse(self, key: str, *, build_dir: Path, checksum: str = "") -> Path | None:
        """Return a verified artifact for *key* inside *build_dir*, if one exists."""
        local = build_dir / key
        if local.exists() and self._trusted(local, checksum):
            self._log("reuse_build_dir", key, "Reusing artifact already in build directory.")
            return local
        if self.cache_dir is None:
            return None
        cached = self.cache_dir / key
        if not cached.is_file():
            return None
        if not self._trusted(cached, checksum):
            self._log(
                "reject_cache_entry",
                key,
                "Cached artifact failed verification; a fresh download is required.",
                level="warning",
            )
            return None
        self._link(cached, local)
        self._log("reuse_cache", key, "Linked cached artifact into build directory.")
        return local

    def store(self, key: str, produced: Path, *, build_dir: Path) -> Path:
        """Move *produced* into the cache and leave a link to it in *build_dir*."""
        if self.cache_dir is None:
            return produced
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        entry = self.cache_dir / key
        link = build_dir / key
        if produced.is_symlink() and entry.exists() and produced.resolve() == entry.resolve():
            return produced
        staging = self.cache_dir / f".{key}.tmp-{uuid.uuid4().hex[:8]}"
        try:
            shutil.move(str(produced), staging)
            os.replace(staging, entry)
        finally:
            staging.unlink(missing_ok=True)
        self._link(entry, link)
        self._log("store", key, "Stored artifact in cache.", extra={"entry": str(entry)})
        return link

    def mark_verified(self, path: Path, checksum: str) -> None:
        self._verified.add((str(path.resolve()), checksum.lower()))

    def git_mirror(self, key: str) -> Path | None:
        """Path of the bare mirror repository for *key*, when caching is enabled."""
        if self.cache_dir is None:
            return None
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        return self.cache_dir / key

    def _trusted(self, path: Path, checksum: str) -> bool:
        identity = (str(path.resolve()), checksum.lower())
        if identity in self._verified:
            return True
        if not self.verifier.is_valid(path, checksum):
            return False
        self._verified.add(identity)
        return True

    def _link(self, target: Path, link: Path) -> None:
        link.parent.mkdir(parents=True, exist_ok=True)
        staging = link.with_name(f".{link.name}.link-{uuid.uuid4().hex[:8]}")
        staging.symlink_to(target.resolve())
        os.replace(staging, link)

    def _log(
        self,
        operation: str,
        key: str,
        message: str,
        *,
        level: str = "info",
        extra: dict[str, str] | None = None,
    ) -> None:
        self.logger.log(
            operation=operation,
            package=None,
            message=message,
            level=level,
            extra={"key": key, **(extra or {})},
        )


__all__ = ["CacheManager"]
