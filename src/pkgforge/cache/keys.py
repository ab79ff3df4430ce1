"""Cache key derivation."""

from __future__ import annotations

import re
from enum import StrEnum

from pkgforge.errors import DefinitionError
from pkgforge.models import GitRef, SourceDescriptor, SvnRef, Tarball

_UNSAFE = re.compile(r"[^A-Za-z0-9.-]+")


class ArchiveFormat(StrEnum):
    GZIP = "gzip"
    BZIP2 = "bzip2"
    XZ = "xz"

    @property
    def tar_flags(self) -> str:
        return {"gzip": "xzf", "bzip2": "xjf", "xz": "xJf"}[self.value]


_SUFFIXES: tuple[tuple[tuple[str, ...], ArchiveFormat], ...] = (
    ((".tar.bz2", ".tbz2", ".tbz"), ArchiveFormat.BZIP2),
    ((".tar.xz", ".txz"), ArchiveFormat.XZ),
    ((".tar.gz", ".tgz"), ArchiveFormat.GZIP),
)


def sanitize(value: str) -> str:
    return _UNSAFE.sub("_", value)


def archive_format(filename: str) -> ArchiveFormat:
    """Pick the archive format from *filename*; unknown suffixes are gzip."""
    lowered = filename.lower()
    for suffixes, fmt in _SUFFIXES:
        if lowered.endswith(suffixes):
            return fmt
    return ArchiveFormat.GZIP


def cache_key(source: SourceDescriptor) -> str:
    if isinstance(source, Tarball):
        if not source.filename:
            raise DefinitionError(
                "Tarball URL does not name a file.",
                context={"url": source.url},
            )
        return source.filename
    if isinstance(source, GitRef | SvnRef):
        return sanitize(source.url)
    raise DefinitionError(f"Unsupported source descriptor: {type(source).__name__}")
