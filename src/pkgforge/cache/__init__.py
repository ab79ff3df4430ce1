"""Persistent download and repository cache APIs."""

from .keys import ArchiveFormat, archive_format, cache_key, sanitize
from .store import CacheManager

__all__ = ["ArchiveFormat", "CacheManager", "archive_format", "cache_key", "sanitize"]
