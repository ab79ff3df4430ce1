"""Shared collaborators and fallback helpers for the fetch backends."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from pkgforge.cache import CacheManager
from pkgforge.config import BuildConfig
from pkgforge.errors import ChecksumMismatch, DownloadFailed, FetchError, NoTransportAvailable
from pkgforge.observability import Reporter, StructuredLogger
from pkgforge.runner import Runner

T = TypeVar("T")

Strategy = tuple[str, Callable[[], T | None]]

RECOVERABLE_ERRORS = (ChecksumMismatch, DownloadFailed, NoTransportAvailable)


@dataclass(slots=True)
class FetchContext:
    config: BuildConfig
    runner: Runner
    cache: CacheManager
    reporter: Reporter = field(default_factory=Reporter)
    logger: StructuredLogger = field(default_factory=StructuredLogger)


def first_success(
    strategies: Sequence[Strategy[T]],
    *,
    logger: StructuredLogger,
    package: str | None = None,
) -> T:
    """Try *strategies* in order and return the first non-``None`` result.

    A strategy returning ``None`` does not apply; one raising a recoverable fetch
    error is recorded and the next is tried. When nothing succeeds the last error
    is re-raised.
    """
    last_error: FetchError | None = None
    for name, attempt in strategies:
        try:
            result = attempt()
        except RECOVERABLE_ERRORS as exc:
            logger.log(
                operation="fetch_strategy_failed",
                package=package,
                level="warning",
                message=f"Strategy `{name}` failed.",
                extra={"strategy": name, "code": exc.code},
            )
            last_error = exc
            continue
        if result is not None:
            logger.log(
                operation="fetch_strategy_succeeded",
                package=package,
                message=f"Strategy `{name}` succeeded.",
                extra={"strategy": name},
            )
            return result
    if last_error is not None:
        raise last_error
    raise DownloadFailed(
        "No source strategy applied.",
        context={"strategies": ", ".join(name for name, _ in strategies)},
    )
