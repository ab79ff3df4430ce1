"""Install orchestration: scratch directory, fetch, build and cleanup."""

from __future__ import annotations

import os
import platform
import shutil
import sys
import tempfile
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import BinaryIO

from pkgforge._version import __version__
from pkgforge.build import BuildDispatcher, BuildPlan, NoopHooks, StepHooks, read_patch
from pkgforge.cache import CacheManager
from pkgforge.checksum import ChecksumVerifier
from pkgforge.config import BuildConfig
from pkgforge.definitions import DEFAULT_PREDICATES, Predicate
from pkgforge.errors import (
    DefinitionError,
    FetchError,
    PkgforgeError,
    StepFailed,
    UnknownBuildStep,
)
from pkgforge.fetch import FetchContext, Fetcher
from pkgforge.models import Definition, InstallResult, PackageRequest
from pkgforge.observability import Reporter, StructuredLogger
from pkgforge.runner import Runner, SubprocessRunner, follow_log, tail_lines
from pkgforge.transport import HttpTransport, Transport

LOG_TAIL_LINES = 10

PrerequisiteCheck = Callable[[tuple[str, ...]], None]


class Phase(StrEnum):
    INIT = "init"
    CREATE_SCRATCH_DIR = "create_scratch_dir"
    FETCH = "fetch"
    BUILD = "build"
    CLEANUP = "cleanup"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class Installer:
    """Installs packages described by :class:`PackageRequest` values.

    Each request gets its own scratch directory. On success the directory is
    removed (unless ``config.keep``); on failure it is kept, a diagnostic banner
    is printed and the returned :class:`InstallResult` carries the error.
    """

    config: BuildConfig
    runner: Runner | None = None
    transport: Transport | None = None
    verifier: ChecksumVerifier | None = None
    hooks: StepHooks = field(default_factory=NoopHooks)
    reporter: Reporter = field(default_factory=Reporter)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    predicates: Mapping[str, Predicate] = field(default_factory=lambda: dict(DEFAULT_PREDICATES))
    check_prerequisite: PrerequisiteCheck | None = None
    patch_stream: BinaryIO | None = None
    phase: Phase = field(default=Phase.INIT, init=False)
    log_path: Path = field(init=False)
    fetcher: Fetcher = field(init=False, repr=False)
    dispatcher: BuildDispatcher = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.log_path = self.config.log_path or self.config.tmp_dir / (
            f"pkgforge.{time.strftime('%Y%m%d%H%M%S')}.{os.getpid()}.log"
        )
        if self.runner is None:
            self.runner = SubprocessRunner(log_path=self.log_path)
        if self.verifier is None:
            self.verifier = ChecksumVerifier(logger=self.logger)
        if self.transport is None:
            self.transport = HttpTransport(
                config=self.config,
                runner=self.runner,
                logger=self.logger,
            )
        cache = CacheManager(self.config.cache_dir, verifier=self.verifier, logger=self.logger)
        context = FetchContext(
            config=self.config,
            runner=self.runner,
            cache=cache,
            reporter=self.reporter,
            logger=self.logger,
        )
        self.fetcher = Fetcher.create(context, transport=self.transport, verifier=self.verifier)
        self.dispatcher = BuildDispatcher(
            config=self.config,
            runner=self.runner,
            reporter=self.reporter,
            logger=self.logger,
            hooks=self.hooks,
        )

    def install_definition(self, definition: Definition) -> list[InstallResult]:
        """Install every applicable request in order, stopping at the first failure."""
        for request in definition.requests:
            self._resolve_plan(request)
        for prerequisite in definition.prerequisites:
            self._check_prerequisite(prerequisite)
        for option in definition.options:
            self.config.package_options.register(option.family, option.command, *option.args)

        active = [request for request in definition.requests if self._applies(request)]
        primary = active[-1] if active else None
        results: list[InstallResult] = []
        for request in definition.requests:
            result = self.install(request, patch=self.config.apply_patch and request is primary)
            results.append(result)
            if not result.ok:
                break
        self._finish(ok=all(result.ok for result in results))
        return results

    def install(self, request: PackageRequest, *, patch: bool = False) -> InstallResult:
        self.phase = Phase.INIT
        overrides = self.config.overrides_for(request.name)
        result = InstallResult(
            package=request.name,
            prefix=overrides.prefix or self.config.prefix,
            log_path=self.log_path,
        )
        if not self._applies(request):
            result.skipped = True
            self.logger.log(
                operation="install_skipped",
                package=request.name,
                message=f"Predicate `{request.condition}` is false.",
            )
            return result

        self.phase = Phase.CREATE_SCRATCH_DIR
        build_dir = self._create_build_dir(request.name)
        self.logger.log(
            operation="install_start",
            package=request.name,
            message="Starting install.",
            extra={"build_dir": str(build_dir), "prefix": str(result.prefix)},
        )
        try:
            with follow_log(self.log_path, enabled=self.config.verbose):
                self.phase = Phase.FETCH
                source_dir = self.fetcher.fetch(request.source, request.name, build_dir)
                self.phase = Phase.BUILD
                patch_file = self._read_patch(build_dir, request.name) if patch else None
                self.dispatcher.build(
                    request.name,
                    request.steps,
                    source_dir=source_dir,
                    patch_file=patch_file,
                )
        except PkgforgeError as exc:
            return self._fail(result, build_dir, exc)
        except OSError as exc:
            return self._fail(result, build_dir, self._wrap_os_error(request, exc))

        self.phase = Phase.CLEANUP
        if self.config.keep:
            result.build_dir = build_dir
        else:
            shutil.rmtree(build_dir, ignore_errors=True)
        self.phase = Phase.DONE
        self.logger.log(
            operation="install_complete",
            package=request.name,
            message="Install completed.",
            extra={"prefix": str(result.prefix)},
        )
        return result

    def _fail(
        self, result: InstallResult, build_dir: Path, error: PkgforgeError
    ) -> InstallResult:
        failed_in = self.phase
        self.phase = Phase.FAILED
        result.error = error
        result.build_dir = self._retain(build_dir)
        self.logger.log(
            operation="install_failed",
            package=result.package,
            level="error",
            message=error.args[0] if error.args else error.code,
            extra={"code": error.code, "phase": str(failed_in)},
        )
        self._report_failure(error, result.build_dir)
        return result

    def _wrap_os_error(self, request: PackageRequest, exc: OSError) -> PkgforgeError:
        context = {"package": request.name, "phase": str(self.phase), "error": str(exc)}
        if self.phase is Phase.FETCH:
            error: PkgforgeError = FetchError(
                f"Fetching {request.name} failed.",
                hint="Check free disk space and permissions of the build directory.",
                context=context,
            )
        else:
            error = StepFailed(
                f"Building {request.name} failed.",
                hint="Check that the prefix is a writable directory.",
                context=context,
            )
        error.__cause__ = exc
        return error

    def _resolve_plan(self, request: PackageRequest) -> BuildPlan:
        try:
            return BuildPlan.resolve(request.steps)
        except UnknownBuildStep as exc:
            raise DefinitionError(
                str(exc.args[0]),
                hint=exc.hint,
                context={"package": request.name, **exc.context},
            ) from exc

    def _applies(self, request: PackageRequest) -> bool:
        if request.condition is None:
            return True
        predicate = self.predicates.get(request.condition)
        if predicate is None:
            raise DefinitionError(
                f"Unknown predicate `{request.condition}`.",
                context={"package": request.name},
            )
        return predicate()

    def _check_prerequisite(self, prerequisite: tuple[str, ...]) -> None:
        if self.check_prerequisite is not None:
            self.check_prerequisite(prerequisite)
        self.logger.log(
            operation="prerequisite",
            package=None,
            message=f"Prerequisite `{prerequisite[0]}` accepted.",
            extra={"args": list(prerequisite[1:])},
        )

    def _create_build_dir(self, package: str) -> Path:
        base = self.config.build_path or self.config.tmp_dir
        base.mkdir(parents=True, exist_ok=True)
        stamp = time.strftime("%Y%m%d%H%M%S")
        return Path(tempfile.mkdtemp(prefix=f"pkgforge.{package}.{stamp}.", dir=base))

    def _read_patch(self, build_dir: Path, package: str) -> Path:
        stream = self.patch_stream if self.patch_stream is not None else sys.stdin.buffer
        return read_patch(stream, build_dir / f"{package}.patch")

    def _retain(self, build_dir: Path) -> Path | None:
        """Keep *build_dir* for inspection unless there is nothing in it."""
        if not build_dir.exists():
            return None
        if not any(build_dir.iterdir()):
            build_dir.rmdir()
            return None
        return build_dir

    def _report_failure(self, error: PkgforgeError, build_dir: Path | None) -> None:
        report = self.reporter
        report.info("")
        report.info(f"BUILD FAILED ({platform.platform()} using pkgforge {__version__})")
        report.info("")
        report.info(str(error))
        if build_dir is not None:
            report.info(f"Inspect or clean up the working tree at {build_dir}")
        if self.log_path.exists():
            report.info(f"Results logged to {self.log_path}")
            lines = tail_lines(self.log_path, LOG_TAIL_LINES)
            if lines:
                report.info("")
                report.info(f"Last {len(lines)} log lines:")
                for line in lines:
                    report.info(line)

    def _finish(self, *, ok: bool) -> None:
        if self.config.event_log is not None:
            self.logger.to_json_lines(self.config.event_log)
        if ok and not self.config.keep and self.config.log_path is None:
            self.log_path.unlink(missing_ok=True)


__all__ = ["Installer", "Phase"]
