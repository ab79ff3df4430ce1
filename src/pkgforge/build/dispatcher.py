"""Build step dispatcher: runs a resolved plan against a source tree."""

from __future__ import annotations

import shlex
import shutil
import warnings
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from pkgforge.build.patch import apply_patch
from pkgforge.build.steps import BuildPlan, BuildStep
from pkgforge.config import BuildConfig
from pkgforge.errors import CompileFailed, ConfigureFailed, InstallFailed, StepFailed
from pkgforge.observability import EndOfLifeWarning, Reporter, StructuredLogger
from pkgforge.runner import Runner


@dataclass(frozen=True, slots=True)
class StepContext:
    package: str
    source_dir: Path
    prefix: Path


class StepHooks(Protocol):
    def before(self, step: BuildStep, context: StepContext) -> None:
        """Run before *step*."""

    def after(self, step: BuildStep, context: StepContext) -> None:
        """Run after *step* completed successfully."""


@dataclass(frozen=True, slots=True)
class NoopHooks:
    def before(self, step: BuildStep, context: StepContext) -> None:
        _ = (step, context)

    def after(self, step: BuildStep, context: StepContext) -> None:
        _ = (step, context)


StepAction = Callable[[StepContext], None]


@dataclass(slots=True)
class BuildDispatcher:
    config: BuildConfig
    runner: Runner
    reporter: Reporter = field(default_factory=Reporter)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    hooks: StepHooks = field(default_factory=NoopHooks)

    def build(
        self,
        package_name: str,
        plan: Sequence[str] | BuildPlan,
        *,
        source_dir: Path,
        patch_file: Path | None = None,
    ) -> Path:
        """Run every step of *plan* in order; the first failure aborts the rest."""
        resolved = plan if isinstance(plan, BuildPlan) else BuildPlan.resolve(plan)
        actions = self.actions()
        overrides = self.config.overrides_for(package_name)
        context = StepContext(
            package=package_name,
            source_dir=source_dir,
            prefix=overrides.prefix or self.config.prefix,
        )
        self.reporter.progress(f"Installing {package_name}...")
        if patch_file is not None:
            level = apply_patch(self.runner, patch_file, source_dir=source_dir)
            self._log(context, None, "Applied patch.", extra={"strip_level": level})
        for step in resolved:
            self.hooks.before(step, context)
            self._log(context, step, "Step started.")
            actions[step](context)
            self._log(context, step, "Step completed.")
            self.hooks.after(step, context)
        self.reporter.progress(f"Installed {package_name} to {context.prefix}")
        return context.prefix

    def actions(self) -> dict[BuildStep, StepAction]:
        return {
            BuildStep.STANDARD_BUILD: self.standard_build,
            BuildStep.STANDARD_INSTALL: self.standard_install,
            BuildStep.AUTOCONF: self.autoconf,
            BuildStep.COPY: self.copy,
            BuildStep.VERIFY: self.verify,
            BuildStep.WARN_EOL: self.warn_eol,
            BuildStep.WARN_UNSUPPORTED: self.warn_unsupported,
        }

    def standard_build(self, context: StepContext) -> None:
        config = self.config
        options = config.package_options
        overrides = config.overrides_for(context.package)

        configure = shlex.split(overrides.configure) if overrides.configure else ["./configure"]
        configure_argv = [
            *configure,
            f"--prefix={context.prefix}",
            *config.configure_opts,
            *overrides.configure_opts,
            *options.get(context.package, "configure"),
        ]
        env: dict[str, str] = {}
        if overrides.cflags:
            env["CFLAGS"] = " ".join(
                part for part in (config.environ.get("CFLAGS"), overrides.cflags) if part
            )
        status = self.runner.run(configure_argv, cwd=context.source_dir, env=env)
        if status != 0:
            raise ConfigureFailed(
                f"Configuring {context.package} failed.",
                hint="Inspect the build log for the failing configure check.",
                context=_failure_context(context, configure_argv, status),
            )

        make_argv = [
            *shlex.split(config.make),
            *config.effective_make_opts(),
            *overrides.make_opts,
            *options.get(context.package, "make"),
        ]
        status = self.runner.run(make_argv, cwd=context.source_dir, env=env)
        if status != 0:
            raise CompileFailed(
                f"Compiling {context.package} failed.",
                hint="Inspect the build log for compiler errors.",
                context=_failure_context(context, make_argv, status),
            )

    def standard_install(self, context: StepContext) -> None:
        config = self.config
        overrides = config.overrides_for(context.package)
        argv = [
            *shlex.split(config.make),
            overrides.make_install_target,
            *config.make_install_opts,
            *overrides.make_install_opts,
            *config.package_options.get(context.package, "install"),
        ]
        status = self.runner.run(argv, cwd=context.source_dir)
        if status != 0:
            raise InstallFailed(
                f"Installing {context.package} failed.",
                hint="Check that the prefix is writable.",
                context=_failure_context(context, argv, status),
            )

    def autoconf(self, context: StepContext) -> None:
        options = self.config.package_options.get(context.package, "autoconf")
        argv = ["autoreconf", "-i", *options]
        status = self.runner.run(argv, cwd=context.source_dir)
        if status != 0:
            raise StepFailed(
                f"Regenerating the configure script for {context.package} failed.",
                hint="Install autoconf, automake and libtool.",
                context=_failure_context(context, argv, status),
            )

    def copy(self, context: StepContext) -> None:
        context.prefix.mkdir(parents=True, exist_ok=True)
        shutil.copytree(context.source_dir, context.prefix, symlinks=True, dirs_exist_ok=True)

    def verify(self, context: StepContext) -> None:
        command = list(self.config.package_options.get(context.package, "verify"))
        if not command:
            self._log(context, BuildStep.VERIFY, "No verification command registered.")
            return
        installed = context.prefix / command[0]
        if not Path(command[0]).is_absolute() and installed.exists():
            command[0] = str(installed)
        status = self.runner.run(command, cwd=context.source_dir)
        if status != 0:
            raise StepFailed(
                f"{context.package} was installed but failed verification.",
                hint="A required extension was probably not compiled; check its dependencies.",
                context=_failure_context(context, command, status),
            )

    def warn_eol(self, context: StepContext) -> None:
        message = (
            f"{context.package} is past its end of life and no longer receives security fixes."
        )
        self.reporter.warning(message)
        warnings.warn(message, EndOfLifeWarning, stacklevel=2)

    def warn_unsupported(self, context: StepContext) -> None:
        self.reporter.warning(
            f"{context.package} is no longer supported by its maintainers; "
            "consider upgrading to a maintained release."
        )

    def _log(
        self,
        context: StepContext,
        step: BuildStep | None,
        message: str,
        *,
        extra: dict[str, object] | None = None,
    ) -> None:
        self.logger.log(
            operation="build_step",
            package=context.package,
            step=str(step) if step is not None else None,
            message=message,
            extra=extra,
        )


def _failure_context(context: StepContext, argv: Sequence[str], status: int) -> dict[str, str]:
    return {
        "package": context.package,
        "command": shlex.join(argv),
        "returncode": str(status),
        "source_dir": str(context.source_dir),
    }
