"""Build step identifiers and plan resolution."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import StrEnum

from pkgforge.errors import UnknownBuildStep


class BuildStep(StrEnum):
    STANDARD_BUILD = "standard_build"
    STANDARD_INSTALL = "standard_install"
    AUTOCONF = "autoconf"
    COPY = "copy"
    VERIFY = "verify"
    WARN_EOL = "warn_eol"
    WARN_UNSUPPORTED = "warn_unsupported"


# Older definitions name only "standard".
STEP_ALIASES: dict[str, tuple[BuildStep, ...]] = {
    "standard": (BuildStep.STANDARD_BUILD, BuildStep.STANDARD_INSTALL),
}

DEFAULT_PLAN: tuple[str, ...] = ("standard",)


@dataclass(frozen=True, slots=True)
class BuildPlan:
    steps: tuple[BuildStep, ...]

    @classmethod
    def resolve(cls, names: Sequence[str]) -> BuildPlan:
        """Resolve step names up front; unknown names are rejected before any step runs."""
        resolved: list[BuildStep] = []
        for name in names or DEFAULT_PLAN:
            if name in STEP_ALIASES:
                resolved.extend(STEP_ALIASES[name])
                continue
            try:
                resolved.append(BuildStep(name))
            except ValueError:
                known = sorted([*STEP_ALIASES, *(step.value for step in BuildStep)])
                raise UnknownBuildStep(
                    f"Unknown build step `{name}`.",
                    hint=f"Known steps: {', '.join(known)}.",
                    context={"step": name},
                ) from None
        return cls(steps=tuple(resolved))

    def __iter__(self) -> Iterator[BuildStep]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)
