"""Checksum verification with pluggable digest tools.

The expected checksum's length picks the algorithm (32 hex chars for md5, 64 for
sha256). Digest tools are tried in order and the first one available for the
algorithm is used. When no tool is available the artifact is trusted and an
:class:`UnverifiedChecksumWarning` is emitted; callers that need a hard guarantee
should pass tools they know exist.
"""

from __future__ import annotations

import hashlib
import re
import shutil
import subprocess
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Protocol

from pkgforge.errors import ChecksumMismatch, UnsupportedChecksumFormat
from pkgforge.observability import StructuredLogger, UnverifiedChecksumWarning

Algorithm = Literal["md5", "sha256"]

ALGORITHM_BY_LENGTH: dict[int, Algorithm] = {32: "md5", 64: "sha256"}

_HEX_PATTERN = re.compile(r"\b[0-9a-fA-F]{32,64}\b")
_HEX_DIGEST = re.compile(r"[0-9a-fA-F]+")
_CHUNK_SIZE = 1024 * 1024


class DigestTool(Protocol):
    name: str
    algorithm: Algorithm

    def available(self) -> bool:
        """Return whether the tool can run on this host."""

    def hexdigest(self, path: Path) -> str:
        """Return the lower-case hex digest of *path*."""


@dataclass(frozen=True, slots=True)
class HashlibDigest:
    algorithm: Algorithm

    @property
    def name(self) -> str:
        return f"hashlib.{self.algorithm}"

    def available(self) -> bool:
        try:
            hashlib.new(self.algorithm, usedforsecurity=False)
        except ValueError:
            return False
        return True

    def hexdigest(self, path: Path) -> str:
        digest = hashlib.new(self.algorithm, usedforsecurity=False)
        with open(path, "rb") as handle:
            for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()


@dataclass(frozen=True, slots=True)
class CommandDigest:
    """A host digest utility such as ``sha256sum`` or ``openssl dgst``."""

    algorithm: Algorithm
    argv: tuple[str, ...]

    @property
    def name(self) -> str:
        return self.argv[0]

    def available(self) -> bool:
        return shutil.which(self.argv[0]) is not None

    def hexdigest(self, path: Path) -> str:
        completed = subprocess.run(
            [*self.argv, str(path)],
            check=False,
            text=True,
            capture_output=True,
        )
        match = _HEX_PATTERN.search(completed.stdout) if completed.returncode == 0 else None
        if match is None:
            # An unreadable result must fail verification rather than pass it.
            return ""
        return match.group(0).lower()


DEFAULT_DIGEST_TOOLS: tuple[DigestTool, ...] = (
    HashlibDigest("md5"),
    HashlibDigest("sha256"),
    CommandDigest("md5", ("openssl", "md5")),
    CommandDigest("md5", ("md5sum",)),
    CommandDigest("md5", ("md5", "-q")),
    CommandDigest("sha256", ("openssl", "dgst", "-sha256")),
    CommandDigest("sha256", ("sha256sum",)),
    CommandDigest("sha256", ("shasum", "-a", "256")),
)


def algorithm_for(checksum: str) -> Algorithm:
    algorithm = ALGORITHM_BY_LENGTH.get(len(checksum))
    if algorithm is None or _HEX_DIGEST.fullmatch(checksum) is None:
        raise UnsupportedChecksumFormat(
            "Unsupported checksum format.",
            hint="Use a 32-character md5 or 64-character sha256 hex digest.",
            context={"checksum": checksum, "length": str(len(checksum))},
        )
    return algorithm


@dataclass(slots=True)
class ChecksumVerifier:
    tools: tuple[DigestTool, ...] = DEFAULT_DIGEST_TOOLS
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def verify(self, path: str | Path, expected: str) -> None:
        """Raise unless *path* matches *expected*; see the module docstring."""
        if not expected:
            return
        algorithm = algorithm_for(expected)
        target = Path(path)
        if not target.exists():
            return
        tool = self._tool_for(algorithm)
        if tool is None:
            warnings.warn(
                f"No {algorithm} digest tool available; `{target.name}` was not verified.",
                UnverifiedChecksumWarning,
                stacklevel=2,
            )
            self.logger.log(
                operation="verify_checksum",
                package=None,
                level="warning",
                message="Checksum verification skipped: no digest tool available.",
                extra={"path": str(target), "algorithm": algorithm},
            )
            return
        actual = tool.hexdigest(target).lower()
        if actual != expected.lower():
            raise ChecksumMismatch(
                "Checksum mismatch.",
                expected=expected.lower(),
                actual=actual,
                hint="The download may be corrupt or the definition out of date.",
                context={"path": str(target), "algorithm": algorithm, "tool": tool.name},
            )
        self.logger.log(
            operation="verify_checksum",
            package=None,
            message="Checksum verified.",
            extra={"path": str(target), "algorithm": algorithm, "tool": tool.name},
        )

    def is_valid(self, path: str | Path, expected: str) -> bool:
        try:
            self.verify(path, expected)
        except ChecksumMismatch:
            return False
        return True

    def _tool_for(self, algorithm: Algorithm) -> DigestTool | None:
        for tool in self.tools:
            if tool.algorithm == algorithm and tool.available():
                return tool
        return None


__all__ = [
    "ALGORITHM_BY_LENGTH",
    "ChecksumVerifier",
    "CommandDigest",
    "DEFAULT_DIGEST_TOOLS",
    "DigestTool",
    "HashlibDigest",
    "algorithm_for",
]
