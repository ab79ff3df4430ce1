"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import ClassVar


class ErrorCode(StrEnum):
    """Stable error identifiers used across fetch, build and CLI surfaces."""

    DEFINITION = "E_DEFINITION"
    FETCH_FAILED = "E_FETCH_FAILED"
    NO_TRANSPORT = "E_NO_TRANSPORT"
    DOWNLOAD_FAILED = "E_DOWNLOAD_FAILED"
    CHECKSUM_MISMATCH = "E_CHECKSUM_MISMATCH"
    UNSUPPORTED_CHECKSUM = "E_UNSUPPORTED_CHECKSUM"
    EXTRACTED_DIR_NOT_FOUND = "E_EXTRACTED_DIR_NOT_FOUND"
    EXTRACT_FAILED = "E_EXTRACT_FAILED"
    VCS_CLIENT_MISSING = "E_VCS_CLIENT_MISSING"
    VCS_COMMAND_FAILED = "E_VCS_COMMAND_FAILED"
    CONFIGURE_FAILED = "E_CONFIGURE_FAILED"
    COMPILE_FAILED = "E_COMPILE_FAILED"
    INSTALL_FAILED = "E_INSTALL_FAILED"
    UNKNOWN_BUILD_STEP = "E_UNKNOWN_BUILD_STEP"
    PATCH_APPLY_FAILED = "E_PATCH_APPLY_FAILED"
    STEP_FAILED = "E_STEP_FAILED"


class PkgforgeError(Exception):
    """Base error class that carries code, optional hint, and context."""

    error_code: ClassVar[ErrorCode]

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = self.error_code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class DefinitionError(PkgforgeError):
    """Malformed build definition or source descriptor (a usage error)."""

    error_code = ErrorCode.DEFINITION


# -- fetch ----------------------------------------------------------------


class FetchError(PkgforgeError):
    """Base class for errors raised while acquiring package source."""

    error_code = ErrorCode.FETCH_FAILED


class NoTransportAvailable(FetchError):
    error_code = ErrorCode.NO_TRANSPORT


class DownloadFailed(FetchError):
    error_code = ErrorCode.DOWNLOAD_FAILED


class ChecksumMismatch(FetchError):
    error_code = ErrorCode.CHECKSUM_MISMATCH

    def __init__(
        self,
        message: str,
        *,
        expected: str,
        actual: str,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        merged = {**dict(context or {}), "expected": expected, "actual": actual}
        super().__init__(message, hint=hint, context=merged)
        self.expected = expected
        self.actual = actual


class UnsupportedChecksumFormat(FetchError):
    error_code = ErrorCode.UNSUPPORTED_CHECKSUM


class ExtractedDirectoryNotFound(FetchError):
    error_code = ErrorCode.EXTRACTED_DIR_NOT_FOUND


class ExtractFailed(FetchError):
    error_code = ErrorCode.EXTRACT_FAILED


class VcsClientMissing(FetchError):
    error_code = ErrorCode.VCS_CLIENT_MISSING


class VcsCommandFailed(FetchError):
    error_code = ErrorCode.VCS_COMMAND_FAILED


# -- build ----------------------------------------------------------------


class BuildError(PkgforgeError):
    """Base class for fatal build pipeline errors."""


class ConfigureFailed(BuildError):
    error_code = ErrorCode.CONFIGURE_FAILED


class CompileFailed(BuildError):
    error_code = ErrorCode.COMPILE_FAILED


class InstallFailed(BuildError):
    error_code = ErrorCode.INSTALL_FAILED


class UnknownBuildStep(BuildError):
    error_code = ErrorCode.UNKNOWN_BUILD_STEP


class PatchApplyFailed(BuildError):
    error_code = ErrorCode.PATCH_APPLY_FAILED


class StepFailed(BuildError):
    error_code = ErrorCode.STEP_FAILED


__all__ = [
    "BuildError",
    "ChecksumMismatch",
    "CompileFailed",
    "ConfigureFailed",
    "DefinitionError",
    "DownloadFailed",
    "ErrorCode",
    "ExtractFailed",
    "ExtractedDirectoryNotFound",
    "FetchError",
    "InstallFailed",
    "NoTransportAvailable",
    "PatchApplyFailed",
    "PkgforgeError",
    "StepFailed",
    "UnknownBuildStep",
    "UnsupportedChecksumFormat",
    "VcsClientMissing",
    "VcsCommandFailed",
]
