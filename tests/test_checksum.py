import hashlib
import warnings
from dataclasses import dataclass
from pathlib import Path

import pytest

from pkgforge.checksum import ChecksumVerifier, HashlibDigest, algorithm_for
from pkgforge.errors import ChecksumMismatch, UnsupportedChecksumFormat
from pkgforge.observability import StructuredLogger, UnverifiedChecksumWarning


@dataclass(frozen=True)
class _Unavailable:
    name: str = "missing"
    algorithm: str = "sha256"

    def available(self) -> bool:
        return False

    def hexdigest(self, path: Path) -> str:
        raise AssertionError("unavailable tools are never asked for a digest")


def test_empty_checksum_skips_verification(tmp_path: Path) -> None:
    verifier = ChecksumVerifier(tools=(_Unavailable(),))

    verifier.verify(tmp_path / "does-not-matter", "")

    assert verifier.logger.records == []


@pytest.mark.parametrize("checksum", ["abc", "0" * 40, "0" * 128, "g" * 64, "z" * 32])
def test_unsupported_formats_fail_before_digest(tmp_path: Path, checksum: str) -> None:
    target = tmp_path / "artifact.tar.gz"
    target.write_bytes(b"payload")
    verifier = ChecksumVerifier(tools=(_Unavailable(),))

    with pytest.raises(UnsupportedChecksumFormat) as excinfo:
        verifier.verify(target, checksum)

    assert excinfo.value.code == "E_UNSUPPORTED_CHECKSUM"


def test_algorithm_selected_by_length() -> None:
    assert algorithm_for("a" * 32) == "md5"
    assert algorithm_for("a" * 64) == "sha256"


def test_missing_file_is_not_an_error(tmp_path: Path) -> None:
    ChecksumVerifier().verify(tmp_path / "absent.tar.gz", "0" * 64)


def test_comparison_is_case_insensitive(tmp_path: Path) -> None:
    target = tmp_path / "artifact.tar.gz"
    target.write_bytes(b"payload")
    digest = hashlib.sha256(b"payload").hexdigest()
    verifier = ChecksumVerifier(tools=(HashlibDigest("sha256"),))

    verifier.verify(target, digest.upper())

    assert verifier.is_valid(target, digest)


def test_mismatch_reports_expected_and_actual(tmp_path: Path) -> None:
    target = tmp_path / "artifact.tar.gz"
    target.write_bytes(b"payload")
    verifier = ChecksumVerifier(tools=(HashlibDigest("sha256"),))

    with pytest.raises(ChecksumMismatch) as excinfo:
        verifier.verify(target, "F" * 64)

    assert excinfo.value.expected == "f" * 64
    assert excinfo.value.actual == hashlib.sha256(b"payload").hexdigest()
    assert verifier.is_valid(target, "f" * 64) is False


def test_md5_checksums_are_supported(tmp_path: Path) -> None:
    target = tmp_path / "artifact.tar.gz"
    target.write_bytes(b"payload")
    verifier = ChecksumVerifier(tools=(HashlibDigest("md5"),))

    verifier.verify(target, hashlib.md5(b"payload", usedforsecurity=False).hexdigest())


def test_no_digest_tool_degrades_to_trust(tmp_path: Path) -> None:
    target = tmp_path / "artifact.tar.gz"
    target.write_bytes(b"payload")
    logger = StructuredLogger()
    verifier = ChecksumVerifier(tools=(_Unavailable(),), logger=logger)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        verifier.verify(target, "0" * 64)

    assert any(isinstance(item.message, UnverifiedChecksumWarning) for item in caught)
    assert logger.records[-1]["level"] == "warning"
    assert logger.records[-1]["operation"] == "verify_checksum"
