import hashlib
from pathlib import Path

import pytest

from pkgforge.cache import ArchiveFormat, CacheManager, archive_format, cache_key, sanitize
from pkgforge.checksum import ChecksumVerifier, HashlibDigest
from pkgforge.errors import DefinitionError
from pkgforge.models import GitRef, SvnRef, Tarball
from pkgforge.observability import StructuredLogger

PAYLOAD = b"archive bytes"
DIGEST = hashlib.sha256(PAYLOAD).hexdigest()


def _manager(cache_dir: Path | None, logger: StructuredLogger | None = None) -> CacheManager:
    return CacheManager(
        cache_dir,
        verifier=ChecksumVerifier(tools=(HashlibDigest("sha256"),)),
        logger=logger or StructuredLogger(),
    )


def test_cache_keys_are_stable_per_descriptor() -> None:
    tarball = Tarball.from_url(f"https://example.org/dist/foo-1.0.tar.gz?mirror=1#{DIGEST}")

    assert tarball.checksum == DIGEST
    assert cache_key(tarball) == "foo-1.0.tar.gz"
    assert cache_key(GitRef("https://github.com/ruby/ruby.git", "master")) == (
        "https_github.com_ruby_ruby.git"
    )
    assert cache_key(SvnRef("svn://svn.example/repo/trunk", "42")) == "svn_svn.example_repo_trunk"
    assert sanitize("a b//c") == "a_b_c"


def test_tarball_without_filename_is_rejected() -> None:
    with pytest.raises(DefinitionError):
        cache_key(Tarball("https://example.org/"))


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("foo-1.0.tar.bz2", ArchiveFormat.BZIP2),
        ("foo-1.0.tbz2", ArchiveFormat.BZIP2),
        ("foo-1.0.tar.xz", ArchiveFormat.XZ),
        ("foo-1.0.tar.gz", ArchiveFormat.GZIP),
        ("foo-1.0.tgz", ArchiveFormat.GZIP),
        ("foo-1.0", ArchiveFormat.GZIP),
    ],
)
def test_archive_format_from_suffix(filename: str, expected: ArchiveFormat) -> None:
    assert archive_format(filename) == expected


def test_archive_format_tar_flags() -> None:
    assert ArchiveFormat.BZIP2.tar_flags == "xjf"
    assert ArchiveFormat.GZIP.tar_flags == "xzf"
    assert ArchiveFormat.XZ.tar_flags == "xJf"


def test_store_without_cache_returns_produced_path(tmp_path: Path) -> None:
    produced = tmp_path / "foo-1.0.tar.gz"
    produced.write_bytes(PAYLOAD)

    assert _manager(None).store("foo-1.0.tar.gz", produced, build_dir=tmp_path) == produced
    assert produced.is_file() and not produced.is_symlink()


def test_store_moves_artifact_and_links_back(tmp_path: Path) -> None:
    cache_dir = tmp_path / "cache"
    build_dir = tmp_path / "build"
    build_dir.mkdir()
    produced = build_dir / "foo-1.0.tar.gz"
    produced.write_bytes(PAYLOAD)
    manager = _manager(cache_dir)

    link = manager.store("foo-1.0.tar.gz", produced, build_dir=build_dir)

    assert link.is_symlink()
    assert link.resolve() == (cache_dir / "foo-1.0.tar.gz").resolve()
    assert link.read_bytes() == PAYLOAD


def test_store_twice_is_idempotent(tmp_path: Path) -> None:
    cache_dir = tmp_path / "cache"
    build_dir = tmp_path / "build"
    build_dir.mkdir()
    produced = build_dir / "foo-1.0.tar.gz"
    produced.write_bytes(PAYLOAD)
    manager = _manager(cache_dir)

    first = manager.store("foo-1.0.tar.gz", produced, build_dir=build_dir)
    second = manager.store("foo-1.0.tar.gz", first, build_dir=build_dir)

    assert second == first
    assert [entry.name for entry in cache_dir.iterdir()] == ["foo-1.0.tar.gz"]
    assert (cache_dir / "foo-1.0.tar.gz").read_bytes() == PAYLOAD


def test_try_reuse_links_verified_cache_entry(tmp_path: Path) -> None:
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    (cache_dir / "foo-1.0.tar.gz").write_bytes(PAYLOAD)
    build_dir = tmp_path / "build"
    build_dir.mkdir()
    logger = StructuredLogger()

    found = _manager(cache_dir, logger).try_reuse(
        "foo-1.0.tar.gz", build_dir=build_dir, checksum=DIGEST
    )

    assert found == build_dir / "foo-1.0.tar.gz"
    assert found.is_symlink()
    assert logger.records[-1]["operation"] == "reuse_cache"


def test_try_reuse_prefers_build_directory_copy(tmp_path: Path) -> None:
    build_dir = tmp_path / "build"
    build_dir.mkdir()
    (build_dir / "foo-1.0.tar.gz").write_bytes(PAYLOAD)

    found = _manager(tmp_path / "cache").try_reuse(
        "foo-1.0.tar.gz", build_dir=build_dir, checksum=DIGEST
    )

    assert found == build_dir / "foo-1.0.tar.gz"
    assert not found.is_symlink()


def test_try_reuse_rejects_corrupt_cache_entry(tmp_path: Path) -> None:
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    (cache_dir / "foo-1.0.tar.gz").write_bytes(b"truncated")
    build_dir = tmp_path / "build"
    build_dir.mkdir()
    logger = StructuredLogger()

    found = _manager(cache_dir, logger).try_reuse(
        "foo-1.0.tar.gz", build_dir=build_dir, checksum=DIGEST
    )

    assert found is None
    assert not (build_dir / "foo-1.0.tar.gz").exists()
    assert logger.records[-1]["operation"] == "reject_cache_entry"


def test_git_mirror_path_requires_cache(tmp_path: Path) -> None:
    assert _manager(None).git_mirror("repo") is None
    assert _manager(tmp_path / "cache").git_mirror("repo") == tmp_path / "cache" / "repo"
    assert (tmp_path / "cache").is_dir()
