"""Shared test fixtures."""

from __future__ import annotations

import io
import os
import shutil
import tarfile
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from pkgforge.config import BuildConfig
from pkgforge.errors import DownloadFailed
from pkgforge.observability import Reporter
from pkgforge.runner import SubprocessRunner

CONFIGURE_SCRIPT = """#!/bin/sh
for arg in "$@"; do
  case "$arg" in
    --prefix=*) echo "${arg#--prefix=}" > .prefix ;;
  esac
done
echo "$@" > .configure-args
"""

MAKE_SCRIPT = """#!/bin/sh
for arg in "$@"; do
  if [ "$arg" = "install" ]; then
    prefix="$(cat .prefix)"
    mkdir -p "$prefix/bin"
    touch "$prefix/bin/installed"
    exit 0
  fi
done
echo "$@" > .make-args
touch built
"""

requires_tar = pytest.mark.skipif(shutil.which("tar") is None, reason="tar is not installed")
requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


@dataclass
class FakeTransport:
    """In-memory transport serving registered URLs."""

    payloads: dict[str, bytes] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)

    def head(self, url: str) -> None:
        self.calls.append(("head", url))
        if url not in self.payloads:
            raise DownloadFailed("Source is not reachable.", context={"url": url})

    def get(self, url: str, dest: Path | None = None) -> None:
        self.calls.append(("get", url))
        if url not in self.payloads or dest is None:
            raise DownloadFailed("Download failed.", context={"url": url})
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(self.payloads[url])


@dataclass
class RecordingRunner:
    """Runner that records commands and returns scripted exit statuses."""

    available: tuple[str, ...] = ()
    statuses: dict[str, int] = field(default_factory=dict)
    commands: list[list[str]] = field(default_factory=list)
    envs: list[dict[str, str]] = field(default_factory=list)

    def which(self, name: str) -> str | None:
        return f"/usr/bin/{name}" if name in self.available else None

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        stdin_path: Path | None = None,
    ) -> int:
        _ = (cwd, stdin_path)
        command = list(argv)
        self.commands.append(command)
        self.envs.append(dict(env or {}))
        return self.statuses.get(Path(command[0]).name, 0)


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def recording_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def reporter() -> Reporter:
    return Reporter(stream=io.StringIO())


@pytest.fixture
def log_runner(tmp_path: Path) -> SubprocessRunner:
    return SubprocessRunner(log_path=tmp_path / "logs" / "build.log")


@pytest.fixture
def fake_make(tmp_path: Path) -> Path:
    script = tmp_path / "tools" / "fake-make"
    _write_executable(script, MAKE_SCRIPT)
    return script


@pytest.fixture
def make_config(tmp_path: Path, fake_make: Path) -> Callable[..., BuildConfig]:
    def factory(**overrides: object) -> BuildConfig:
        values: dict[str, object] = {
            "prefix": tmp_path / "prefix",
            "tmp_dir": tmp_path / "tmp",
            "make": str(fake_make),
            "make_opts": ("-j", "2"),
        }
        values.update(overrides)
        return BuildConfig(**values)  # type: ignore[arg-type]

    return factory


@pytest.fixture
def make_tarball(tmp_path: Path) -> Callable[..., bytes]:
    """Build an archive whose top directory holds a working ``configure`` script."""

    def factory(
        top: str = "foo-1.0",
        *,
        mode: str = "w:gz",
        files: Mapping[str, str] | None = None,
        configure_mode: int = 0o755,
    ) -> bytes:
        root = tmp_path / "tarball-src" / top
        if root.exists():
            shutil.rmtree(root)
        root.mkdir(parents=True)
        _write_executable(root / "configure", CONFIGURE_SCRIPT)
        for name, content in (files or {}).items():
            path = root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        os.chmod(root / "configure", configure_mode)
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode=mode) as archive:
            archive.add(root, arcname=top)
        return buffer.getvalue()

    return factory


def _write_executable(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    os.chmod(path, 0o755)
