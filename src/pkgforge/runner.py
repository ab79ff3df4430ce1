"""Synchronous subprocess execution with output captured in the run log."""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from collections import deque
from collections.abc import Iterator, Mapping, Sequence
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

COMMAND_NOT_EXECUTABLE = 126
COMMAND_NOT_FOUND = 127


class Runner(Protocol):
    def which(self, name: str) -> str | None:
        """Return the resolved path of *name*, or ``None`` when unavailable."""

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        stdin_path: Path | None = None,
    ) -> int:
        """Run *argv* to completion and return its exit status."""


@dataclass(slots=True)
class SubprocessRunner:
    log_path: Path

    def which(self, name: str) -> str | None:
        return shutil.which(name)

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        stdin_path: Path | None = None,
    ) -> int:
        command = list(argv)
        full_env = dict(os.environ)
        if env:
            full_env.update(env)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with ExitStack() as stack:
            log = stack.enter_context(open(self.log_path, "a", encoding="utf-8"))
            log.write(f"+ {shlex.join(command)}\n")
            if cwd is not None:
                log.write(f"  (cwd: {cwd})\n")
            log.flush()
            stdin = (
                stack.enter_context(open(stdin_path, "rb"))
                if stdin_path is not None
                else subprocess.DEVNULL
            )
            try:
                completed = subprocess.run(
                    command,
                    cwd=cwd,
                    env=full_env,
                    stdin=stdin,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    check=False,
                )
            except FileNotFoundError as exc:
                log.write(f"{exc}\n")
                return COMMAND_NOT_FOUND
            except OSError as exc:
                log.write(f"{exc}\n")
                return COMMAND_NOT_EXECUTABLE
            log.write(f"  exit status {completed.returncode}\n")
            return completed.returncode

    def tail(self, lines: int = 10) -> list[str]:
        return tail_lines(self.log_path, lines)


def tail_lines(path: Path, lines: int = 10) -> list[str]:
    if not path.exists():
        return []
    with open(path, encoding="utf-8", errors="replace") as handle:
        return [line.rstrip("\n") for line in deque(handle, maxlen=lines)]


@contextmanager
def follow_log(log_path: Path, *, enabled: bool) -> Iterator[subprocess.Popen[bytes] | None]:
    """Mirror the run log to the terminal with ``tail -f`` while the block runs."""
    tail = shutil.which("tail") if enabled else None
    if tail is None:
        yield None
        return
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_path.touch(exist_ok=True)
    process = subprocess.Popen([tail, "-n", "0", "-f", str(log_path)])
    try:
        yield process
    finally:
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()


__all__ = [
    "COMMAND_NOT_EXECUTABLE",
    "COMMAND_NOT_FOUND",
    "Runner",
    "SubprocessRunner",
    "follow_log",
    "tail_lines",
]
