"""Unified diff application before the first build step."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import BinaryIO

from pkgforge.errors import PatchApplyFailed
from pkgforge.runner import Runner


def read_patch(stream: BinaryIO, dest: Path) -> Path:
    """Copy a diff from *stream* (usually stdin) into *dest*."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    with open(dest, "wb") as handle:
        shutil.copyfileobj(stream, handle)
    return dest


def strip_level(diff: str) -> int:
    """``1`` for git-style ``a/``/``b/`` prefixed paths, otherwise ``0``."""
    for line in diff.splitlines():
        if line.startswith(("--- a/", "+++ b/")):
            return 1
    return 0


def apply_patch(runner: Runner, patch_file: Path, *, source_dir: Path) -> int:
    level = strip_level(patch_file.read_text(encoding="utf-8", errors="replace"))
    status = runner.run(
        ["patch", f"-p{level}", "--force", "-i", str(patch_file.absolute())],
        cwd=source_dir,
    )
    if status != 0:
        raise PatchApplyFailed(
            "Failed to apply patch.",
            hint="Check that the patch targets this source version.",
            context={
                "patch": str(patch_file),
                "strip_level": str(level),
                "returncode": str(status),
            },
        )
    return level
