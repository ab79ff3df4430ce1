"""Structured logging and user-facing progress helpers."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TextIO


class UnverifiedChecksumWarning(UserWarning):
    """Warning raised when no digest tool can check a downloaded artifact."""


class EndOfLifeWarning(UserWarning):
    """Warning raised when a definition marks its package as unmaintained."""


@dataclass(slots=True)
class StructuredLogger:
    records: list[dict[str, Any]] = field(default_factory=list)

    def log(
        self,
        *,
        operation: str,
        package: str | None,
        message: str,
        step: str | None = None,
        level: str = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "level": level,
            "operation": operation,
            "package": package,
            "step": step,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        self.records.append(record)

    def records_for_package(self, package: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("package") == package]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(record, sort_keys=True, default=str) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path


@dataclass(slots=True)
class Reporter:
    """Short human-readable progress lines; tool output goes to the run log."""

    stream: TextIO = field(default_factory=lambda: sys.stderr)

    def progress(self, message: str) -> None:
        self._write(f"-> {message}")

    def info(self, message: str) -> None:
        self._write(message)

    def warning(self, message: str) -> None:
        self._write(f"WARNING: {message}")

    def _write(self, line: str) -> None:
        self.stream.write(line + "\n")
        self.stream.flush()


__all__ = ["EndOfLifeWarning", "Reporter", "StructuredLogger", "UnverifiedChecksumWarning"]
