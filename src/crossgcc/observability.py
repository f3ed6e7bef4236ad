"""Structured logging and observability helpers."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

Echo = Callable[[str], None]


@dataclass(slots=True)
class StructuredLogger:
    """Collects structured records and optionally echoes them for humans.

    ``echo`` is the output sink; leaving it unset keeps the logger silent,
    which is what tests and library callers usually want.
    """

    records: list[dict[str, Any]] = field(default_factory=list)
    echo: Echo | None = None

    def log(
        self,
        *,
        operation: str,
        message: str,
        component: str | None = None,
        stage: str | None = None,
        level: str = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "level": level,
            "operation": operation,
            "component": component,
            "stage": stage,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        self.records.append(record)
        if self.echo is not None:
            self.echo(_render(record))

    def header(self, title: str) -> None:
        self.log(operation="header", message=title)

    def warn(self, message: str, *, operation: str, **kwargs: Any) -> None:
        self.log(operation=operation, message=message, level="warning", **kwargs)

    def records_for_stage(self, stage: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("stage") == stage]

    def records_for_operation(self, operation: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("operation") == operation]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(record, sort_keys=True) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path


def _render(record: dict[str, Any]) -> str:
    if record["operation"] == "header":
        bar = "=" * (len(record["message"]) + 8)
        return f"\n{bar}\n==  {record['message']}  ==\n{bar}\n"
    if record["level"] == "warning":
        return f"warning: {record['message']}"
    if record["level"] == "error":
        return f"error: {record['message']}"
    return str(record["message"])
