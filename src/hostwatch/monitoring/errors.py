"""Structured error for probe and persistence failures."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class MonitorError(Exception):
    """Structured error raised by probes and the snapshot store."""

    code: str
    message: str
    details: dict[str, Any] | None = None
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details or {},
            "retryable": self.retryable,
        }
