"""Transformation log entry model."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["info", "verbose", "debug", "warning", "error"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LogEntry(BaseModel):
    """One immutable event emitted during a transformation run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    severity: Severity
    message: str
    page_id: str | None = None
    step: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)
