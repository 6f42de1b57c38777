"""Domain records shared between producers and the live event stream."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Optional, Tuple

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Severity(str, Enum):
    """Alert severity."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AppHealth(str, Enum):
    """Health state of a monitored application."""
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


class Alert(BaseModel):
    """System alert raised against a monitored application."""
    id: int
    source: str
    severity: Severity = Severity.INFO
    title: str
    message: str = ""
    payload: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    acknowledged: bool = False


class HealthStatus(BaseModel):
    """Result of a health check against a monitored application."""
    app_id: int
    status: AppHealth = AppHealth.UNKNOWN
    latency: Optional[int] = None  # milliseconds
    last_check: datetime = Field(default_factory=utc_now)
    status_code: Optional[int] = None
    error: Optional[str] = None

    # Fields left out of the wire payload when unset.
    omit_if_none: ClassVar[Tuple[str, ...]] = ("status_code", "error")

    def to_payload(self) -> dict:
        data = self.model_dump(mode="json")
        for name in self.omit_if_none:
            if data.get(name) is None:
                data.pop(name, None)
        return data
