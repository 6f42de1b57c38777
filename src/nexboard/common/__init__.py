"""Common types used across the system."""

from .types import Alert, AppHealth, HealthStatus, Severity, utc_now

__all__ = ["Alert", "AppHealth", "HealthStatus", "Severity", "utc_now"]
