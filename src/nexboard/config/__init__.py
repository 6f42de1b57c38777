"""Configuration helpers for the dashboard backend."""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
