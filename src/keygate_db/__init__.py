"""Shared database schema + migrations for keygate."""

from .base import NAMING_CONVENTION, Base, TimestampMixin, generate_id, metadata, utc_now
from .settings import Settings, get_settings, reload_settings
from .types import UTCDateTime

__all__ = [
    "Base",
    "metadata",
    "NAMING_CONVENTION",
    "UTCDateTime",
    "TimestampMixin",
    "generate_id",
    "utc_now",
    "Settings",
    "get_settings",
    "reload_settings",
]
