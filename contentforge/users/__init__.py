"""Per-owner settings."""

from contentforge.users.models import DEFAULT_SETTINGS, UserSettings
from contentforge.users.store import get_settings_store

__all__ = ["DEFAULT_SETTINGS", "UserSettings", "get_settings_store"]
