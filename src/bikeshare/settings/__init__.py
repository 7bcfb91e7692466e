"""Operational settings loaded from the config collaborator."""

from bikeshare.settings.cache import CACHE_KEY, SettingsCache, get_settings_cache
from bikeshare.settings.models import (
    ARRAY_SEPARATOR,
    CONFIG_SECTIONS,
    ConfigSection,
    SectionValueType,
    SettingsSnapshot,
    coerce_setting,
    parse_section,
)

__all__ = [
    "ARRAY_SEPARATOR",
    "CACHE_KEY",
    "CONFIG_SECTIONS",
    "ConfigSection",
    "SectionValueType",
    "SettingsCache",
    "SettingsSnapshot",
    "coerce_setting",
    "get_settings_cache",
    "parse_section",
]
