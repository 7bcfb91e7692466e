"""Process-wide settings cache.

The cache holds one SettingsSnapshot under a single cache key. It loads
lazily on first access, reloads on ``force_refresh`` and is cleared by
``invalidate()``; there is no time-based expiry. Reads are not serialized
with pipeline runs, so a run may observe a snapshot that a concurrent
settings change is about to replace.
"""

import logging
import threading
from typing import Dict, List, Optional, Sequence

from bikeshare.errors import ConfigLoadError
from bikeshare.settings.models import (
    CONFIG_SECTIONS,
    ConfigSection,
    SettingsSnapshot,
    parse_section,
)
from bikeshare.store.protocol import ConfigSource

logger = logging.getLogger(__name__)

CACHE_KEY = "bikeshare.settings"


class SettingsCache:
    """Lazily loaded, explicitly invalidated settings snapshot.

    Attributes:
        source: The config collaborator.
        sections: Declared configuration sections to load.

    Example:
        >>> cache = SettingsCache(InMemoryRowStore(tables))
        >>> snapshot = cache.get_snapshot()
        >>> snapshot.get_max_checkout_hours()
        72.0
    """

    def __init__(
        self,
        source: ConfigSource,
        sections: Sequence[ConfigSection] = CONFIG_SECTIONS,
    ):
        self.source = source
        self.sections = tuple(sections)
        self._cache: Dict[str, SettingsSnapshot] = {}
        self._lock = threading.Lock()

    def get_snapshot(self, force_refresh: bool = False) -> SettingsSnapshot:
        """Return the cached snapshot, loading it on a miss or when forced.

        Args:
            force_refresh: Reload from the config collaborator even if a
                snapshot is cached.

        Returns:
            The current SettingsSnapshot.

        Raises:
            ConfigLoadError: If no section could be loaded, or if a refresh
                was forced and a required section is missing.
        """
        with self._lock:
            snapshot = self._cache.get(CACHE_KEY)
            if snapshot is None or force_refresh:
                snapshot = self._load(strict=force_refresh)
                self._cache[CACHE_KEY] = snapshot
            return snapshot

    def refresh(self, force: bool = True) -> SettingsSnapshot:
        """Reload settings; used when the config store reports a change."""
        return self.get_snapshot(force_refresh=force)

    def invalidate(self) -> None:
        with self._lock:
            self._cache.pop(CACHE_KEY, None)
        logger.info("Settings cache invalidated")

    # ------------------------------------------------------------------
    # Typed accessors over the current snapshot
    # ------------------------------------------------------------------

    def is_system_active(self) -> bool:
        return self.get_snapshot().is_system_active()

    def get_max_checkout_hours(self) -> float:
        return self.get_snapshot().get_max_checkout_hours()

    def get_fuzzy_threshold(self) -> float:
        return self.get_snapshot().get_fuzzy_threshold()

    def get_admin_email(self) -> str:
        return self.get_snapshot().get_admin_email()

    def get_allowed_email_domain(self) -> str:
        return self.get_snapshot().get_allowed_email_domain()

    def can_checkout_with_unreturned_bike(self) -> bool:
        return self.get_snapshot().can_checkout_with_unreturned_bike()

    def can_return_with_mismatched_name(self) -> bool:
        return self.get_snapshot().can_return_with_mismatched_name()

    def get_table_name(self, key: str) -> str:
        return self.get_snapshot().get_table_name(key)

    def get_notification_messages(self) -> Dict[str, str]:
        return self.get_snapshot().get_notification_messages()

    def get_ignored_issue_statements(self) -> List[str]:
        return self.get_snapshot().get_ignored_issue_statements()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(self, strict: bool) -> SettingsSnapshot:
        loaded: Dict[str, Dict] = {}
        for section in self.sections:
            try:
                rows = self.source.get_all_rows(section.table, section.range_ref)
            except Exception:
                logger.warning(
                    "Failed to load config section",
                    exc_info=True,
                    extra={"section": section.name, "table": section.table},
                )
                continue
            loaded[section.name] = parse_section(section, rows)

        if not loaded:
            raise ConfigLoadError("No configuration sections could be loaded")

        missing = [s.name for s in self.sections if s.required and s.name not in loaded]
        if missing:
            if strict:
                raise ConfigLoadError(
                    f"Required configuration sections missing: {', '.join(missing)}",
                    missing_sections=missing,
                )
            logger.warning(
                "Required configuration sections missing, using defaults",
                extra={"missing_sections": missing},
            )

        logger.info(
            "Loaded settings",
            extra={"sections": sorted(loaded), "strict": strict},
        )
        return SettingsSnapshot(sections=loaded)


_default_cache: Optional[SettingsCache] = None


def get_settings_cache(source: Optional[ConfigSource] = None) -> SettingsCache:
    """Get or create the process-wide settings cache.

    The first call must supply the config source; later calls return the
    same instance. Passing a source again rebinds the shared cache.

    Raises:
        RuntimeError: If no cache exists yet and no source is given.
    """
    global _default_cache

    if source is not None:
        _default_cache = SettingsCache(source)
    if _default_cache is None:
        raise RuntimeError("Settings cache has not been initialized")
    return _default_cache
