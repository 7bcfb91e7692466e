"""Settings snapshot models.

Operational settings live in key/value tables of the config collaborator.
Each table is declared as a ConfigSection with the type its values are
coerced to. A SettingsSnapshot is the immutable result of loading every
section once; a pipeline run receives one snapshot at its start and keeps
it for its whole duration.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Tuple

from pydantic import BaseModel, ConfigDict, Field

from bikeshare.state.coercion import TRUE_STRINGS, is_empty, parse_datetime

logger = logging.getLogger(__name__)

ARRAY_SEPARATOR = "___"


class SectionValueType(str, Enum):
    """How the values of a configuration section are coerced."""

    NUMBER = "number"
    BUTTON = "button"
    DATETIME = "datetime"
    ARRAY = "array"
    STRING = "string"


class ConfigSection(NamedTuple):
    name: str
    table: str
    range_ref: str
    value_type: SectionValueType
    required: bool = False


CONFIG_SECTIONS: Tuple[ConfigSection, ...] = (
    ConfigSection("system", "System", "A2:B", SectionValueType.BUTTON, required=True),
    ConfigSection(
        "regulations", "Regulations", "A2:B", SectionValueType.NUMBER, required=True
    ),
    ConfigSection("general", "General", "A2:B", SectionValueType.STRING, required=True),
    ConfigSection("lists", "Lists", "A2:B", SectionValueType.ARRAY),
    ConfigSection("notifications", "Notifications", "A2:B", SectionValueType.STRING),
)


# ---------------------------------------------------------------------------
# Defaults used when a key is absent
# ---------------------------------------------------------------------------

DEFAULT_MAX_CHECKOUT_HOURS = 72.0
DEFAULT_FUZZY_THRESHOLD = 0.3
DEFAULT_EMAIL_DOMAIN = "amherst.edu"
DEFAULT_TABLE_NAMES: Dict[str, str] = {
    "BIKES_TABLE": "Bikes Status",
    "USERS_TABLE": "User Status",
    "LOG_TABLE": "Transaction Log",
}

_CHANNEL_FLAGS = {
    "user": "ENABLE_USER_NOTIFICATIONS",
    "admin": "ENABLE_ADMIN_NOTIFICATIONS",
    "developer": "ENABLE_DEV_NOTIFICATIONS",
}


def coerce_setting(value: Any, value_type: SectionValueType) -> Any:
    """Convert a raw config cell to the section's declared type.

    Raises:
        ValueError: If a number or datetime cell cannot be parsed.
    """
    if value_type == SectionValueType.NUMBER:
        if isinstance(value, bool) or is_empty(value):
            raise ValueError(f"not a number: {value!r}")
        return float(value)
    if value_type == SectionValueType.BUTTON:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in TRUE_STRINGS
    if value_type == SectionValueType.DATETIME:
        parsed = parse_datetime(value)
        if parsed is None:
            raise ValueError(f"not a datetime: {value!r}")
        return parsed
    if value_type == SectionValueType.ARRAY:
        if is_empty(value):
            return []
        return [
            item.strip().lower()
            for item in str(value).split(ARRAY_SEPARATOR)
            if item.strip()
        ]
    return "" if is_empty(value) else str(value).strip()


def parse_section(section: ConfigSection, rows: List[List[Any]]) -> Dict[str, Any]:
    """Turn key/value rows into a dict, skipping blank and invalid entries."""
    values: Dict[str, Any] = {}
    for row in rows:
        if not row or is_empty(row[0]):
            continue
        key = str(row[0]).strip().upper()
        raw = row[1] if len(row) > 1 else None
        try:
            values[key] = coerce_setting(raw, section.value_type)
        except (TypeError, ValueError):
            logger.warning(
                "Skipping invalid setting",
                extra={"section": section.name, "key": key, "value": repr(raw)},
            )
    return values


class SettingsSnapshot(BaseModel):
    """Immutable view of every loaded configuration section.

    Accessors fall back to documented defaults when a key is absent, so a
    snapshot built from an empty dict is a valid all-defaults configuration.
    """

    model_config = ConfigDict(frozen=True)

    sections: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    loaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def get(self, section: str, key: str, default: Any = None) -> Any:
        return self.sections.get(section, {}).get(key.upper(), default)

    # System flags

    def is_system_active(self) -> bool:
        return bool(self.get("system", "SYSTEM_ACTIVE", True))

    def can_checkout_with_unreturned_bike(self) -> bool:
        return bool(self.get("system", "CAN_CHECKOUT_WITH_UNRETURNED_BIKE", False))

    def can_return_with_mismatched_name(self) -> bool:
        return bool(self.get("system", "CAN_RETURN_WITH_MISMATCHED_NAME", False))

    def is_channel_enabled(self, channel: str) -> bool:
        flag = _CHANNEL_FLAGS.get(channel)
        if flag is None:
            return True
        return bool(self.get("system", flag, True))

    # Regulations

    def get_max_checkout_hours(self) -> float:
        return float(self.get("regulations", "MAX_CHECKOUT_HOURS", DEFAULT_MAX_CHECKOUT_HOURS))

    def get_fuzzy_threshold(self) -> float:
        return float(
            self.get("regulations", "FUZZY_MATCHING_THRESHOLD", DEFAULT_FUZZY_THRESHOLD)
        )

    # General

    def get_admin_email(self) -> str:
        return self.get("general", "ADMIN_EMAIL", "")

    def get_allowed_email_domain(self) -> str:
        return str(self.get("general", "ALLOWED_EMAIL_DOMAIN", DEFAULT_EMAIL_DOMAIN)).lower()

    def get_table_name(self, key: str) -> str:
        key = key.upper()
        return self.get("general", key, DEFAULT_TABLE_NAMES.get(key, ""))

    @property
    def bikes_table(self) -> str:
        return self.get_table_name("BIKES_TABLE")

    @property
    def users_table(self) -> str:
        return self.get_table_name("USERS_TABLE")

    @property
    def log_table(self) -> str:
        return self.get_table_name("LOG_TABLE")

    # Lists and messages

    def get_ignored_issue_statements(self) -> List[str]:
        return list(self.get("lists", "IGNORED_ISSUE_STATEMENTS", []))

    def get_notification_messages(self) -> Dict[str, str]:
        return dict(self.sections.get("notifications", {}))

    def get_entry_mark(self, code: str) -> Tuple[str, str]:
        """Background color and note template marking a source row for ``code``.

        Read from the ``<CODE>_COLOR`` and ``<CODE>_NOTE`` notification keys;
        either may be empty.
        """
        return (
            self.get("notifications", f"{code}_COLOR", ""),
            self.get("notifications", f"{code}_NOTE", ""),
        )
