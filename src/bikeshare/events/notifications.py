"""Hand-off of notification intents to the notification collaborator.

Rendering and delivery are the collaborator's job. This module only
defines the sink interface it must satisfy, a logging sink for local
development, the dispatcher the orchestrator calls after commit, and the
mark that colors and annotates a submission's source row.
Delivery is best effort: a failing sink is logged and never turns a
committed run into a failed one.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from bikeshare.events.models import NotificationChannel, NotificationIntent
from bikeshare.settings.models import SettingsSnapshot
from bikeshare.store.models import CellMark

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationSink(Protocol):
    """Protocol for the notification collaborator."""

    def send(self, intent: NotificationIntent) -> None:
        """Render and deliver one intent. May raise on delivery failure."""
        ...


class LoggingNotificationSink:
    """Sink that logs intents, with their message template when known.

    Attributes:
        messages: Notification code to message template map.
    """

    def __init__(self, messages: Optional[Dict[str, str]] = None):
        self.messages = dict(messages or {})

    def send(self, intent: NotificationIntent) -> None:
        logger.info(
            "Notification %s for %s: %s",
            intent.code,
            intent.channel.value,
            self.messages.get(intent.code, "(no template)"),
            extra={
                "code": intent.code,
                "channel": intent.channel.value,
                "fields": intent.fields,
            },
        )


class NotificationDispatcher:
    """Delivers intents to a sink, honoring per-channel enable flags.

    Sheet notes are always delivered; user, admin and developer channels
    can each be switched off in the system settings.
    """

    def __init__(self, sink: NotificationSink):
        self.sink = sink

    def dispatch(
        self,
        intents: Sequence[NotificationIntent],
        settings: Optional[SettingsSnapshot] = None,
    ) -> List[NotificationIntent]:
        """Send each intent; return the ones the sink accepted."""
        delivered: List[NotificationIntent] = []
        for intent in intents:
            if (
                settings is not None
                and intent.channel != NotificationChannel.SHEET_NOTE
                and not settings.is_channel_enabled(intent.channel.value)
            ):
                logger.debug(
                    "Notification channel disabled, dropping intent",
                    extra={"code": intent.code, "channel": intent.channel.value},
                )
                continue
            try:
                self.sink.send(intent)
                delivered.append(intent)
            except Exception:
                logger.exception(
                    "Failed to deliver notification",
                    extra={"code": intent.code, "channel": intent.channel.value},
                )
        return delivered


class _TemplateFields(dict):
    """Field map that leaves unknown placeholders in place."""

    def __missing__(self, key):
        return "{" + key + "}"


def render_template(template: str, fields: Dict[str, Any]) -> str:
    """Fill ``{name}`` placeholders from intent fields."""
    try:
        return template.format_map(_TemplateFields(fields))
    except (AttributeError, IndexError, ValueError):
        logger.warning("Malformed message template", extra={"template": template})
        return template


def source_mark(
    range_ref: Optional[str],
    intent: NotificationIntent,
    settings: SettingsSnapshot,
) -> Optional[CellMark]:
    """Build the mark for a submission's source row, if the intent's code has one.

    Returns None when there is no source row or when neither a color nor a
    note is configured for the code.
    """
    if not range_ref:
        return None
    color, note = settings.get_entry_mark(intent.code)
    if not color and not note:
        return None
    return CellMark(
        range_ref=range_ref,
        color=color or None,
        note=render_template(note, intent.fields) if note else None,
    )
