"""Cell value coercion at the store boundary.

Raw cells arrive as whatever the store hands back: strings, numbers,
booleans, datetimes or None. Each declared column type has a coercion rule
and a default for empty cells:

=========  =====================================  ==============
Type       Rule                                   Empty default
=========  =====================================  ==============
string     ``str(value).strip()``                 ``""``
number     ``float(value)``; unparseable → 0      ``0``
date       aware UTC datetime; unparseable → None ``None``
boolean    true for ``yes``, ``true``, ``1``      ``False``
=========  =====================================  ==============
"""

import logging
import math
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

_DATETIME_FORMATS = (
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%Y-%m-%d %H:%M:%S",
)

TRUE_STRINGS = frozenset({"yes", "true", "1", "y", "checked", "on"})


class CellType(str, Enum):
    """Declared type of a table column."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


def is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a cell or form value into an aware UTC datetime.

    Naive values are taken to be UTC. Returns None for empty or
    unparseable input.
    """
    if is_empty(value):
        return None

    parsed: Optional[datetime] = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in _DATETIME_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue

    if parsed is None:
        logger.warning("Unparseable date value", extra={"value": repr(value)})
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_number(value: Any) -> float:
    if is_empty(value) or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = math.nan
    if not math.isfinite(number):
        logger.warning("Unparseable number value", extra={"value": repr(value)})
        return 0.0
    return number


def parse_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if is_empty(value):
        return False
    return str(value).strip().lower() in TRUE_STRINGS


def coerce_cell(value: Any, cell_type: CellType) -> Any:
    """Convert a raw cell to its declared type, applying empty defaults."""
    if cell_type == CellType.NUMBER:
        return parse_number(value)
    if cell_type == CellType.DATE:
        return parse_datetime(value)
    if cell_type == CellType.BOOLEAN:
        return parse_boolean(value)
    return "" if is_empty(value) else str(value).strip()
