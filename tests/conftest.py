"""Shared fixtures: an in-memory workbook seeded with bikes, users and config."""

from typing import Any, Dict, List, Optional, Sequence

import pytest

from bikeshare.lock import GlobalLock
from bikeshare.settings.cache import SettingsCache
from bikeshare.store.memory import InMemoryRowStore

BIKES_TABLE = "Bikes Status"
USERS_TABLE = "User Status"
LOG_TABLE = "Transaction Log"

BIKE_HEADER = [
    "Bike Name",
    "Size",
    "Maintenance Status",
    "Availability",
    "Last Checkout Date",
    "Last Return Date",
    "Current Usage Timer",
    "Total Usage Hours",
    "Most Recent User",
    "Second Recent User",
    "Third Recent User",
    "Temp Recent",
    "Bike Hash",
]

USER_HEADER = [
    "Email",
    "Has Unreturned Bike",
    "Last Checkout Name",
    "Last Checkout Date",
    "Last Return Name",
    "Last Return Date",
    "Number of Checkouts",
    "Number of Returns",
    "Number of Mismatches",
    "Usage Hours",
    "Overdue Returns",
    "First Usage Date",
]

DEFAULT_SYSTEM = {
    "SYSTEM_ACTIVE": "TRUE",
    "CAN_CHECKOUT_WITH_UNRETURNED_BIKE": "FALSE",
    "CAN_RETURN_WITH_MISMATCHED_NAME": "FALSE",
}
DEFAULT_REGULATIONS = {"MAX_CHECKOUT_HOURS": 72, "FUZZY_MATCHING_THRESHOLD": 0.3}
DEFAULT_GENERAL = {
    "ALLOWED_EMAIL_DOMAIN": "amherst.edu",
    "ADMIN_EMAIL": "admin@amherst.edu",
}
DEFAULT_LISTS = {"IGNORED_ISSUE_STATEMENTS": "none___n/a___no issues"}


def bike_row(
    name: str,
    availability: str = "Available",
    bike_hash: str = "",
    last_checkout: Any = "",
    recent: Sequence[str] = ("", "", ""),
    evicted: str = "",
    total_hours: float = 0,
    maintenance: str = "Good",
    timer: float = 0,
) -> List[Any]:
    return [
        name,
        "M",
        maintenance,
        availability,
        last_checkout,
        "",
        timer,
        total_hours,
        *recent,
        evicted,
        bike_hash,
    ]


def user_row(
    email: str,
    has_unreturned: bool = False,
    last_checkout_name: str = "",
    last_checkout_date: Any = "",
    checkouts: int = 0,
    returns: int = 0,
    mismatches: int = 0,
    usage_hours: float = 0,
    overdue: int = 0,
    first_usage: Any = "",
) -> List[Any]:
    return [
        email,
        "Yes" if has_unreturned else "No",
        last_checkout_name,
        last_checkout_date,
        "",
        "",
        checkouts,
        returns,
        mismatches,
        usage_hours,
        overdue,
        first_usage,
    ]


def _section(values: Dict[str, Any]) -> List[List[Any]]:
    return [["Key", "Value"]] + [[k, v] for k, v in values.items()]


def build_tables(
    bikes: Optional[List[List[Any]]] = None,
    users: Optional[List[List[Any]]] = None,
    system: Optional[Dict[str, Any]] = None,
    regulations: Optional[Dict[str, Any]] = None,
    general: Optional[Dict[str, Any]] = None,
    lists: Optional[Dict[str, Any]] = None,
    notifications: Optional[Dict[str, Any]] = None,
) -> Dict[str, List[List[Any]]]:
    return {
        BIKES_TABLE: [BIKE_HEADER] + list(bikes or []),
        USERS_TABLE: [USER_HEADER] + list(users or []),
        LOG_TABLE: [["Timestamp", "Run", "Operation"]],
        "System": _section({**DEFAULT_SYSTEM, **(system or {})}),
        "Regulations": _section({**DEFAULT_REGULATIONS, **(regulations or {})}),
        "General": _section({**DEFAULT_GENERAL, **(general or {})}),
        "Lists": _section({**DEFAULT_LISTS, **(lists or {})}),
        "Notifications": _section(
            {"CFM_USR_COT_001": "Enjoy your ride on {bikeName}", **(notifications or {})}
        ),
    }


@pytest.fixture
def make_store():
    """Factory fixture: ``make_store(bikes=[...], users=[...], system={...})``."""

    def _make(**kwargs) -> InMemoryRowStore:
        return InMemoryRowStore(build_tables(**kwargs))

    return _make


@pytest.fixture
def make_bike_row():
    return bike_row


@pytest.fixture
def make_user_row():
    return user_row


@pytest.fixture
def lock():
    return GlobalLock(name="test-lock", timeout_seconds=2.0)


@pytest.fixture
def settings_cache_for():
    """Factory fixture building a SettingsCache over a store."""

    def _make(store: InMemoryRowStore) -> SettingsCache:
        return SettingsCache(store)

    return _make
