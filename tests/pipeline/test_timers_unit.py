"""Unit tests for the usage timer job and manual dashboard edits."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from bikeshare.errors import LockTimeoutError
from bikeshare.lock import GlobalLock
from bikeshare.manual import ManualEdit, ManualEditHandler
from bikeshare.settings.cache import SettingsCache
from bikeshare.state.loader import StateLoader
from bikeshare.timers import UsageTimerJob

from conftest import BIKES_TABLE, USERS_TABLE

CHECKED_OUT_AT = datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def fleet(make_store, make_bike_row):
    return make_store(
        bikes=[
            make_bike_row(
                "Trek 100", availability="Checked Out", last_checkout=CHECKED_OUT_AT.isoformat()
            ),
            make_bike_row(
                "Schwinn Blue",
                availability="Checked Out",
                last_checkout=(CHECKED_OUT_AT - timedelta(hours=76)).isoformat(),
            ),
            make_bike_row("Giant Red", timer=3),
            make_bike_row("Cannondale", availability="Checked Out"),
        ]
    )


class TestUsageTimerJob:
    def test_accrues_timers_and_counts_overdue(self, fleet, lock):
        now = CHECKED_OUT_AT + timedelta(hours=4)

        result = UsageTimerJob(fleet, SettingsCache(fleet), lock).run(now=now)

        assert result.checked_out_bikes == 3
        assert result.overdue_bikes == ["Schwinn Blue"]
        assert result.overdue_count == 1
        assert result.skipped == ["Cannondale"]
        assert result.updates_applied == 2
        assert result.failed_writes == []
        # One batched call for both timer rows
        assert fleet.calls == [("write_row_batch", BIKES_TABLE)]

        bikes = {b.name: b for b in StateLoader(fleet, BIKES_TABLE, USERS_TABLE).load_state().bikes}
        assert bikes["Trek 100"].current_usage_timer == 4.0
        assert bikes["Schwinn Blue"].current_usage_timer == 80.0
        assert bikes["Giant Red"].current_usage_timer == 3.0
        assert bikes["Trek 100"].availability == "checked out"

    def test_future_checkout_date_is_skipped(self, make_store, make_bike_row, lock):
        store = make_store(
            bikes=[
                make_bike_row(
                    "Trek 100",
                    availability="Checked Out",
                    last_checkout=(CHECKED_OUT_AT + timedelta(days=1)).isoformat(),
                )
            ]
        )

        result = UsageTimerJob(store, SettingsCache(store), lock).run(now=CHECKED_OUT_AT)

        assert result.skipped == ["Trek 100"]
        assert result.updates_applied == 0
        assert store.calls == []

    def test_nothing_checked_out(self, make_store, make_bike_row, lock):
        store = make_store(bikes=[make_bike_row("Trek 100")])

        result = UsageTimerJob(store, SettingsCache(store), lock).run(now=CHECKED_OUT_AT)

        assert result.checked_out_bikes == 0
        assert store.calls == []

    def test_waits_for_the_global_lock(self, fleet):
        lock = GlobalLock(name="bikes", timeout_seconds=0.05)
        acquired = threading.Event()
        release = threading.Event()

        def holder():
            with lock.hold(owner="submission"):
                acquired.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        acquired.wait(5)
        try:
            with pytest.raises(LockTimeoutError):
                UsageTimerJob(fleet, SettingsCache(fleet), lock).run(now=CHECKED_OUT_AT)
        finally:
            release.set()
            thread.join(5)

        assert fleet.calls == []


class TestManualEditHandler:
    @pytest.fixture
    def handler(self, make_store, make_bike_row, lock):
        store = make_store(bikes=[make_bike_row("Trek 100", maintenance="Has Issue")])
        store.notes[f"{BIKES_TABLE}!C2"] = "Brakes squeak"
        return ManualEditHandler(store, SettingsCache(store), lock)

    def test_resolving_issue_clears_note(self, handler):
        edit = ManualEdit(table=BIKES_TABLE, row=2, column=3, old_value="Has Issue", new_value="Good")

        assert handler.handle(edit) is True
        assert handler.store.notes == {}
        assert handler.store.calls == [("mark_cell", f"{BIKES_TABLE}!C2")]

    @pytest.mark.parametrize(
        "edit",
        [
            ManualEdit(table="User Status", row=2, column=3, old_value="Has Issue", new_value="Good"),
            ManualEdit(table=BIKES_TABLE, row=2, column=4, old_value="Has Issue", new_value="Good"),
            ManualEdit(table=BIKES_TABLE, row=1, column=3, old_value="Has Issue", new_value="Good"),
            ManualEdit(table=BIKES_TABLE, row=2, column=3, old_value="Good", new_value="In Repair"),
            ManualEdit(table=BIKES_TABLE, row=2, column=3, old_value="has issue", new_value=" HAS ISSUE"),
        ],
    )
    def test_unrelated_edits_are_ignored(self, handler, edit):
        assert handler.handle(edit) is False
        assert handler.store.notes == {f"{BIKES_TABLE}!C2": "Brakes squeak"}
        assert handler.store.calls == []

    def test_edit_requires_one_based_cell(self):
        with pytest.raises(ValueError):
            ManualEdit(table=BIKES_TABLE, row=0, column=3)
