"""Unit tests for the validation step chains."""

from datetime import datetime, timezone

import pytest

from bikeshare.intake.models import CheckoutForm, Operation, ReturnForm
from bikeshare.settings.cache import SettingsCache
from bikeshare.state.loader import StateLoader
from bikeshare.steps.base import EventContext, PipelineContext
from bikeshare.steps.validation import (
    CHECKOUT_VALIDATION,
    RETURN_VALIDATION,
    is_valid_email,
)

TS = datetime(2025, 3, 2, 12, 0, tzinfo=timezone.utc)
CHECKED_OUT_AT = "2025-03-01T10:00:00Z"


def _make_context(store, form) -> PipelineContext:
    settings = SettingsCache(store).get_snapshot()
    state = StateLoader(store, settings.bikes_table, settings.users_table).load_state()
    event = EventContext(
        run_id="run-1", operation=form.operation, received_at=TS, timestamp=TS
    )
    return PipelineContext(form=form, event=event, settings=settings, state=state)


def _checkout(email="alice@amherst.edu", bike_hash="BK-42") -> CheckoutForm:
    return CheckoutForm(timestamp=TS, email=email, bike_hash=bike_hash)


def _return(
    email="alice@amherst.edu",
    bike_name="Trek 100",
    confirm=None,
    friend=False,
    friend_email="",
) -> ReturnForm:
    return ReturnForm(
        timestamp=TS,
        email=email,
        bike_name=bike_name,
        confirm_bike_name=bike_name if confirm is None else confirm,
        returning_for_friend=friend,
        friend_email=friend_email,
    )


@pytest.fixture
def checkout_store(make_store, make_bike_row, make_user_row):
    def _make(**kwargs):
        bikes = kwargs.pop(
            "bikes",
            [
                make_bike_row("Trek 100", bike_hash="BK-42"),
                make_bike_row("Trek 101", availability="Checked Out", bike_hash="BK-43"),
            ],
        )
        return make_store(bikes=bikes, **kwargs)

    return _make


@pytest.fixture
def return_store(make_store, make_bike_row, make_user_row):
    """Trek 100 is checked out by alice."""

    def _make(**kwargs):
        users = kwargs.pop(
            "users",
            [
                make_user_row(
                    "alice@amherst.edu",
                    has_unreturned=True,
                    last_checkout_name="Trek 100",
                    last_checkout_date=CHECKED_OUT_AT,
                    checkouts=1,
                ),
                make_user_row("bob@amherst.edu"),
            ],
        )
        bikes = kwargs.pop(
            "bikes",
            [
                make_bike_row(
                    "Trek 100",
                    availability="Checked Out",
                    last_checkout=CHECKED_OUT_AT,
                    recent=("alice@amherst.edu", "", ""),
                ),
                make_bike_row("Schwinn Blue"),
            ],
        )
        return make_store(bikes=bikes, users=users, **kwargs)

    return _make


def test_is_valid_email():
    assert is_valid_email("a@amherst.edu", "amherst.edu") is True
    assert is_valid_email("a@AMHERST.edu", "amherst.edu") is True
    assert is_valid_email("a@gmail.com", "amherst.edu") is False
    assert is_valid_email("not an email", "amherst.edu") is False
    assert is_valid_email("", "amherst.edu") is False


class TestCheckoutValidation:
    def test_happy_path_resolves_bike_and_new_user(self, checkout_store):
        result = CHECKOUT_VALIDATION.run(_make_context(checkout_store(), _checkout()))

        assert result.ok
        assert result.context.bike.name == "Trek 100"
        assert result.context.user.email == "alice@amherst.edu"
        assert result.context.user.is_new
        assert result.executed == CHECKOUT_VALIDATION.step_names

    def test_invalid_email_stops_chain(self, checkout_store):
        result = CHECKOUT_VALIDATION.run(
            _make_context(checkout_store(), _checkout(email="alice@gmail.com"))
        )

        assert result.error.code == "ERR_USR_EMAIL_001"
        assert result.executed == ("validate_email_domain",)
        assert result.context.errors == ("ERR_USR_EMAIL_001",)
        assert result.context.bike is None

    def test_system_inactive(self, checkout_store):
        store = checkout_store(system={"SYSTEM_ACTIVE": "FALSE"})
        result = CHECKOUT_VALIDATION.run(_make_context(store, _checkout()))
        assert result.error.code == "ERR_OPR_COR_001"

    def test_unknown_bike(self, checkout_store):
        result = CHECKOUT_VALIDATION.run(
            _make_context(checkout_store(), _checkout(bike_hash="ZZ-99"))
        )
        assert result.error.code == "ERR_USR_COT_003"
        assert result.error.fields == {"bikeIdentifier": "ZZ-99"}

    def test_bike_not_available(self, checkout_store):
        result = CHECKOUT_VALIDATION.run(
            _make_context(checkout_store(), _checkout(bike_hash="BK-43"))
        )
        assert result.error.code == "ERR_USR_COT_004"

    def test_unreturned_bike_blocks_checkout(self, checkout_store, make_user_row):
        users = [
            make_user_row(
                "alice@amherst.edu",
                has_unreturned=True,
                last_checkout_name="Trek 101",
                last_checkout_date=CHECKED_OUT_AT,
            )
        ]
        result = CHECKOUT_VALIDATION.run(_make_context(checkout_store(users=users), _checkout()))

        assert result.error.code == "ERR_USR_COT_002"
        assert result.error.fields["unreturnedBikeName"] == "Trek 101"
        assert result.error.fields["lastCheckoutDate"] == datetime(
            2025, 3, 1, 10, 0, tzinfo=timezone.utc
        )

    def test_unreturned_bike_allowed_by_setting(self, checkout_store, make_user_row):
        users = [make_user_row("alice@amherst.edu", has_unreturned=True)]
        store = checkout_store(
            users=users, system={"CAN_CHECKOUT_WITH_UNRETURNED_BIKE": "TRUE"}
        )
        result = CHECKOUT_VALIDATION.run(_make_context(store, _checkout()))

        assert result.ok
        assert result.context.user.row_index == 2


class TestReturnValidation:
    def test_direct_return(self, return_store):
        result = RETURN_VALIDATION.run(_make_context(return_store(), _return()))

        assert result.ok
        assert result.context.user.email == "alice@amherst.edu"
        assert result.context.is_friend_return is False
        assert result.context.is_mismatch is False

    def test_unknown_bike(self, return_store):
        result = RETURN_VALIDATION.run(
            _make_context(return_store(), _return(bike_name="Cannondale Red"))
        )
        assert result.error.code == "ERR_USR_RET_002"

    def test_bike_not_checked_out(self, return_store):
        result = RETURN_VALIDATION.run(
            _make_context(return_store(), _return(bike_name="Schwinn Blue"))
        )
        assert result.error.code == "ERR_USR_RET_008"

    def test_confirmation_must_match_name(self, return_store):
        result = RETURN_VALIDATION.run(
            _make_context(return_store(), _return(confirm="Schwinn Blue"))
        )

        assert result.error.code == "ERR_USR_RET_001"
        assert result.error.fields == {
            "bikeName": "Trek 100",
            "confirmBikeName": "Schwinn Blue",
        }

    def test_submitter_without_open_checkout(self, return_store):
        result = RETURN_VALIDATION.run(
            _make_context(return_store(), _return(email="bob@amherst.edu"))
        )
        assert result.error.code == "ERR_USR_RET_006"

    def test_returned_bike_differs_from_checkout(self, return_store, make_user_row):
        users = [
            make_user_row(
                "alice@amherst.edu", has_unreturned=True, last_checkout_name="Schwinn Blue"
            )
        ]
        result = RETURN_VALIDATION.run(_make_context(return_store(users=users), _return()))
        assert result.error.code == "ERR_USR_RET_007"

    def test_mismatch_allowed_by_setting(self, return_store, make_user_row):
        users = [
            make_user_row(
                "alice@amherst.edu", has_unreturned=True, last_checkout_name="Schwinn Blue"
            )
        ]
        store = return_store(users=users, system={"CAN_RETURN_WITH_MISMATCHED_NAME": "TRUE"})
        result = RETURN_VALIDATION.run(_make_context(store, _return()))

        assert result.ok
        assert result.context.is_mismatch is True

    def test_friend_return(self, return_store):
        form = _return(email="bob@amherst.edu", friend=True, friend_email="alice@amherst.edu")
        result = RETURN_VALIDATION.run(_make_context(return_store(), form))

        assert result.ok
        assert result.context.is_friend_return is True
        assert result.context.user.email == "alice@amherst.edu"
        assert result.context.submitter.email == "bob@amherst.edu"

    def test_friend_return_without_friend_email(self, return_store):
        form = _return(email="bob@amherst.edu", friend=True)
        result = RETURN_VALIDATION.run(_make_context(return_store(), form))
        assert result.error.code == "ERR_USR_RET_004"

    def test_friend_email_outside_domain(self, return_store):
        form = _return(email="bob@amherst.edu", friend=True, friend_email="alice@gmail.com")
        result = RETURN_VALIDATION.run(_make_context(return_store(), form))
        assert result.error.code == "ERR_USR_EMAIL_002"

    def test_friend_is_not_the_holder(self, return_store):
        form = _return(email="bob@amherst.edu", friend=True, friend_email="carol@amherst.edu")
        result = RETURN_VALIDATION.run(_make_context(return_store(), form))
        assert result.error.code == "ERR_USR_RET_003"

    def test_friend_without_user_record(self, return_store, make_user_row):
        form = _return(email="bob@amherst.edu", friend=True, friend_email="alice@amherst.edu")
        store = return_store(users=[make_user_row("bob@amherst.edu")])
        result = RETURN_VALIDATION.run(_make_context(store, form))
        assert result.error.code == "ERR_USR_RET_010"


class TestReturnByNonHolder:
    """Trek100 is held by yara, Trek101 by xavi; the names fuzzy-match."""

    @pytest.fixture
    def two_holders(self, make_store, make_bike_row, make_user_row):
        def _make(**kwargs):
            return make_store(
                bikes=[
                    make_bike_row(
                        "Trek100",
                        availability="Checked Out",
                        last_checkout=CHECKED_OUT_AT,
                        recent=("yara@amherst.edu", "", ""),
                    ),
                    make_bike_row(
                        "Trek101",
                        availability="Checked Out",
                        last_checkout=CHECKED_OUT_AT,
                        recent=("xavi@amherst.edu", "", ""),
                    ),
                ],
                users=[
                    make_user_row(
                        "yara@amherst.edu", has_unreturned=True, last_checkout_name="Trek100"
                    ),
                    make_user_row(
                        "xavi@amherst.edu", has_unreturned=True, last_checkout_name="Trek101"
                    ),
                ],
                **kwargs,
            )

        return _make

    def test_similar_name_does_not_close_someone_elses_checkout(self, two_holders):
        form = _return(email="xavi@amherst.edu", bike_name="Trek100")
        result = RETURN_VALIDATION.run(_make_context(two_holders(), form))

        assert result.error.code == "ERR_USR_RET_007"
        assert result.error.fields == {"bikeName": "Trek100", "lastCheckoutName": "Trek101"}
        assert "yara@amherst.edu" not in result.error.fields.values()

    def test_mismatch_mode_still_requires_the_holder(self, two_holders):
        store = two_holders(system={"CAN_RETURN_WITH_MISMATCHED_NAME": "TRUE"})
        form = _return(email="xavi@amherst.edu", bike_name="Trek100")

        result = RETURN_VALIDATION.run(_make_context(store, form))

        assert result.error.code == "ERR_USR_RET_007"

    def test_holder_can_still_return(self, two_holders):
        form = _return(email="yara@amherst.edu", bike_name="Trek100")
        result = RETURN_VALIDATION.run(_make_context(two_holders(), form))

        assert result.ok
        assert result.context.user.email == "yara@amherst.edu"

    def test_bike_without_recorded_holder_uses_checkout_name(self, make_store, make_bike_row, make_user_row):
        store = make_store(
            bikes=[make_bike_row("Trek100", availability="Checked Out")],
            users=[make_user_row("yara@amherst.edu", has_unreturned=True, last_checkout_name="Trek100")],
        )
        form = _return(email="yara@amherst.edu", bike_name="Trek100")

        assert RETURN_VALIDATION.run(_make_context(store, form)).ok
