"""Property-based and unit tests for the run state machine.

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

import pytest
from hypothesis import given, settings, strategies as st

from bikeshare.runs import (
    VALID_TRANSITIONS,
    InvalidTransitionError,
    RunStage,
    RunStateMachine,
    is_terminal_stage,
    is_valid_transition,
)

HAPPY_PATH = [
    RunStage.LOCK_ACQUIRING,
    RunStage.LOADING,
    RunStage.VALIDATING,
    RunStage.MUTATING,
    RunStage.COMMITTING,
    RunStage.NOTIFYING,
    RunStage.RELEASED,
]


def _advance(machine: RunStateMachine, stages):
    for stage in stages:
        machine.transition(stage)


def test_happy_path_is_recorded_in_order():
    machine = RunStateMachine("checkout", run_id="run-1")
    _advance(machine, HAPPY_PATH)

    assert machine.stage == RunStage.RELEASED
    assert machine.is_finished
    assert machine.record.stages == [RunStage.IDLE] + HAPPY_PATH
    timestamps = [t.timestamp for t in machine.record.history]
    assert timestamps == sorted(timestamps)
    assert all(t.timestamp.tzinfo is not None for t in machine.record.history)


def test_lock_timeout_only_from_lock_acquiring():
    machine = RunStateMachine("return")
    with pytest.raises(InvalidTransitionError):
        machine.transition(RunStage.LOCK_TIMEOUT)

    machine.transition(RunStage.LOCK_ACQUIRING)
    machine.transition(RunStage.LOCK_TIMEOUT, {"timeout_seconds": 30})
    assert machine.is_finished


def test_failed_stores_code_and_message():
    machine = RunStateMachine("checkout")
    _advance(machine, HAPPY_PATH[:3])
    machine.transition(RunStage.FAILED, {"code": "ERR_USR_COT_003", "error": "not found"})

    assert machine.record.error_code == "ERR_USR_COT_003"
    assert machine.record.error == "not found"


def test_notifying_cannot_fail():
    assert not is_valid_transition(RunStage.NOTIFYING, RunStage.FAILED)


def test_run_ids_are_unique():
    assert RunStateMachine("checkout").run_id != RunStateMachine("checkout").run_id


@pytest.mark.parametrize(
    "stage", [RunStage.LOADING, RunStage.VALIDATING, RunStage.MUTATING, RunStage.COMMITTING]
)
def test_failed_reachable_from_working_stages(stage):
    assert is_valid_transition(stage, RunStage.FAILED)


@settings(max_examples=100)
@given(from_stage=st.sampled_from(list(RunStage)), to_stage=st.sampled_from(list(RunStage)))
def test_transition_accepted_iff_in_map(from_stage, to_stage):
    assert is_valid_transition(from_stage, to_stage) == (
        to_stage in VALID_TRANSITIONS[from_stage]
    )


@settings(max_examples=100)
@given(stage=st.sampled_from(list(RunStage)))
def test_terminal_stages_have_no_exits(stage):
    assert is_terminal_stage(stage) == (len(VALID_TRANSITIONS[stage]) == 0)


@settings(max_examples=100)
@given(targets=st.lists(st.sampled_from(list(RunStage)), max_size=12))
def test_random_walks_never_leave_the_map(targets):
    machine = RunStateMachine("checkout")
    for target in targets:
        current = machine.stage
        if is_valid_transition(current, target):
            machine.transition(target)
            assert machine.stage == target
        else:
            with pytest.raises(InvalidTransitionError):
                machine.transition(target)
            assert machine.stage == current
    assert len(machine.record.history) <= len(targets)
