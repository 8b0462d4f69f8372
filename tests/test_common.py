import pytest

from run_manager.common.common import (
    RunStatus,
    ModelStatus,
    RunType,
    Action,
    ReconcilePolicy,
    can_transition,
)
from run_manager.common.errors import NotFoundError, SchedulerFault, RunManagerError, ValidationError


def test_run_status_values():
    """Statuses are stored and returned as lowercase strings."""
    assert [s.value for s in RunStatus] == ["pending", "running", "paused", "completed", "failed"]
    assert RunStatus("paused") is RunStatus.PAUSED
    assert RunStatus.RUNNING == "running"


def test_terminal_and_open_statuses():
    assert {s for s in RunStatus if s.is_terminal} == {RunStatus.COMPLETED, RunStatus.FAILED}
    assert {s for s in RunStatus if s.is_open} == {RunStatus.RUNNING, RunStatus.PAUSED}


@pytest.mark.parametrize("source,target", [
    (RunStatus.PENDING, RunStatus.RUNNING),
    (RunStatus.RUNNING, RunStatus.PAUSED),
    (RunStatus.RUNNING, RunStatus.COMPLETED),
    (RunStatus.RUNNING, RunStatus.FAILED),
    (RunStatus.PAUSED, RunStatus.RUNNING),
])
def test_legal_transitions(source, target):
    assert can_transition(source, target)


@pytest.mark.parametrize("source,target", [
    (RunStatus.PENDING, RunStatus.PAUSED),
    (RunStatus.PENDING, RunStatus.COMPLETED),
    (RunStatus.PAUSED, RunStatus.COMPLETED),
    (RunStatus.PAUSED, RunStatus.FAILED),
    (RunStatus.COMPLETED, RunStatus.RUNNING),
    (RunStatus.FAILED, RunStatus.RUNNING),
    (RunStatus.RUNNING, RunStatus.PENDING),
])
def test_illegal_transitions(source, target):
    assert not can_transition(source, target)


def test_terminal_statuses_have_no_way_out():
    for status in (RunStatus.COMPLETED, RunStatus.FAILED):
        assert not any(can_transition(status, target) for target in RunStatus)


def test_transitions_accept_plain_strings():
    assert can_transition("pending", "running")
    assert not can_transition("completed", "running")


def test_other_enums():
    assert ModelStatus.TRAINING.value == "training"
    assert RunType("fine_tune") is RunType.FINE_TUNE
    assert Action.DELETE_RUN.value == "delete_run"
    assert ReconcilePolicy("pause") is ReconcilePolicy.PAUSE


def test_not_found_error_message():
    error = NotFoundError("Training run", "abc")
    assert isinstance(error, RunManagerError)
    assert str(error) == "Training run with id abc does not exist"
    assert error.kind == "Training run"
    assert error.identifier == "abc"


def test_scheduler_fault_keeps_cause():
    cause = RuntimeError("disk full")
    fault = SchedulerFault("run-1", 5, cause)
    assert fault.run_id == "run-1"
    assert fault.epoch == 5
    assert fault.cause is cause
    assert "epoch 5" in str(fault) and "disk full" in str(fault)
    assert not isinstance(fault, ValidationError)
