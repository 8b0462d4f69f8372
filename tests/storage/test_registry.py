"""RunRegistry behaviour, checked against every storage backend."""
import uuid
from datetime import datetime, timedelta

import pytest

from run_manager.common.common import RunStatus
from run_manager.common.errors import NotFoundError, ValidationError
from run_manager.db.tables import TrainingRun

NOW = datetime(2024, 5, 1, 12, 0, 0)


@pytest.fixture
def registry(storage):
    return storage.runs


@pytest.fixture
def run(registry, model):
    run = TrainingRun(id=str(uuid.uuid4()), model_id=model.id, epochs_total=3,
                      learning_rate=0.001, batch_size=32, created_at=NOW)
    registry.create(run)
    return registry.get(run.id)


def progress(registry, run_id, epoch, status=RunStatus.RUNNING, **kwargs):
    return registry.update_status(run_id, status, epochs_completed=epoch,
                                  accuracy=0.5 + epoch / 10, loss=1.0 / epoch,
                                  val_accuracy=0.4 + epoch / 10, val_loss=1.2 / epoch, **kwargs)


def test_create_and_get(registry, run):
    assert run.status == RunStatus.PENDING
    assert run.epochs_completed == 0
    assert registry.get(run.id) == run


def test_get_unknown_run(registry):
    with pytest.raises(NotFoundError, match="Training run with id nope does not exist"):
        registry.get("nope")


def test_create_requires_existing_model(storage):
    if not storage.durable:
        pytest.skip("the in-memory registry does not know about models")
    run = TrainingRun(id="r", model_id="missing", epochs_total=1, learning_rate=0.1,
                      batch_size=1, created_at=NOW)
    with pytest.raises(NotFoundError):
        storage.runs.create(run)


def test_update_status_writes_all_progress_fields(registry, run):
    registry.mark_started(run.id, NOW)
    updated = progress(registry, run.id, 1)

    assert updated.epochs_completed == 1
    assert updated.accuracy == pytest.approx(0.6)
    assert updated.val_accuracy == pytest.approx(0.5)
    assert updated.loss == pytest.approx(1.0)
    assert updated.val_loss == pytest.approx(1.2)
    assert registry.get(run.id) == updated


def test_completion_sets_completed_at(registry, run):
    registry.mark_started(run.id, NOW)
    progress(registry, run.id, 2)
    done = progress(registry, run.id, 3, status=RunStatus.COMPLETED, completed_at=NOW)

    assert done.status == RunStatus.COMPLETED
    assert done.epochs_completed == done.epochs_total
    assert done.completed_at == NOW


def test_progress_never_goes_back(registry, run):
    registry.mark_started(run.id, NOW)
    progress(registry, run.id, 2)
    with pytest.raises(ValidationError):
        progress(registry, run.id, 1)
    assert registry.get(run.id).epochs_completed == 2


def test_progress_never_exceeds_total(registry, run):
    registry.mark_started(run.id, NOW)
    with pytest.raises(ValidationError):
        progress(registry, run.id, 4)


def test_completion_requires_all_epochs(registry, run):
    registry.mark_started(run.id, NOW)
    with pytest.raises(ValidationError):
        progress(registry, run.id, 2, status=RunStatus.COMPLETED, completed_at=NOW)
    assert registry.get(run.id).status == RunStatus.RUNNING


def test_no_progress_after_failure(registry, run):
    registry.mark_started(run.id, NOW)
    progress(registry, run.id, 1)
    registry.set_status(run.id, RunStatus.FAILED)

    with pytest.raises(ValidationError):
        progress(registry, run.id, 2)
    failed = registry.get(run.id)
    assert failed.status == RunStatus.FAILED
    assert failed.epochs_completed == 1


def test_set_status_leaves_progress_untouched(registry, run):
    registry.mark_started(run.id, NOW)
    before = progress(registry, run.id, 2)
    paused = registry.set_status(run.id, RunStatus.PAUSED)

    assert paused.status == RunStatus.PAUSED
    assert paused.epochs_completed == before.epochs_completed
    assert paused.accuracy == before.accuracy


def test_mark_started_keeps_first_start(registry, run):
    first = registry.mark_started(run.id, NOW, "alice")
    registry.set_status(run.id, RunStatus.PAUSED)
    again = registry.mark_started(run.id, NOW + timedelta(minutes=5))

    assert first.status == again.status == RunStatus.RUNNING
    assert again.started_at == NOW
    assert again.started_by == "alice"


def test_list_filters_and_orders(registry, model):
    ids = []
    for minute in range(3):
        run = TrainingRun(id=str(uuid.uuid4()), model_id=model.id, epochs_total=1,
                          learning_rate=0.1, batch_size=8,
                          created_at=NOW + timedelta(minutes=minute))
        ids.append(registry.create(run))
    registry.mark_started(ids[0], NOW)

    assert [r.id for r in registry.list()] == list(reversed(ids))
    assert [r.id for r in registry.list(model_id=model.id, status=RunStatus.RUNNING)] == [ids[0]]
    assert registry.list(status=RunStatus.COMPLETED) == []


def test_delete(registry, run):
    registry.delete(run.id)
    with pytest.raises(NotFoundError):
        registry.get(run.id)
    with pytest.raises(NotFoundError):
        registry.delete(run.id)
