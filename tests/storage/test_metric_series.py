import uuid
from datetime import datetime

import pytest

from run_manager.common.errors import ValidationError
from run_manager.db.tables import ModelMetric, TrainingRun

NOW = datetime(2024, 5, 1, 12, 0, 0)


@pytest.fixture
def series(storage):
    return storage.metrics


@pytest.fixture
def run_id(storage, model):
    run = TrainingRun(id=str(uuid.uuid4()), model_id=model.id, epochs_total=5,
                      learning_rate=0.001, batch_size=32, created_at=NOW)
    return storage.runs.create(run)


def metric(run_id, epoch):
    return ModelMetric(run_id=run_id, epoch=epoch, accuracy=0.5, loss=0.5,
                       val_accuracy=0.45, val_loss=0.6, created_at=NOW)


def test_append_in_order(series, run_id):
    for epoch in (1, 2, 3):
        series.append(metric(run_id, epoch))

    assert [m.epoch for m in series.list(run_id)] == [1, 2, 3]
    assert series.latest(run_id).epoch == 3
    assert series.count(run_id) == 3


def test_empty_series(series, run_id):
    assert series.list(run_id) == []
    assert series.latest(run_id) is None
    assert series.count(run_id) == 0


@pytest.mark.parametrize("epoch", [0, 2, 3])
def test_first_epoch_must_be_one(series, run_id, epoch):
    with pytest.raises(ValidationError):
        series.append(metric(run_id, epoch))


def test_gaps_and_duplicates_are_rejected(series, run_id):
    series.append(metric(run_id, 1))
    with pytest.raises(ValidationError):
        series.append(metric(run_id, 1))
    with pytest.raises(ValidationError):
        series.append(metric(run_id, 3))
    assert [m.epoch for m in series.list(run_id)] == [1]


def test_retract_only_removes_last_epoch(series, run_id):
    series.append(metric(run_id, 1))
    series.append(metric(run_id, 2))

    with pytest.raises(ValidationError):
        series.retract(run_id, 1)
    series.retract(run_id, 2)

    assert [m.epoch for m in series.list(run_id)] == [1]
    series.append(metric(run_id, 2))
    assert series.count(run_id) == 2


def test_delete_run(series, run_id):
    series.append(metric(run_id, 1))
    series.delete_run(run_id)
    assert series.list(run_id) == []
