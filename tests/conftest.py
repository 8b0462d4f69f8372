"""
Shared fixtures for the run_manager test suite.

Every fixture that touches storage is parametrized over the in-memory and
the sqlite backends, so the same behaviour is checked against both. The
scheduler runs with a very short cadence; tests that wait for background
progress poll with ``wait_until`` instead of sleeping a fixed time.
"""
import time
from types import SimpleNamespace

import pytest

from run_manager.controller import RunController
from run_manager.db.manager import DatabaseManager
from run_manager.projector import ModelStatusProjector
from run_manager.scheduler.progression import MetricProgression
from run_manager.scheduler.scheduler import EpochScheduler
from run_manager.snapshot import SnapshotReader
from run_manager.storage.storage import InMemoryStorage, SQLStorage

CADENCE = 0.01


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        storage = InMemoryStorage()
    else:
        db_manager = DatabaseManager(database_path=str(tmp_path / "runs.db"),
                                     use_sqlite=True, recreate=True)
        storage = SQLStorage(db_manager)
    yield storage
    storage.close()


@pytest.fixture
def make_stack(storage):
    """Build scheduler, controller, projector and reader over ``storage``."""
    schedulers = []

    def _make(cadence=CADENCE, progression=None, registry=None, listeners=None, authorizer=None):
        runs = registry or storage.runs
        scheduler = EpochScheduler(runs, storage.metrics,
                                   progression=progression or MetricProgression(seed=7),
                                   cadence=cadence,
                                   listeners=listeners)
        projector = ModelStatusProjector(storage.models, runs, seed=7)
        controller = RunController(runs, storage.metrics, storage.models, scheduler, projector,
                                   authorizer=authorizer)
        schedulers.append(scheduler)
        return SimpleNamespace(
            runs=runs,
            metrics=storage.metrics,
            models=storage.models,
            scheduler=scheduler,
            projector=projector,
            controller=controller,
            reader=SnapshotReader(runs, storage.metrics),
        )

    yield _make
    for scheduler in schedulers:
        scheduler.shutdown()


@pytest.fixture
def stack(make_stack):
    return make_stack()


@pytest.fixture
def model(storage):
    return storage.models.create("sentiment-classifier", "classification", base_model="bert-base")


@pytest.fixture
def wait_until():
    def _wait(predicate, timeout=5.0, interval=0.005):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()
    return _wait
