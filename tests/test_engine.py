import os

import pytest
from omegaconf import OmegaConf

from run_manager.auth import Principal, RoleAuthorizer
from run_manager.common.common import ConfigPaths, ModelStatus, RunStatus
from run_manager.common.errors import PermissionDeniedError
from run_manager.engine import Engine
from run_manager.listeners.plugins.queue_listener import QueueListener
from run_manager.storage.storage import InMemoryStorage, SQLStorage

ADMIN = Principal("ada", "admin")


@pytest.fixture
def engine_config(tmp_path):
    current_dir = os.path.dirname(os.path.abspath(__file__))
    config = OmegaConf.load(os.path.join(current_dir, "configs", "engine.yaml"))
    config.workspace = os.path.join(str(tmp_path), config.workspace)
    return config


@pytest.fixture
def engine(engine_config):
    engine = Engine.from_config(engine_config)
    yield engine
    engine.close()


def test_engine_initialization(engine, engine_config):
    assert engine.workspace == engine_config.workspace
    assert os.path.exists(engine.log_dir)
    assert os.path.exists(os.path.join(engine.workspace, "runs.db"))
    assert isinstance(engine.storage, SQLStorage)
    assert isinstance(engine.authorizer, RoleAuthorizer)
    assert engine.scheduler.cadence == 0.01
    assert engine.listeners.get(QueueListener) is not None


def test_engine_saves_config(engine):
    config_path = os.path.join(engine.config_dir, ConfigPaths.CONFIG_FILE.value)
    assert os.path.exists(config_path)
    assert OmegaConf.load(config_path) == engine.config


def test_engine_load(engine_config, tmp_path):
    path = tmp_path / "engine.yaml"
    OmegaConf.save(engine_config, path)

    engine = Engine.load(str(path))
    try:
        assert engine.workspace == engine_config.workspace
    finally:
        engine.close()


def test_engine_defaults_to_memory_storage(tmp_path):
    engine = Engine.from_config(OmegaConf.create({"workspace": str(tmp_path / "ws")}))
    try:
        assert isinstance(engine.storage, InMemoryStorage)
        assert engine.scheduler.cadence == 0.5
        assert engine.listeners.listeners == []
    finally:
        engine.close()


def test_end_to_end_run(engine):
    model = engine.models.create("sentiment", "classification")
    run = engine.controller.create_run(model.id, epochs_total=5, principal=ADMIN)
    subscription = engine.listeners.get(QueueListener).subscribe(run.id)

    engine.controller.start_run(run.id, principal=ADMIN)
    while True:
        event = subscription.get(timeout=5)
        if event.kind == "status" and event.run.status.is_terminal:
            break

    assert engine.reader.fetch_run(run.id)["status"] == "completed"
    assert len(engine.reader.fetch_run_metrics(run.id)) == 5
    assert os.path.exists(os.path.join(engine.workspace, "progress.log"))


def test_engine_enforces_roles(engine):
    model = engine.models.create("sentiment", "classification")
    with pytest.raises(PermissionDeniedError):
        engine.controller.create_run(model.id, principal=Principal("v", "viewer"))


def stale_run(engine_config):
    """Leave a run marked running without any scheduler, as after a crash."""
    engine = Engine(engine_config.workspace, engine_config)
    model = engine.models.create("churn", "classification")
    run = engine.controller.create_run(model.id, epochs_total=10)
    engine.storage.runs.mark_started(run.id, run.created_at)
    engine.storage.models.update_status(model.id, ModelStatus.TRAINING)
    engine.close()
    return run


def test_reconcile_fails_stale_runs(engine_config):
    run = stale_run(engine_config)

    engine = Engine.from_config(engine_config)
    try:
        reconciled = engine.storage.runs.get(run.id)
        assert reconciled.status == RunStatus.FAILED
        assert engine.models.get(run.model_id).status == ModelStatus.CREATED
        assert engine.reconcile() == []
    finally:
        engine.close()


def test_reconcile_can_pause_stale_runs(engine_config, wait_until):
    run = stale_run(engine_config)
    engine_config.reconcile_policy = "pause"

    engine = Engine.from_config(engine_config)
    try:
        assert engine.storage.runs.get(run.id).status == RunStatus.PAUSED
        engine.controller.resume_run(run.id, principal=ADMIN)
        assert wait_until(lambda: engine.storage.runs.get(run.id).status == RunStatus.COMPLETED)
        assert [m.epoch for m in engine.storage.metrics.list(run.id)] == list(range(1, 11))
    finally:
        engine.close()


def test_close_pauses_running_runs(engine_config):
    engine = Engine.from_config(engine_config)
    model = engine.models.create("churn", "classification")
    run = engine.controller.create_run(model.id, epochs_total=10000)
    engine.controller.start_run(run.id)
    engine.close()

    engine = Engine.from_config(engine_config)
    try:
        assert engine.storage.runs.get(run.id).status == RunStatus.PAUSED
    finally:
        engine.close()
