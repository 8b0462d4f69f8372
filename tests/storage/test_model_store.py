import pytest

from run_manager.common.common import ModelStatus
from run_manager.common.errors import NotFoundError


@pytest.fixture
def models(storage):
    return storage.models


def test_create(models):
    model = models.create("churn", "classification", base_model="xgboost", version="2.0.0")

    assert model.status == ModelStatus.CREATED
    assert model.version == "2.0.0"
    assert models.get(model.id) == model
    assert model in models.list()


def test_get_unknown_model(models):
    with pytest.raises(NotFoundError, match="Model with id missing"):
        models.get("missing")


def test_update_metrics(models, model):
    updated = models.update_metrics(model.id, accuracy=0.91, latency=87.5, error_rate=0.09)

    assert (updated.accuracy, updated.latency, updated.error_rate) == (0.91, 87.5, 0.09)
    assert updated.status == model.status
    assert models.get(model.id) == updated


def test_update_status(models, model):
    training = models.update_status(model.id, ModelStatus.TRAINING)
    assert training.status == ModelStatus.TRAINING
    assert training.deployed_at is None


def test_deploy_sets_deployed_at(models, model):
    deployed = models.deploy(model.id)
    assert deployed.status == ModelStatus.DEPLOYED
    assert deployed.deployed_at is not None

    again = models.update_status(model.id, ModelStatus.CREATED)
    assert again.deployed_at == deployed.deployed_at


def test_updates_on_unknown_model(models):
    with pytest.raises(NotFoundError):
        models.update_metrics("missing", 0.5, 100.0, 0.5)
    with pytest.raises(NotFoundError):
        models.update_status("missing", ModelStatus.TRAINING)
