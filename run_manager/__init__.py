"""
Run Manager - an asynchronous engine for simulated model training runs.

Basic usage:
    from run_manager import Engine
    engine = Engine.load("configs/engine.yaml")
    model = engine.models.create("sentiment", "classifier")
    run = engine.controller.create_run(model.id, epochs_total=10)
    engine.controller.start_run(run.id)
    engine.reader.fetch_run(run.id)
"""

__version__ = "0.1.0"

# Core classes
from .engine import Engine
from .controller import RunController
from .snapshot import SnapshotReader, RunSnapshot
from .projector import ModelStatusProjector
from .scheduler import EpochScheduler, MetricProgression
from .auth import Principal, Authorizer, AllowAll, RoleAuthorizer

# Common enums and errors
from .common import (
    RunStatus,
    ModelStatus,
    RunType,
    Action,
    RunManagerError,
    ValidationError,
    NotFoundError,
    PermissionDeniedError,
    SchedulerFault,
)

# Records
from .db.tables import AIModel, TrainingRun, ModelMetric

__all__ = [
    # Version
    '__version__',
    # Core
    'Engine',
    'RunController',
    'SnapshotReader',
    'RunSnapshot',
    'ModelStatusProjector',
    'EpochScheduler',
    'MetricProgression',
    # Auth
    'Principal',
    'Authorizer',
    'AllowAll',
    'RoleAuthorizer',
    # Enums
    'RunStatus',
    'ModelStatus',
    'RunType',
    'Action',
    # Errors
    'RunManagerError',
    'ValidationError',
    'NotFoundError',
    'PermissionDeniedError',
    'SchedulerFault',
    # Records
    'AIModel',
    'TrainingRun',
    'ModelMetric',
]
