from enum import Enum

"""Common constants and enumerations shared across Run Manager.

This module centralises enums (RunStatus, ModelStatus, Action, etc.) and
other constants so that the rest of the codebase can import them from a
single place. The enum values are the lowercase strings stored in the
database and returned to polling clients.
"""

LOG_NAME = "log"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)

    @property
    def is_open(self) -> bool:
        """A run that has started but has not reached a terminal status."""
        return self in (RunStatus.RUNNING, RunStatus.PAUSED)


# Legal transitions of the training run state machine.
_TRANSITIONS = {
    RunStatus.PENDING: {RunStatus.RUNNING},
    RunStatus.RUNNING: {RunStatus.PAUSED, RunStatus.COMPLETED, RunStatus.FAILED},
    RunStatus.PAUSED: {RunStatus.RUNNING},
    RunStatus.COMPLETED: set(),
    RunStatus.FAILED: set(),
}


def can_transition(source: RunStatus, target: RunStatus) -> bool:
    return RunStatus(target) in _TRANSITIONS[RunStatus(source)]


class ModelStatus(str, Enum):
    CREATED = "created"
    TRAINING = "training"
    DEPLOYED = "deployed"


class RunType(str, Enum):
    FULL = "full"
    FINE_TUNE = "fine_tune"
    INCREMENTAL = "incremental"


class Action(str, Enum):
    CREATE_RUN = "create_run"
    START_RUN = "start_run"
    PAUSE_RUN = "pause_run"
    RESUME_RUN = "resume_run"
    DELETE_RUN = "delete_run"
    READ_RUN = "read_run"


class ConfigPaths(Enum):
    CONFIG_FILE = "engine.yaml"


class StorageType(Enum):
    MEMORY = "memory"
    SQLITE = "sqlite"
    MYSQL = "mysql"


class ReconcilePolicy(Enum):
    FAIL = "fail"
    PAUSE = "pause"


# Public exports for `from run_manager.common.common import *`
__all__ = [
    "LOG_NAME",
    "RunStatus",
    "ModelStatus",
    "RunType",
    "Action",
    "ConfigPaths",
    "StorageType",
    "ReconcilePolicy",
    "can_transition",
]
