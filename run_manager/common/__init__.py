"""
Common utilities, enums, errors and base classes for the run manager.
"""

from .common import (
    RunStatus,
    ModelStatus,
    RunType,
    Action,
    ConfigPaths,
    StorageType,
    ReconcilePolicy,
    can_transition,
    LOG_NAME,
)
from .errors import (
    RunManagerError,
    ValidationError,
    NotFoundError,
    PermissionDeniedError,
    SchedulerFault,
)
from .factory import Factory
from .serializable import YAMLSerializable

__all__ = [
    # Enums and constants
    'RunStatus',
    'ModelStatus',
    'RunType',
    'Action',
    'ConfigPaths',
    'StorageType',
    'ReconcilePolicy',
    'can_transition',
    'LOG_NAME',
    # Errors
    'RunManagerError',
    'ValidationError',
    'NotFoundError',
    'PermissionDeniedError',
    'SchedulerFault',
    # Factory classes
    'Factory',
    # Serialization
    'YAMLSerializable',
]
