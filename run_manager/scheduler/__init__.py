from .progression import EpochValues, MetricProgression
from .scheduler import EpochScheduler, RunHandle

__all__ = [
    'EpochValues',
    'MetricProgression',
    'EpochScheduler',
    'RunHandle',
]
