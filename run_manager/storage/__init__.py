"""
Run registry, metric series and model store, with in-memory and SQL backends.
"""

from .registry import RunRegistry, InMemoryRunRegistry, SQLRunRegistry
from .metric_series import MetricSeries, InMemoryMetricSeries, SQLMetricSeries
from .model_store import ModelStore, InMemoryModelStore, SQLModelStore
from .storage import Storage, InMemoryStorage, SQLStorage

__all__ = [
    'RunRegistry',
    'InMemoryRunRegistry',
    'SQLRunRegistry',
    'MetricSeries',
    'InMemoryMetricSeries',
    'SQLMetricSeries',
    'ModelStore',
    'InMemoryModelStore',
    'SQLModelStore',
    'Storage',
    'InMemoryStorage',
    'SQLStorage',
]
