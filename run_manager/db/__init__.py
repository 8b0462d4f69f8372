"""
Durable storage of models, training runs and epoch metrics (SQLite or MySQL).
"""

from .tables import AIModel, TrainingRun, ModelMetric
from .manager import DatabaseManager, DatabaseError, ConnectionError, QueryError

__all__ = [
    'AIModel',
    'TrainingRun',
    'ModelMetric',
    'DatabaseManager',
    'DatabaseError',
    'ConnectionError',
    'QueryError',
]
