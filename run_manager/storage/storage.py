import os
from datetime import datetime
from typing import Callable
from omegaconf import DictConfig

from run_manager.common.common import StorageType
from run_manager.common.serializable import YAMLSerializable
from run_manager.db.db import MEMORY_DB
from run_manager.db.manager import DatabaseManager
from run_manager.storage.metric_series import MetricSeries, InMemoryMetricSeries, SQLMetricSeries
from run_manager.storage.model_store import ModelStore, InMemoryModelStore, SQLModelStore
from run_manager.storage.registry import RunRegistry, InMemoryRunRegistry, SQLRunRegistry


class Storage(YAMLSerializable):
    """The three stores of the engine, built together from one backend."""

    def __init__(self, runs: RunRegistry, metrics: MetricSeries, models: ModelStore):
        super().__init__()
        self.runs = runs
        self.metrics = metrics
        self.models = models

    @property
    def durable(self) -> bool:
        return False

    def close(self) -> None:
        pass


@YAMLSerializable.register(StorageType.MEMORY.value)
class InMemoryStorage(Storage):

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        super().__init__(InMemoryRunRegistry(), InMemoryMetricSeries(), InMemoryModelStore(clock))

    @classmethod
    def from_config(cls, config: DictConfig, workspace: str = None, clock=datetime.now) -> "InMemoryStorage":
        return cls(clock)


@YAMLSerializable.register(StorageType.SQLITE.value)
@YAMLSerializable.register(StorageType.MYSQL.value)
class SQLStorage(Storage):
    DB_NAME = "runs.db"

    def __init__(self, db_manager: DatabaseManager, clock: Callable[[], datetime] = datetime.now):
        super().__init__(SQLRunRegistry(db_manager), SQLMetricSeries(db_manager),
                         SQLModelStore(db_manager, clock))
        self.db_manager = db_manager
        self.db_manager.create_indexes()

    @property
    def durable(self) -> bool:
        return True

    def close(self) -> None:
        self.db_manager.close()

    @classmethod
    def from_config(cls, config: DictConfig, workspace: str = None, clock=datetime.now) -> "SQLStorage":
        storage_type = StorageType(config.get("type", StorageType.SQLITE.value))
        recreate = config.get("recreate", False)

        if storage_type == StorageType.SQLITE:
            path = config.get("path", cls.DB_NAME)
            if path != MEMORY_DB and workspace and not os.path.isabs(path):
                path = os.path.join(workspace, path)
            db_manager = DatabaseManager(database_path=path, use_sqlite=True, recreate=recreate)
        else:
            db_manager = DatabaseManager(
                database_path=config.get("database", "run_manager"),
                use_sqlite=False,
                host=config.get("host", "localhost"),
                user=config.get("user", "root"),
                password=config.get("password", ""),
                recreate=recreate)

        return cls(db_manager, clock)
