"""Model store collaborator: read/write AIModel records by id."""
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional

from run_manager.common.common import ModelStatus
from run_manager.common.errors import NotFoundError
from run_manager.db.manager import DatabaseManager
from run_manager.db.tables import AIModel


class ModelStore(ABC):

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock

    @abstractmethod
    def _save(self, model: AIModel) -> AIModel:
        pass

    @abstractmethod
    def get(self, model_id: str) -> AIModel:
        pass

    @abstractmethod
    def list(self) -> List[AIModel]:
        pass

    @abstractmethod
    def update_metrics(self, model_id: str, accuracy: float, latency: float,
                       error_rate: float) -> AIModel:
        pass

    @abstractmethod
    def update_status(self, model_id: str, status: ModelStatus) -> AIModel:
        pass

    def create(self, name: str, model_type: str, base_model: Optional[str] = None,
               version: str = "1.0.0") -> AIModel:
        now = self.clock()
        model = AIModel(
            id=str(uuid.uuid4()),
            name=name,
            model_type=model_type,
            base_model=base_model,
            version=version,
            created_at=now,
            updated_at=now,
        )
        return self._save(model)

    def deploy(self, model_id: str) -> AIModel:
        return self.update_status(model_id, ModelStatus.DEPLOYED)


class InMemoryModelStore(ModelStore):

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        super().__init__(clock)
        self._models: Dict[str, AIModel] = {}
        self._lock = threading.Lock()

    def _save(self, model: AIModel) -> AIModel:
        with self._lock:
            self._models[model.id] = model
        return model

    def get(self, model_id: str) -> AIModel:
        model = self._models.get(model_id)
        if model is None:
            raise NotFoundError("Model", model_id)
        return model

    def list(self) -> List[AIModel]:
        return sorted(self._models.values(), key=lambda m: m.created_at, reverse=True)

    def update_metrics(self, model_id: str, accuracy: float, latency: float,
                       error_rate: float) -> AIModel:
        with self._lock:
            updated = replace(self.get(model_id), accuracy=accuracy, latency=latency,
                              error_rate=error_rate, updated_at=self.clock())
            self._models[model_id] = updated
        return updated

    def update_status(self, model_id: str, status: ModelStatus) -> AIModel:
        with self._lock:
            now = self.clock()
            current = self.get(model_id)
            deployed_at = now if status == ModelStatus.DEPLOYED else current.deployed_at
            updated = replace(current, status=ModelStatus(status), updated_at=now,
                              deployed_at=deployed_at)
            self._models[model_id] = updated
        return updated


class SQLModelStore(ModelStore):

    def __init__(self, db_manager: DatabaseManager, clock: Callable[[], datetime] = datetime.now):
        super().__init__(clock)
        self.db_manager = db_manager

    def _save(self, model: AIModel) -> AIModel:
        return self.db_manager.create_model(model)

    def get(self, model_id: str) -> AIModel:
        model = self.db_manager.get_model(model_id)
        if model is None:
            raise NotFoundError("Model", model_id)
        return model

    def list(self) -> List[AIModel]:
        return self.db_manager.list_models()

    def update_metrics(self, model_id: str, accuracy: float, latency: float,
                       error_rate: float) -> AIModel:
        with self.db_manager.transaction():
            self.get(model_id)
            self.db_manager.update_model_metrics(model_id, accuracy, latency, error_rate,
                                                 self.clock())
            return self.get(model_id)

    def update_status(self, model_id: str, status: ModelStatus) -> AIModel:
        with self.db_manager.transaction():
            self.get(model_id)
            now = self.clock()
            deployed_at = now if status == ModelStatus.DEPLOYED else None
            self.db_manager.update_model_status(model_id, status, now, deployed_at)
            return self.get(model_id)
