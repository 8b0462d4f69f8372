"""Run registry: the store of training run records.

The registry is the only resource with concurrent writers (one scheduler
thread per run) and concurrent readers (pollers). Every write replaces all
progress fields of a run at once, so a reader never observes
``epochs_completed`` advanced while the accuracy/loss fields are stale.
"""
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from run_manager.common.common import RunStatus
from run_manager.common.errors import NotFoundError, ValidationError
from run_manager.db.manager import DatabaseManager
from run_manager.db.tables import TrainingRun


class RunRegistry(ABC):

    @abstractmethod
    def get(self, run_id: str) -> TrainingRun:
        """Return the current record of a run or raise NotFoundError."""
        pass

    @abstractmethod
    def create(self, run: TrainingRun) -> str:
        pass

    @abstractmethod
    def list(self, model_id: Optional[str] = None,
             status: Optional[RunStatus] = None) -> List[TrainingRun]:
        """Return runs, newest first, optionally filtered by model and status."""
        pass

    @abstractmethod
    def update_status(self, run_id: str, status: RunStatus, epochs_completed: int,
                      accuracy: float, loss: float, val_accuracy: float, val_loss: float,
                      completed_at: Optional[datetime] = None) -> TrainingRun:
        """Atomically write status and every progress field of a run."""
        pass

    @abstractmethod
    def set_status(self, run_id: str, status: RunStatus) -> TrainingRun:
        """Change only the status of a run, leaving its progress untouched."""
        pass

    @abstractmethod
    def mark_started(self, run_id: str, started_at: datetime,
                     started_by: Optional[str] = None) -> TrainingRun:
        """Move a run to running; ``started_at`` is kept from the first start."""
        pass

    @abstractmethod
    def delete(self, run_id: str) -> None:
        pass

    def close(self) -> None:
        pass

    @staticmethod
    def _check_progress(current: TrainingRun, status: RunStatus, epochs_completed: int) -> None:
        if current.status.is_terminal:
            raise ValidationError(
                f"Run {current.id} is {current.status.value}; no further progress can be recorded")
        if epochs_completed < current.epochs_completed:
            raise ValidationError(
                f"Run {current.id} cannot go back from epoch {current.epochs_completed} "
                f"to {epochs_completed}")
        if epochs_completed > current.epochs_total:
            raise ValidationError(
                f"Run {current.id} has {current.epochs_total} epochs, got {epochs_completed}")
        if RunStatus(status) == RunStatus.COMPLETED and epochs_completed != current.epochs_total:
            raise ValidationError(
                f"Run {current.id} cannot complete at epoch {epochs_completed} "
                f"of {current.epochs_total}")


class InMemoryRunRegistry(RunRegistry):
    """Non-durable registry holding immutable run records in a dict.

    A record is replaced as a whole under a short lock, so ``get`` always
    returns one internally consistent snapshot.
    """

    def __init__(self):
        self._runs: Dict[str, TrainingRun] = {}
        self._lock = threading.Lock()

    def get(self, run_id: str) -> TrainingRun:
        run = self._runs.get(run_id)
        if run is None:
            raise NotFoundError("Training run", run_id)
        return run

    def create(self, run: TrainingRun) -> str:
        with self._lock:
            if run.id in self._runs:
                raise ValidationError(f"Training run {run.id} already exists")
            self._runs[run.id] = run
        return run.id

    def list(self, model_id: Optional[str] = None,
             status: Optional[RunStatus] = None) -> List[TrainingRun]:
        runs = [
            run for run in list(self._runs.values())
            if (model_id is None or run.model_id == model_id)
            and (status is None or run.status == status)
        ]
        return sorted(runs, key=lambda r: r.created_at, reverse=True)

    def update_status(self, run_id: str, status: RunStatus, epochs_completed: int,
                      accuracy: float, loss: float, val_accuracy: float, val_loss: float,
                      completed_at: Optional[datetime] = None) -> TrainingRun:
        with self._lock:
            current = self.get(run_id)
            self._check_progress(current, status, epochs_completed)
            updated = replace(
                current,
                status=RunStatus(status),
                epochs_completed=epochs_completed,
                accuracy=accuracy,
                loss=loss,
                val_accuracy=val_accuracy,
                val_loss=val_loss,
                completed_at=completed_at or current.completed_at,
            )
            self._runs[run_id] = updated
        return updated

    def set_status(self, run_id: str, status: RunStatus) -> TrainingRun:
        with self._lock:
            updated = replace(self.get(run_id), status=RunStatus(status))
            self._runs[run_id] = updated
        return updated

    def mark_started(self, run_id: str, started_at: datetime,
                     started_by: Optional[str] = None) -> TrainingRun:
        with self._lock:
            current = self.get(run_id)
            updated = replace(
                current,
                status=RunStatus.RUNNING,
                started_at=current.started_at or started_at,
                started_by=started_by or current.started_by,
            )
            self._runs[run_id] = updated
        return updated

    def delete(self, run_id: str) -> None:
        with self._lock:
            if self._runs.pop(run_id, None) is None:
                raise NotFoundError("Training run", run_id)


class SQLRunRegistry(RunRegistry):
    """Durable registry backed by a DatabaseManager (sqlite or MySQL)."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def get(self, run_id: str) -> TrainingRun:
        run = self.db_manager.get_run(run_id)
        if run is None:
            raise NotFoundError("Training run", run_id)
        return run

    def create(self, run: TrainingRun) -> str:
        if self.db_manager.get_model(run.model_id) is None:
            raise NotFoundError("Model", run.model_id)
        self.db_manager.create_run(run)
        return run.id

    def list(self, model_id: Optional[str] = None,
             status: Optional[RunStatus] = None) -> List[TrainingRun]:
        return self.db_manager.list_runs(model_id=model_id, status=status)

    def update_status(self, run_id: str, status: RunStatus, epochs_completed: int,
                      accuracy: float, loss: float, val_accuracy: float, val_loss: float,
                      completed_at: Optional[datetime] = None) -> TrainingRun:
        with self.db_manager.transaction():
            self._check_progress(self.get(run_id), status, epochs_completed)
            self.db_manager.update_run_progress(
                run_id, status, epochs_completed, accuracy, loss,
                val_accuracy, val_loss, completed_at)
            return self.get(run_id)

    def set_status(self, run_id: str, status: RunStatus) -> TrainingRun:
        with self.db_manager.transaction():
            self.get(run_id)
            self.db_manager.set_run_status(run_id, status)
            return self.get(run_id)

    def mark_started(self, run_id: str, started_at: datetime,
                     started_by: Optional[str] = None) -> TrainingRun:
        with self.db_manager.transaction():
            self.get(run_id)
            self.db_manager.mark_run_started(run_id, started_at, started_by)
            return self.get(run_id)

    def delete(self, run_id: str) -> None:
        with self.db_manager.transaction():
            self.get(run_id)
            self.db_manager.delete_run(run_id)
