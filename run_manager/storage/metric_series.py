"""Append-only per-run series of epoch metrics."""
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from run_manager.common.errors import ValidationError
from run_manager.db.manager import DatabaseManager
from run_manager.db.tables import ModelMetric


class MetricSeries(ABC):
    """Ordered epoch metrics of every run.

    ``append`` is the only regular mutation and only accepts the epoch that
    directly follows the last recorded one. ``retract`` exists solely for the
    scheduler to undo an append whose run progress write then failed, and
    ``delete_run`` is only called when the owning run is deleted.
    """

    @abstractmethod
    def append(self, metric: ModelMetric) -> ModelMetric:
        pass

    @abstractmethod
    def list(self, run_id: str) -> List[ModelMetric]:
        """Return the metrics of a run in ascending epoch order."""
        pass

    @abstractmethod
    def retract(self, run_id: str, epoch: int) -> None:
        pass

    @abstractmethod
    def delete_run(self, run_id: str) -> None:
        pass

    def latest(self, run_id: str) -> Optional[ModelMetric]:
        metrics = self.list(run_id)
        return metrics[-1] if metrics else None

    def count(self, run_id: str) -> int:
        return len(self.list(run_id))

    @staticmethod
    def _check_next(metric: ModelMetric, last_epoch: int) -> None:
        if metric.epoch != last_epoch + 1:
            raise ValidationError(
                f"Run {metric.run_id} expects epoch {last_epoch + 1}, got {metric.epoch}")


class InMemoryMetricSeries(MetricSeries):

    def __init__(self):
        self._series: Dict[str, List[ModelMetric]] = {}
        self._lock = threading.Lock()

    def append(self, metric: ModelMetric) -> ModelMetric:
        with self._lock:
            series = self._series.setdefault(metric.run_id, [])
            self._check_next(metric, series[-1].epoch if series else 0)
            series.append(metric)
        return metric

    def list(self, run_id: str) -> List[ModelMetric]:
        with self._lock:
            return list(self._series.get(run_id, ()))

    def retract(self, run_id: str, epoch: int) -> None:
        with self._lock:
            series = self._series.get(run_id)
            if not series or series[-1].epoch != epoch:
                raise ValidationError(f"Epoch {epoch} is not the last epoch of run {run_id}")
            series.pop()

    def delete_run(self, run_id: str) -> None:
        with self._lock:
            self._series.pop(run_id, None)


class SQLMetricSeries(MetricSeries):

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def append(self, metric: ModelMetric) -> ModelMetric:
        with self.db_manager.transaction():
            self._check_next(metric, self.db_manager.get_last_epoch(metric.run_id))
            return self.db_manager.insert_metric(metric)

    def list(self, run_id: str) -> List[ModelMetric]:
        return self.db_manager.get_metrics(run_id)

    def retract(self, run_id: str, epoch: int) -> None:
        with self.db_manager.transaction():
            if self.db_manager.get_last_epoch(run_id) != epoch:
                raise ValidationError(f"Epoch {epoch} is not the last epoch of run {run_id}")
            self.db_manager.delete_metric(run_id, epoch)

    def delete_run(self, run_id: str) -> None:
        self.db_manager.delete_metrics(run_id)

    def count(self, run_id: str) -> int:
        return self.db_manager.get_last_epoch(run_id)
