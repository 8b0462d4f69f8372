"""Consistent read views of runs for polling clients.

Readers never take the scheduler's locks. Consistency between a run record
and its metric history follows from the write order of a tick: the metric
of epoch N is appended before the run record advances to N. Reading the run
first and the metrics second therefore always yields at least
``epochs_completed`` metrics; any epoch beyond that belongs to a tick that
had not committed when the run was read and is left out.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from run_manager.common.common import RunStatus
from run_manager.db.tables import ModelMetric, TrainingRun
from run_manager.storage.metric_series import MetricSeries
from run_manager.storage.registry import RunRegistry


@dataclass(frozen=True)
class RunSnapshot:
    run: TrainingRun
    metrics: List[ModelMetric]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class SnapshotReader:

    def __init__(self, registry: RunRegistry, metrics: MetricSeries, logger=None):
        self.registry = registry
        self.metrics = metrics
        self.logger = logger or logging.getLogger(__name__)

    def assemble_snapshot(self, run_id: str) -> RunSnapshot:
        """Return the run and exactly ``run.epochs_completed`` metrics."""
        run = self.registry.get(run_id)
        metrics = [m for m in self.metrics.list(run_id) if m.epoch <= run.epochs_completed]
        if len(metrics) < run.epochs_completed:
            # Only a concurrent delete shrinks the series; the re-read
            # surfaces it as NotFoundError.
            run = self.registry.get(run_id)
            metrics = [m for m in self.metrics.list(run_id) if m.epoch <= run.epochs_completed]
        return RunSnapshot(run=run, metrics=metrics)

    def fetch_run(self, run_id: str) -> Dict[str, Any]:
        return self.run_to_dict(self.registry.get(run_id))

    def fetch_run_metrics(self, run_id: str) -> List[Dict[str, Any]]:
        return [self.metric_to_dict(m) for m in self.assemble_snapshot(run_id).metrics]

    def fetch_snapshot(self, run_id: str) -> Dict[str, Any]:
        snapshot = self.assemble_snapshot(run_id)
        return {
            "run": self.run_to_dict(snapshot.run),
            "metrics": [self.metric_to_dict(m) for m in snapshot.metrics],
        }

    def metrics_dataframe(self, run_id: str) -> pd.DataFrame:
        """Epoch metrics of a run as a DataFrame indexed by epoch."""
        columns = ["epoch", "accuracy", "loss", "val_accuracy", "val_loss", "created_at"]
        rows = [{c: getattr(m, c) for c in columns} for m in self.assemble_snapshot(run_id).metrics]
        return pd.DataFrame(rows, columns=columns).set_index("epoch")

    def training_stats(self, model_id: Optional[str] = None) -> Dict[str, Any]:
        """Run counts per status and the mean accuracy of completed runs."""
        runs = self.registry.list(model_id=model_id)
        by_status = {status.value: 0 for status in RunStatus}
        for run in runs:
            by_status[run.status.value] += 1

        completed = [run.accuracy for run in runs if run.status == RunStatus.COMPLETED]
        return {
            "totalRuns": len(runs),
            "byStatus": by_status,
            "activeRuns": by_status[RunStatus.RUNNING.value],
            "averageAccuracy": float(np.mean(completed)) if completed else 0.0,
        }

    @staticmethod
    def run_to_dict(run: TrainingRun) -> Dict[str, Any]:
        return {
            "id": run.id,
            "modelId": run.model_id,
            "datasetId": run.dataset_id,
            "status": run.status.value,
            "epochsTotal": run.epochs_total,
            "epochsCompleted": run.epochs_completed,
            "accuracy": run.accuracy,
            "valAccuracy": run.val_accuracy,
            "loss": run.loss,
            "valLoss": run.val_loss,
            "learningRate": run.learning_rate,
            "batchSize": run.batch_size,
            "runType": run.run_type.value,
            "startedBy": run.started_by,
            "startedAt": _iso(run.started_at),
            "completedAt": _iso(run.completed_at),
            "createdAt": _iso(run.created_at),
        }

    @staticmethod
    def metric_to_dict(metric: ModelMetric) -> Dict[str, Any]:
        return {
            "epoch": metric.epoch,
            "accuracy": metric.accuracy,
            "loss": metric.loss,
            "valAccuracy": metric.val_accuracy,
            "valLoss": metric.val_loss,
        }
