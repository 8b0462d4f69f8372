"""Reflects run lifecycle events onto the owning model record.

``ModelStatus.TRAINING`` is derived state: it is written here when a run
starts and cleared here when the last open run of the model ends. Nothing
else changes a model's status while one of its runs is open.
"""
import logging
import threading
from typing import Optional, Set

import numpy as np

from run_manager.common.common import ModelStatus, RunStatus
from run_manager.common.errors import NotFoundError
from run_manager.db.tables import AIModel, TrainingRun
from run_manager.storage.model_store import ModelStore
from run_manager.storage.registry import RunRegistry


class ModelStatusProjector:
    LATENCY_RANGE = (50.0, 150.0)

    def __init__(self,
                 models: ModelStore,
                 runs: RunRegistry,
                 rng: Optional[np.random.Generator] = None,
                 seed: Optional[int] = None,
                 logger=None):
        self.models = models
        self.runs = runs
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.logger = logger or logging.getLogger(__name__)
        self._projected: Set[str] = set()
        self._lock = threading.Lock()

    def on_run_started(self, run: TrainingRun) -> Optional[AIModel]:
        """Mark the model as training; deployed models keep their status.

        Must be called once the run is already running, so that a concurrent
        release from another run of the same model sees it as open. A run
        that has already ended by then leaves the model alone.
        """
        with self._lock:
            model = self.models.get(run.model_id)
            if run.id in self._projected or model.status != ModelStatus.CREATED:
                return model
            if not self.runs.get(run.id).status.is_open:
                return model
            model = self.models.update_status(model.id, ModelStatus.TRAINING)
            self.logger.debug(f"Model {model.id} is training (run {run.id})")
            return model

    def on_terminal(self, run: TrainingRun) -> Optional[AIModel]:
        """Project a completed or failed run onto its model, once per run.

        Returns the updated model, or None when the run was already
        projected or its model no longer exists.
        """
        if not run.status.is_terminal:
            raise ValueError(f"Run {run.id} is {run.status.value}, not terminal")

        with self._lock:
            if run.id in self._projected:
                return None

            try:
                model = self.models.get(run.model_id)
            except NotFoundError:
                self._projected.add(run.id)
                self.logger.warning(f"Model {run.model_id} of run {run.id} no longer exists")
                return None

            # The model is released even when the metric write fails; the run
            # then stays unprojected so a later call can write its metrics.
            try:
                if run.status == RunStatus.COMPLETED:
                    latency = float(self.rng.uniform(*self.LATENCY_RANGE))
                    model = self.models.update_metrics(
                        model.id,
                        accuracy=run.accuracy,
                        latency=latency,
                        error_rate=1.0 - run.accuracy)
                    self.logger.info(
                        f"Model {model.id} metrics updated from run {run.id}: "
                        f"accuracy={model.accuracy:.4f} latency={model.latency:.1f}ms")
                else:
                    self.logger.warning(f"Run {run.id} of model {model.id} failed")
            finally:
                model = self._release(model, exclude=run.id)

            self._projected.add(run.id)
            return model

    def on_run_removed(self, run: TrainingRun) -> Optional[AIModel]:
        """Called after an open run was deleted without reaching a terminal status."""
        try:
            model = self.models.get(run.model_id)
        except NotFoundError:
            return None
        with self._lock:
            self._projected.discard(run.id)
            return self._release(model, exclude=run.id)

    def _release(self, model: AIModel, exclude: str) -> AIModel:
        if model.status != ModelStatus.TRAINING:
            return model
        still_open = [r for r in self.runs.list(model_id=model.id)
                      if r.id != exclude and r.status.is_open]
        if still_open:
            return model
        self.logger.debug(f"Model {model.id} has no open runs left")
        return self.models.update_status(model.id, ModelStatus.CREATED)
