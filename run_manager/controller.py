"""Public operation surface for training runs.

Every operation checks permission, then validates the current status of
the run before delegating to the scheduler, so the scheduler only has to
enforce single-writer safety. Operations on the same run id are serialized;
operations on different runs never wait for each other.
"""
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from run_manager.auth import AllowAll, Authorizer, Principal, SYSTEM
from run_manager.common.common import Action, RunStatus, RunType, can_transition
from run_manager.common.errors import PermissionDeniedError, ValidationError
from run_manager.db.tables import TrainingRun
from run_manager.projector import ModelStatusProjector
from run_manager.scheduler.scheduler import EpochScheduler
from run_manager.storage.metric_series import MetricSeries
from run_manager.storage.model_store import ModelStore
from run_manager.storage.registry import RunRegistry


DEFAULT_EPOCHS = 100
DEFAULT_LEARNING_RATE = 0.001
DEFAULT_BATCH_SIZE = 32


class RunController:

    def __init__(self,
                 registry: RunRegistry,
                 metrics: MetricSeries,
                 models: ModelStore,
                 scheduler: EpochScheduler,
                 projector: ModelStatusProjector,
                 authorizer: Optional[Authorizer] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 logger=None):
        self.registry = registry
        self.metrics = metrics
        self.models = models
        self.scheduler = scheduler
        self.projector = projector
        self.authorizer = authorizer or AllowAll()
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

        self.scheduler.on_terminal = self.projector.on_terminal

        self._run_locks: Dict[str, list] = {}
        self._guard = threading.Lock()

    @contextmanager
    def _locked(self, run_id: str):
        """Serialize operations on one run id.

        Each entry holds the lock and the number of callers using it; the
        last caller out removes the entry, so the table only holds run ids
        with an operation in flight.
        """
        with self._guard:
            entry = self._run_locks.setdefault(run_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._run_locks[run_id]

    def _authorize(self, principal: Optional[Principal], action: Action) -> Principal:
        principal = principal or SYSTEM
        if not self.authorizer.has_permission(principal, action):
            raise PermissionDeniedError(
                f"{principal.id} ({principal.role}) may not {action.value.replace('_', ' ')}")
        return principal

    @staticmethod
    def _check_transition(run: TrainingRun, source: RunStatus, target: RunStatus,
                          operation: str) -> None:
        if run.status != source or not can_transition(run.status, target):
            raise ValidationError(
                f"Cannot {operation} run {run.id}: status is {run.status.value}, "
                f"expected {source.value}")

    @staticmethod
    def _validate_hyperparameters(epochs_total: Any, learning_rate: Any, batch_size: Any) -> None:
        if isinstance(epochs_total, bool) or not isinstance(epochs_total, int) or epochs_total <= 0:
            raise ValidationError(f"epochs_total must be a positive integer, got {epochs_total!r}")
        if isinstance(learning_rate, bool) or not isinstance(learning_rate, (int, float)) \
                or not learning_rate > 0:
            raise ValidationError(f"learning_rate must be a positive number, got {learning_rate!r}")
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
            raise ValidationError(f"batch_size must be a positive integer, got {batch_size!r}")

    def create_run(self,
                   model_id: str,
                   epochs_total: Optional[int] = None,
                   learning_rate: Optional[float] = None,
                   batch_size: Optional[int] = None,
                   dataset_id: Optional[str] = None,
                   run_type: RunType = RunType.FULL,
                   config: Optional[Dict[str, Any]] = None,
                   principal: Optional[Principal] = None) -> TrainingRun:
        """Create a pending run of ``model_id``.

        Omitted hyperparameters fall back to 100 epochs, a learning rate of
        0.001 and a batch size of 32.
        """
        self._authorize(principal, Action.CREATE_RUN)

        epochs_total = DEFAULT_EPOCHS if epochs_total is None else epochs_total
        learning_rate = DEFAULT_LEARNING_RATE if learning_rate is None else learning_rate
        batch_size = DEFAULT_BATCH_SIZE if batch_size is None else batch_size
        self._validate_hyperparameters(epochs_total, learning_rate, batch_size)
        try:
            run_type = RunType(run_type)
        except ValueError as e:
            raise ValidationError(f"Unknown run type {run_type!r}") from e

        model = self.models.get(model_id)
        run = TrainingRun(
            id=str(uuid.uuid4()),
            model_id=model.id,
            dataset_id=dataset_id,
            epochs_total=epochs_total,
            learning_rate=float(learning_rate),
            batch_size=batch_size,
            run_type=run_type,
            config=dict(config or {}),
            created_at=self.clock(),
        )
        self.registry.create(run)
        self.logger.info(
            f"Created run {run.id} for model {model.id}: {epochs_total} epochs, "
            f"lr={learning_rate}, batch_size={batch_size}")
        return self.registry.get(run.id)

    def start_run(self, run_id: str, principal: Optional[Principal] = None) -> TrainingRun:
        principal = self._authorize(principal, Action.START_RUN)
        with self._locked(run_id):
            run = self.registry.get(run_id)
            self._check_transition(run, RunStatus.PENDING, RunStatus.RUNNING, "start")
            started = self.scheduler.start(run, started_by=principal.id)
            self.projector.on_run_started(started)
        self.logger.info(f"Run {run_id} started by {principal.id}")
        return started

    def pause_run(self, run_id: str, principal: Optional[Principal] = None) -> TrainingRun:
        """Pause a running run; returns once its scheduler has terminated."""
        principal = self._authorize(principal, Action.PAUSE_RUN)
        with self._locked(run_id):
            run = self.registry.get(run_id)
            self._check_transition(run, RunStatus.RUNNING, RunStatus.PAUSED, "pause")
            paused = self.scheduler.pause(run_id)
        self.logger.info(f"Run {run_id} paused by {principal.id} at epoch {paused.epochs_completed}")
        return paused

    def resume_run(self, run_id: str, principal: Optional[Principal] = None) -> TrainingRun:
        principal = self._authorize(principal, Action.RESUME_RUN)
        with self._locked(run_id):
            run = self.registry.get(run_id)
            self._check_transition(run, RunStatus.PAUSED, RunStatus.RUNNING, "resume")
            resumed = self.scheduler.resume(run)
            self.projector.on_run_started(resumed)
        self.logger.info(
            f"Run {run_id} resumed by {principal.id} from epoch {resumed.epochs_completed + 1}")
        return resumed

    def delete_run(self, run_id: str, principal: Optional[Principal] = None) -> None:
        """Delete a run and its metrics, stopping its scheduler first."""
        principal = self._authorize(principal, Action.DELETE_RUN)
        with self._locked(run_id):
            self.registry.get(run_id)
            self.scheduler.stop(run_id)
            run = self.registry.get(run_id)
            self.registry.delete(run_id)
            self.metrics.delete_run(run_id)
            if run.status.is_open:
                self.projector.on_run_removed(run)
        self.logger.info(f"Run {run_id} deleted by {principal.id}")

    def get_run(self, run_id: str, principal: Optional[Principal] = None) -> TrainingRun:
        self._authorize(principal, Action.READ_RUN)
        return self.registry.get(run_id)

    def list_runs(self,
                  model_id: Optional[str] = None,
                  status: Optional[RunStatus] = None,
                  principal: Optional[Principal] = None) -> List[TrainingRun]:
        self._authorize(principal, Action.READ_RUN)
        return self.registry.list(model_id=model_id,
                                  status=RunStatus(status) if status is not None else None)
