"""Background epoch progression, one thread per active run.

Each active run owns exactly one :class:`RunHandle`: a thread plus a stop
token. The handle table is the only place a progression task can be found,
and a new handle is only created when no live one exists for the run id, so
a run never has two schedulers at once. Stopping is cooperative: the stop
token is only observed while waiting between ticks, never while an epoch is
being written.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional

from run_manager.common.common import RunStatus
from run_manager.common.errors import SchedulerFault, ValidationError
from run_manager.db.tables import TrainingRun
from run_manager.listeners.listener_manager import ListenerManager
from run_manager.scheduler.progression import MetricProgression
from run_manager.storage.metric_series import MetricSeries
from run_manager.storage.registry import RunRegistry


class RunHandle:
    """Progression task bound to one run id."""

    def __init__(self, run_id: str, target: Callable[["RunHandle"], None]):
        self.run_id = run_id
        self.stop_event = threading.Event()
        self.thread = threading.Thread(
            target=target, args=(self,), name=f"run-{run_id[:8]}", daemon=True)

    def start(self) -> None:
        self.thread.start()

    def request_stop(self) -> None:
        self.stop_event.set()

    def wait_tick(self, cadence: float) -> bool:
        """Sleep one cadence; returns False once a stop has been requested."""
        return not self.stop_event.wait(cadence)

    def join(self, timeout: Optional[float] = None) -> None:
        self.thread.join(timeout)

    @property
    def alive(self) -> bool:
        return self.thread.is_alive()


class EpochScheduler:
    """Drives runs through epochs 1..epochs_total at a fixed cadence.

    Business-rule legality (which status may be started, paused or resumed)
    is checked by the caller; the scheduler only guarantees that a run has
    at most one live task and that epochs are written in order.
    """

    def __init__(self,
                 registry: RunRegistry,
                 metrics: MetricSeries,
                 progression: Optional[MetricProgression] = None,
                 cadence: float = 0.5,
                 clock: Callable[[], datetime] = datetime.now,
                 listeners: Optional[ListenerManager] = None,
                 logger=None,
                 on_terminal: Optional[Callable[[TrainingRun], None]] = None):
        if cadence < 0:
            raise ValueError("cadence must be >= 0")
        self.registry = registry
        self.metrics = metrics
        self.progression = progression or MetricProgression()
        self.cadence = cadence
        self.clock = clock
        self.listeners = listeners or ListenerManager()
        self.logger = logger or logging.getLogger(__name__)
        self.on_terminal = on_terminal
        self._handles: Dict[str, RunHandle] = {}
        self._lock = threading.Lock()

    def start(self, run: TrainingRun, started_by: Optional[str] = None) -> TrainingRun:
        """Mark ``run`` running and spawn its progression task.

        Progress continues at ``run.epochs_completed + 1``, so the same call
        serves a first start and a resume.
        """
        with self._lock:
            handle = self._handles.get(run.id)
            if handle is not None and handle.alive:
                raise ValidationError(f"Run {run.id} already has an active scheduler")
            if run.epochs_completed >= run.epochs_total:
                raise ValidationError(f"Run {run.id} has no epochs left to train")

            started = self.registry.mark_started(run.id, self.clock(), started_by)
            self.listeners.on_status(started)

            handle = RunHandle(run.id, self._progress)
            self._handles[run.id] = handle
            handle.start()

        self.logger.info(
            f"Run {run.id} scheduled from epoch {started.epochs_completed + 1} "
            f"of {started.epochs_total}")
        return started

    def resume(self, run: TrainingRun, started_by: Optional[str] = None) -> TrainingRun:
        return self.start(run, started_by)

    def stop(self, run_id: str) -> bool:
        """Signal the task of a run and wait until it has terminated.

        Returns True when a live task was stopped.
        """
        with self._lock:
            handle = self._handles.get(run_id)
        if handle is None:
            return False
        if handle.thread is threading.current_thread():
            raise ValidationError(f"Run {run_id} cannot be stopped from its own scheduler thread")

        handle.request_stop()
        handle.join()
        self.logger.debug(f"Scheduler of run {run_id} stopped")
        return True

    def pause(self, run_id: str) -> TrainingRun:
        """Stop the task of a running run and mark it paused.

        Does not return until the task has fully terminated. If the run
        reached a terminal status before the stop took effect it stays there
        and ValidationError is raised.
        """
        self.stop(run_id)
        run = self.registry.get(run_id)
        if run.status != RunStatus.RUNNING:
            raise ValidationError(
                f"Run {run_id} is {run.status.value} and can no longer be paused")

        paused = self.registry.set_status(run_id, RunStatus.PAUSED)
        self.listeners.on_status(paused)
        self.logger.info(f"Run {run_id} paused after epoch {paused.epochs_completed}")
        return paused

    def is_active(self, run_id: str) -> bool:
        with self._lock:
            handle = self._handles.get(run_id)
            return handle is not None and handle.alive

    def active_runs(self) -> List[str]:
        with self._lock:
            return [run_id for run_id, handle in self._handles.items() if handle.alive]

    def wait(self, run_id: str, timeout: Optional[float] = None) -> None:
        """Block until the task of a run (if any) exits on its own."""
        with self._lock:
            handle = self._handles.get(run_id)
        if handle is not None:
            handle.join(timeout)

    def shutdown(self) -> None:
        """Stop every task; runs that were still running are left paused."""
        for run_id in self.active_runs():
            try:
                self.pause(run_id)
            except ValidationError as e:
                self.logger.info(f"Run {run_id} not paused on shutdown: {e}")

    def _progress(self, handle: RunHandle) -> None:
        run_id = handle.run_id
        try:
            run = self.registry.get(run_id)
            epoch = run.epochs_completed
            while handle.wait_tick(self.cadence):
                epoch += 1
                run = self._tick(run, epoch)
                if run.status.is_terminal:
                    break
        except SchedulerFault as fault:
            self._fail(fault)
        except Exception as e:
            self._fail(SchedulerFault(run_id, -1, e))
        finally:
            with self._lock:
                if self._handles.get(run_id) is handle:
                    del self._handles[run_id]

    def _tick(self, run: TrainingRun, epoch: int) -> TrainingRun:
        """Compute, append and commit one epoch."""
        try:
            metric = self.progression.compute(run, epoch, self.clock())
            self.metrics.append(metric)
        except Exception as e:
            raise SchedulerFault(run.id, epoch, e) from e

        completed = epoch >= run.epochs_total
        try:
            updated = self.registry.update_status(
                run.id,
                RunStatus.COMPLETED if completed else RunStatus.RUNNING,
                epochs_completed=epoch,
                accuracy=metric.accuracy,
                loss=metric.loss,
                val_accuracy=metric.val_accuracy,
                val_loss=metric.val_loss,
                completed_at=self.clock() if completed else None)
        except Exception as e:
            self._retract(run.id, epoch)
            raise SchedulerFault(run.id, epoch, e) from e

        self.listeners.on_epoch(updated, metric)
        if completed:
            self.logger.info(
                f"Run {run.id} completed {epoch} epochs with accuracy {metric.accuracy:.4f}")
            self.listeners.on_status(updated)
            self._notify_terminal(updated)
        return updated

    def _retract(self, run_id: str, epoch: int) -> None:
        try:
            self.metrics.retract(run_id, epoch)
        except Exception:
            self.logger.exception(f"Could not retract uncommitted epoch {epoch} of run {run_id}")

    def _fail(self, fault: SchedulerFault) -> None:
        self.logger.error(str(fault), exc_info=fault.cause)
        try:
            failed = self.registry.set_status(fault.run_id, RunStatus.FAILED)
        except Exception:
            self.logger.exception(f"Could not mark run {fault.run_id} as failed")
            return
        self.listeners.on_status(failed)
        self._notify_terminal(failed)

    def _notify_terminal(self, run: TrainingRun) -> None:
        if self.on_terminal is None:
            return
        try:
            self.on_terminal(run)
        except Exception:
            self.logger.exception(f"Terminal handler failed for run {run.id}")
