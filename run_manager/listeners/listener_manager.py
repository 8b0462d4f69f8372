import logging
from typing import List
from omegaconf import DictConfig
from typing_extensions import override

from run_manager.db.tables import ModelMetric, TrainingRun
from run_manager.listeners.listener import RunListener
from run_manager.listeners.listener_factory import ListenerFactory


class ListenerManager(RunListener):
    """Fans events out to every registered listener.

    A failing listener is logged and skipped; it never fails the tick that
    produced the event.
    """

    def __init__(self, workspace: str = None, logger=None) -> None:
        super().__init__(workspace)
        self.listeners: List[RunListener] = []
        self.logger = logger or logging.getLogger(__name__)

    def add_listener(self, listener: RunListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: RunListener) -> None:
        self.listeners.remove(listener)

    def get(self, listener_type: type):
        """Return the first registered listener of the given type, or None."""
        for listener in self.listeners:
            if isinstance(listener, listener_type):
                return listener
        return None

    @override
    def on_status(self, run: TrainingRun) -> None:
        for listener in list(self.listeners):
            try:
                listener.on_status(run)
            except Exception:
                self.logger.exception(
                    f"{listener.__class__.__name__} failed on status of run {run.id}")

    @override
    def on_epoch(self, run: TrainingRun, metric: ModelMetric) -> None:
        for listener in list(self.listeners):
            try:
                listener.on_epoch(run, metric)
            except Exception:
                self.logger.exception(
                    f"{listener.__class__.__name__} failed on epoch {metric.epoch} of run {run.id}")

    @override
    def close(self) -> None:
        for listener in self.listeners:
            listener.close()

    @classmethod
    def from_config(cls, config: DictConfig, workspace: str, logger=None) -> "ListenerManager":
        manager = cls(workspace, logger)
        for listener_conf in config.get("listeners", None) or []:
            if "type" not in listener_conf:
                raise ValueError("missing required 'type' field")

            listener = ListenerFactory.create(listener_conf.type, listener_conf, workspace)
            manager.add_listener(listener)

        return manager
