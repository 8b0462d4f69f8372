import os
from abc import ABC, abstractmethod

from run_manager.common.serializable import YAMLSerializable
from run_manager.db.tables import ModelMetric, TrainingRun


class RunListener(YAMLSerializable, ABC):
    """Receives run events pushed by the scheduler.

    Callbacks run on the scheduler thread of the run that produced the
    event, after the corresponding write has been committed.
    """

    def __init__(self, workspace: str = None):
        super().__init__()
        self.workspace = workspace

    @abstractmethod
    def on_status(self, run: TrainingRun) -> None:
        """Called after a run changed status."""
        pass

    @abstractmethod
    def on_epoch(self, run: TrainingRun, metric: ModelMetric) -> None:
        """Called after an epoch was committed."""
        pass

    def close(self) -> None:
        pass

    def _ensure_workspace(self) -> str:
        os.makedirs(self.workspace, exist_ok=True)
        return self.workspace
