import os
import logging
from omegaconf import DictConfig
from typing_extensions import override

from run_manager.db.tables import ModelMetric, TrainingRun
from run_manager.listeners.listener import RunListener
from run_manager.common.serializable import YAMLSerializable


@YAMLSerializable.register("LogListener")
class LogListener(RunListener):
    """Writes a human readable progress log, one indented line per epoch."""
    LOG_NAME = "progress.log"

    def __init__(self, workspace: str, name: str = LOG_NAME, verbose: bool = False):
        super().__init__(workspace)
        self.name = name
        self.verbose = verbose
        self._setup_logger()

    def _setup_logger(self):
        self.log_path = os.path.join(self._ensure_workspace(), self.name)
        self.logger = logging.getLogger(f"run_manager.progress.{self.log_path}")
        self.logger.propagate = False
        self.logger.setLevel(logging.INFO)
        self.logger.handlers = []

        file_handler = logging.FileHandler(self.log_path)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(message)s'))
        self.logger.addHandler(file_handler)

        if self.verbose:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(console_handler)

    @override
    def on_status(self, run: TrainingRun) -> None:
        self.logger.info(
            f"Run {run.id} {run.status.value} "
            f"({run.epochs_completed}/{run.epochs_total} epochs)")

    @override
    def on_epoch(self, run: TrainingRun, metric: ModelMetric) -> None:
        self.logger.info(
            f"  Run {run.id} epoch {metric.epoch}/{run.epochs_total}: "
            f"accuracy={metric.accuracy:.4f} loss={metric.loss:.4f} "
            f"val_accuracy={metric.val_accuracy:.4f} val_loss={metric.val_loss:.4f}")

    @override
    def close(self) -> None:
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)

    @classmethod
    def from_config(cls, config: DictConfig, workspace: str) -> "LogListener":
        name = config.get("name", LogListener.LOG_NAME)
        verbose = config.get("verbose", False)
        return cls(workspace, name, verbose)
