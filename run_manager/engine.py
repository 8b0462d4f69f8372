import os
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional
from omegaconf import OmegaConf, DictConfig

from run_manager.auth import Authorizer, AllowAll
from run_manager.common.common import LOG_NAME, ConfigPaths, ReconcilePolicy, RunStatus
from run_manager.common.factory import Factory
from run_manager.common.serializable import YAMLSerializable
from run_manager.controller import RunController
from run_manager.db.tables import TrainingRun
from run_manager.listeners.listener_manager import ListenerManager
from run_manager.logger import CompositeLogger, FileLogger
from run_manager.projector import ModelStatusProjector
from run_manager.scheduler.progression import MetricProgression
from run_manager.scheduler.scheduler import EpochScheduler
from run_manager.snapshot import SnapshotReader
from run_manager.storage.storage import Storage


class ProductPaths(Enum):
    LOG_DIR = "logs"
    CONFIG_DIR = "configs"


class Engine(YAMLSerializable):
    """
    Wires storage, scheduler, controller and readers into one running engine.
    All engine outputs (logs, the sqlite database, listener files) are
    written to the workspace directory.
    """

    def __init__(self,
                 workspace: str,
                 config: DictConfig,
                 verbose: bool = False,
                 debug: bool = False,
                 storage: Optional[Storage] = None,
                 authorizer: Optional[Authorizer] = None,
                 clock: Callable[[], datetime] = datetime.now):
        super().__init__(config)

        self.workspace = os.path.abspath(workspace)
        os.makedirs(self.workspace, exist_ok=True)

        self.verbose = verbose
        self.debug = debug
        self.clock = clock
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        self.log_name = f"{LOG_NAME}-{timestamp}"

        if self.verbose:
            self.logger = CompositeLogger(name=self.log_name, log_dir=self.log_dir, debug=self.debug)
        else:
            self.logger = FileLogger(name=self.log_name, log_dir=self.log_dir, debug=self.debug)

        storage_conf = config.get("storage", None) or DictConfig({"type": "memory"})
        self.storage = storage or Factory.create(
            storage_conf.get("type", "memory"), storage_conf, self.workspace, clock=clock)

        scheduler_conf = config.get("scheduler", None) or DictConfig({})
        seed = scheduler_conf.get("seed", None)
        self.progression = MetricProgression.from_config(config.get("progression", None), seed=seed)
        self.listeners = ListenerManager.from_config(config, self.workspace, logger=self.logger)

        self.scheduler = EpochScheduler(
            self.storage.runs,
            self.storage.metrics,
            progression=self.progression,
            cadence=scheduler_conf.get("cadence_seconds", 0.5),
            clock=clock,
            listeners=self.listeners,
            logger=self.logger)
        self.projector = ModelStatusProjector(
            self.storage.models, self.storage.runs, seed=seed, logger=self.logger)

        authorizer_conf = config.get("authorizer", None)
        if authorizer is None and authorizer_conf is not None:
            authorizer = Factory.create(authorizer_conf.type, authorizer_conf)
        self.authorizer = authorizer or AllowAll()

        self.controller = RunController(
            self.storage.runs,
            self.storage.metrics,
            self.storage.models,
            self.scheduler,
            self.projector,
            authorizer=self.authorizer,
            clock=clock,
            logger=self.logger)
        self.reader = SnapshotReader(self.storage.runs, self.storage.metrics, logger=self.logger)

        self.reconcile_policy = ReconcilePolicy(config.get("reconcile_policy", ReconcilePolicy.FAIL.value))
        self.logger.info(
            f"Engine ready in {self.workspace} "
            f"({storage_conf.get('type', 'memory')} storage, cadence {self.scheduler.cadence}s)")
        self.save()

    @property
    def models(self):
        return self.storage.models

    @property
    def log_dir(self):
        log_dir_path = os.path.join(self.workspace, ProductPaths.LOG_DIR.value)
        os.makedirs(log_dir_path, exist_ok=True)
        return log_dir_path

    @property
    def config_dir(self):
        config_dir_path = os.path.join(self.workspace, ProductPaths.CONFIG_DIR.value)
        os.makedirs(config_dir_path, exist_ok=True)
        return config_dir_path

    def save(self) -> None:
        """Save engine configuration to the workspace."""
        config_path = os.path.join(self.config_dir, ConfigPaths.CONFIG_FILE.value)
        OmegaConf.save(self.config, config_path)
        self.logger.debug(f"Saved engine config to {config_path}")

    def reconcile(self) -> List[TrainingRun]:
        """Resolve runs left running by a previous process.

        Such runs have no scheduler anymore. Under the ``fail`` policy they
        become failed and their model is released; under ``pause`` they
        become paused and can be resumed.
        """
        reconciled = []
        for run in self.storage.runs.list(status=RunStatus.RUNNING):
            if self.scheduler.is_active(run.id):
                continue

            if self.reconcile_policy == ReconcilePolicy.FAIL:
                updated = self.storage.runs.set_status(run.id, RunStatus.FAILED)
                self.listeners.on_status(updated)
                self.projector.on_terminal(updated)
            else:
                updated = self.storage.runs.set_status(run.id, RunStatus.PAUSED)
                self.listeners.on_status(updated)

            self.logger.warning(
                f"Run {run.id} was left running at epoch {run.epochs_completed}; "
                f"marked {updated.status.value}")
            reconciled.append(updated)
        return reconciled

    def close(self) -> None:
        """Pause live runs and release storage, listeners and the logger."""
        self.scheduler.shutdown()
        self.listeners.close()
        self.storage.close()
        self.logger.close()

    def __enter__(self) -> "Engine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @classmethod
    def from_config(cls, config: DictConfig, clock: Callable[[], datetime] = datetime.now) -> "Engine":
        """Create an engine from configuration and reconcile stale runs."""
        engine = cls(
            workspace=config.workspace,
            config=config,
            verbose=config.get("verbose", False),
            debug=config.get("debug", False),
            clock=clock)
        engine.reconcile()
        return engine
