"""Records for models, training runs and per-epoch metrics."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from run_manager.common.common import ModelStatus, RunStatus, RunType


@dataclass(frozen=True)
class AIModel:
    """Represents a model that training runs belong to."""
    id: str
    name: str
    model_type: str
    created_at: datetime
    updated_at: datetime
    status: ModelStatus = ModelStatus.CREATED
    base_model: Optional[str] = None
    version: str = "1.0.0"
    accuracy: float = 0.0
    latency: float = 0.0
    error_rate: float = 0.0
    deployed_at: Optional[datetime] = None


@dataclass(frozen=True)
class TrainingRun:
    """Represents one simulated training run of a model.

    Records are immutable; every write produces a new record, so a reader
    holding a ``TrainingRun`` always sees one consistent set of progress
    fields.
    """
    id: str
    model_id: str
    epochs_total: int
    learning_rate: float
    batch_size: int
    created_at: datetime
    dataset_id: Optional[str] = None
    status: RunStatus = RunStatus.PENDING
    epochs_completed: int = 0
    accuracy: float = 0.0
    val_accuracy: float = 0.0
    loss: Optional[float] = None
    val_loss: Optional[float] = None
    run_type: RunType = RunType.FULL
    config: Dict[str, Any] = field(default_factory=dict)
    started_by: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class ModelMetric:
    """Metrics of one epoch, keyed by (run_id, epoch)."""
    run_id: str
    epoch: int
    accuracy: float
    loss: float
    created_at: datetime
    val_accuracy: Optional[float] = None
    val_loss: Optional[float] = None
