from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import numpy as np
from omegaconf import DictConfig

from run_manager.common.serializable import YAMLSerializable
from run_manager.db.tables import ModelMetric, TrainingRun


@dataclass(frozen=True)
class EpochValues:
    accuracy: float
    loss: float
    val_accuracy: float
    val_loss: float


class MetricProgression(YAMLSerializable):
    """Synthetic, monotonically improving metrics with seedable noise.

    accuracy rises linearly from ``baseline`` by ``spread`` over the run and
    is clamped to ``[0, ceiling]``; loss falls linearly from ``loss_start`` by
    ``loss_drop`` and never drops below ``loss_floor``. Validation values are
    the training values perturbed by a small amount of noise.
    """

    def __init__(self,
                 baseline: float = 0.5,
                 spread: float = 0.45,
                 noise: float = 0.05,
                 ceiling: float = 0.95,
                 loss_start: float = 0.5,
                 loss_drop: float = 0.45,
                 loss_floor: float = 0.05,
                 val_noise: float = 0.05,
                 val_loss_noise: float = 0.1,
                 rng: Optional[np.random.Generator] = None,
                 seed: Optional[int] = None):
        super().__init__()
        self.baseline = baseline
        self.spread = spread
        self.noise = noise
        self.ceiling = ceiling
        self.loss_start = loss_start
        self.loss_drop = loss_drop
        self.loss_floor = loss_floor
        self.val_noise = val_noise
        self.val_loss_noise = val_loss_noise
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def values(self, epoch: int, epochs_total: int) -> EpochValues:
        if epochs_total <= 0 or not 1 <= epoch <= epochs_total:
            raise ValueError(f"epoch {epoch} is outside 1..{epochs_total}")

        progress = epoch / epochs_total
        noise, val_noise, val_loss_noise = self.rng.random(3)

        accuracy = float(np.clip(self.baseline + progress * self.spread + noise * self.noise,
                                 0.0, self.ceiling))
        loss = max(self.loss_floor, self.loss_start - progress * self.loss_drop)
        val_accuracy = float(np.clip(accuracy - val_noise * self.val_noise, 0.0, self.ceiling))
        val_loss = loss + float(val_loss_noise) * self.val_loss_noise

        return EpochValues(accuracy=accuracy, loss=loss, val_accuracy=val_accuracy, val_loss=val_loss)

    def compute(self, run: TrainingRun, epoch: int, created_at: datetime) -> ModelMetric:
        """Produce the metric record of ``epoch`` for ``run``."""
        values = self.values(epoch, run.epochs_total)
        return ModelMetric(
            run_id=run.id,
            epoch=epoch,
            accuracy=values.accuracy,
            loss=values.loss,
            val_accuracy=values.val_accuracy,
            val_loss=values.val_loss,
            created_at=created_at,
        )

    @classmethod
    def from_config(cls, config: DictConfig, seed: Optional[int] = None) -> "MetricProgression":
        config = config or DictConfig({})
        return cls(
            baseline=config.get("baseline", 0.5),
            spread=config.get("spread", 0.45),
            noise=config.get("noise", 0.05),
            ceiling=config.get("ceiling", 0.95),
            loss_start=config.get("loss_start", 0.5),
            loss_drop=config.get("loss_drop", 0.45),
            loss_floor=config.get("loss_floor", 0.05),
            val_noise=config.get("val_noise", 0.05),
            val_loss_noise=config.get("val_loss_noise", 0.1),
            seed=config.get("seed", seed),
        )
