import queue
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional
from omegaconf import DictConfig
from typing_extensions import override

from run_manager.db.tables import ModelMetric, TrainingRun
from run_manager.listeners.listener import RunListener
from run_manager.common.serializable import YAMLSerializable


@dataclass(frozen=True)
class RunEvent:
    """One pushed event: ``kind`` is "status" or "epoch"."""
    kind: str
    run: TrainingRun
    metric: Optional[ModelMetric] = None


@YAMLSerializable.register("QueueListener")
class QueueListener(RunListener):
    """Push channel: subscribers receive run events on their own queue.

    Intended for clients that want lower latency than polling; polling the
    snapshot reader remains the primary contract.
    """

    def __init__(self, workspace: str = None, maxsize: int = 0):
        super().__init__(workspace)
        self.maxsize = maxsize
        self._subscribers: Dict[str, List[queue.Queue]] = {}
        self._lock = threading.Lock()

    def subscribe(self, run_id: str) -> queue.Queue:
        subscription = queue.Queue(self.maxsize)
        with self._lock:
            self._subscribers.setdefault(run_id, []).append(subscription)
        return subscription

    def unsubscribe(self, run_id: str, subscription: queue.Queue) -> None:
        with self._lock:
            subscriptions = self._subscribers.get(run_id, [])
            if subscription in subscriptions:
                subscriptions.remove(subscription)
            if not subscriptions:
                self._subscribers.pop(run_id, None)

    def _publish(self, event: RunEvent) -> None:
        with self._lock:
            subscriptions = list(self._subscribers.get(event.run.id, ()))
        for subscription in subscriptions:
            while True:
                try:
                    subscription.put_nowait(event)
                    break
                except queue.Full:
                    # Slow subscribers lose their oldest event.
                    try:
                        subscription.get_nowait()
                    except queue.Empty:
                        pass

    @override
    def on_status(self, run: TrainingRun) -> None:
        self._publish(RunEvent("status", run))

    @override
    def on_epoch(self, run: TrainingRun, metric: ModelMetric) -> None:
        self._publish(RunEvent("epoch", run, metric))

    @classmethod
    def from_config(cls, config: DictConfig, workspace: str) -> "QueueListener":
        return cls(workspace, config.get("maxsize", 0))
