"""Tests for the run listeners (push channel)."""
import queue

import pytest
from omegaconf import OmegaConf

from run_manager.common.common import RunStatus
from run_manager.listeners.listener import RunListener
from run_manager.listeners.listener_manager import ListenerManager
from run_manager.listeners.plugins.log_listener import LogListener
from run_manager.listeners.plugins.queue_listener import QueueListener


class BrokenListener(RunListener):
    def on_status(self, run):
        raise RuntimeError("status sink down")

    def on_epoch(self, run, metric):
        raise RuntimeError("epoch sink down")


@pytest.fixture
def workspace(tmp_path):
    return str(tmp_path / "listeners")


def drain(subscription, timeout=5.0):
    events = []
    while True:
        event = subscription.get(timeout=timeout)
        events.append(event)
        if event.kind == "status" and event.run.status.is_terminal:
            return events


def test_queue_listener_receives_run_events(make_stack, model):
    listener = QueueListener()
    manager = ListenerManager()
    manager.add_listener(listener)
    stack = make_stack(listeners=manager)
    run = stack.controller.create_run(model.id, epochs_total=3)
    subscription = listener.subscribe(run.id)

    stack.controller.start_run(run.id)
    events = drain(subscription)

    assert [(e.kind, e.run.status) for e in events] == [
        ("status", RunStatus.RUNNING),
        ("epoch", RunStatus.RUNNING),
        ("epoch", RunStatus.RUNNING),
        ("epoch", RunStatus.COMPLETED),
        ("status", RunStatus.COMPLETED),
    ]
    assert [e.metric.epoch for e in events if e.kind == "epoch"] == [1, 2, 3]
    assert all(e.run.epochs_completed == e.metric.epoch for e in events if e.kind == "epoch")


def test_queue_listener_only_delivers_subscribed_runs(make_stack, model):
    listener = QueueListener()
    manager = ListenerManager()
    manager.add_listener(listener)
    stack = make_stack(listeners=manager)
    watched = stack.controller.create_run(model.id, epochs_total=2)
    other = stack.controller.create_run(model.id, epochs_total=2)
    subscription = listener.subscribe(watched.id)

    stack.controller.start_run(other.id)
    stack.controller.start_run(watched.id)
    events = drain(subscription)

    assert {e.run.id for e in events} == {watched.id}


def test_unsubscribe_stops_delivery(stack, model):
    listener = QueueListener()
    run = stack.controller.create_run(model.id, epochs_total=2)
    subscription = listener.subscribe(run.id)
    listener.unsubscribe(run.id, subscription)

    listener.on_status(stack.runs.get(run.id))
    with pytest.raises(queue.Empty):
        subscription.get_nowait()


def test_bounded_queue_drops_oldest(stack, model):
    listener = QueueListener(maxsize=1)
    run = stack.controller.create_run(model.id, epochs_total=2)
    subscription = listener.subscribe(run.id)

    first = stack.runs.get(run.id)
    listener.on_status(first)
    second = stack.runs.mark_started(run.id, first.created_at)
    listener.on_status(second)

    assert subscription.get_nowait().run.status == RunStatus.RUNNING
    assert subscription.empty()


def test_full_queue_drained_by_consumer_still_receives_event(stack, model, monkeypatch):
    listener = QueueListener(maxsize=1)
    run = stack.controller.create_run(model.id, epochs_total=2)
    subscription = listener.subscribe(run.id)
    first = stack.runs.get(run.id)
    listener.on_status(first)

    # The consumer empties the queue between the full put and the drop.
    take = subscription.get_nowait

    def raced_get_nowait():
        take()
        raise queue.Empty

    monkeypatch.setattr(subscription, "get_nowait", raced_get_nowait)
    second = stack.runs.mark_started(run.id, first.created_at)
    listener.on_status(second)
    monkeypatch.undo()

    assert subscription.get_nowait().run.status == RunStatus.RUNNING
    assert subscription.empty()


def test_failing_listener_does_not_fail_the_run(make_stack, model, wait_until):
    manager = ListenerManager()
    manager.add_listener(BrokenListener())
    stack = make_stack(listeners=manager)
    run = stack.controller.create_run(model.id, epochs_total=3)

    stack.controller.start_run(run.id)

    assert wait_until(lambda: stack.runs.get(run.id).status == RunStatus.COMPLETED)
    assert stack.runs.get(run.id).epochs_completed == 3


def test_log_listener_writes_progress(make_stack, model, wait_until, workspace):
    listener = LogListener(workspace)
    manager = ListenerManager()
    manager.add_listener(listener)
    stack = make_stack(listeners=manager)
    run = stack.controller.create_run(model.id, epochs_total=2)

    stack.controller.start_run(run.id)
    assert wait_until(lambda: stack.runs.get(run.id).status == RunStatus.COMPLETED)
    stack.scheduler.wait(run.id, timeout=5)
    listener.close()

    with open(listener.log_path) as f:
        lines = f.read().splitlines()
    assert any(f"Run {run.id} running" in line for line in lines)
    assert any(f"  Run {run.id} epoch 2/2" in line for line in lines)
    assert any(f"Run {run.id} completed (2/2 epochs)" in line for line in lines)


def test_manager_from_config(workspace):
    config = OmegaConf.create({
        "listeners": [
            {"type": "LogListener", "name": "runs.log"},
            {"type": "QueueListener", "maxsize": 10},
        ]
    })
    manager = ListenerManager.from_config(config, workspace)

    assert [type(listener) for listener in manager.listeners] == [LogListener, QueueListener]
    assert manager.get(LogListener).name == "runs.log"
    assert manager.get(QueueListener).maxsize == 10
    manager.close()


def test_manager_from_config_requires_type(workspace):
    config = OmegaConf.create({"listeners": [{"name": "x"}]})
    with pytest.raises(ValueError):
        ListenerManager.from_config(config, workspace)


def test_manager_without_listeners(workspace):
    assert ListenerManager.from_config(OmegaConf.create({}), workspace).listeners == []
