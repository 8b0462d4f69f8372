"""
Simulate a training run end to end: create, start, pause, resume and poll
until the run completes, then print the final model metrics.

    python examples/run_simulation.py --config examples/configs/engine.yaml
"""
import argparse
import os
import time

from run_manager import Engine, Principal
from run_manager.common.common import RunStatus


def poll(engine: Engine, run_id: str, interval: float) -> dict:
    while True:
        run = engine.reader.fetch_run(run_id)
        print(f"{run['status']:>9}  epoch {run['epochsCompleted']:>3}/{run['epochsTotal']}"
              f"  accuracy={run['accuracy']:.4f}")
        if RunStatus(run["status"]).is_terminal:
            return run
        time.sleep(interval)


def main():
    parser = argparse.ArgumentParser(description="Simulate a model training run")
    parser.add_argument("--config", default=os.path.join(os.path.dirname(__file__), "configs", "engine.yaml"))
    parser.add_argument("--epochs", type=int, default=10)
    args = parser.parse_args()

    developer = Principal("demo", "developer")
    with Engine.load(args.config) as engine:
        model = engine.models.create("sentiment-classifier", "classification", base_model="bert-base")
        run = engine.controller.create_run(model.id, epochs_total=args.epochs, principal=developer)
        engine.controller.start_run(run.id, principal=developer)

        time.sleep(engine.scheduler.cadence * 3.5)
        paused = engine.controller.pause_run(run.id, principal=developer)
        print(f"paused after epoch {paused.epochs_completed}")
        engine.controller.resume_run(run.id, principal=developer)

        poll(engine, run.id, engine.scheduler.cadence)
        model = engine.models.get(model.id)
        print(f"model {model.name}: accuracy={model.accuracy:.4f} "
              f"latency={model.latency:.1f}ms error_rate={model.error_rate:.4f} status={model.status.value}")


if __name__ == "__main__":
    main()
