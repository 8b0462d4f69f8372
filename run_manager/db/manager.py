"""Database manager for models, training runs and epoch metrics."""
from typing import Any, Dict, List, Optional, Union
from contextlib import contextmanager
import json
import logging
import sqlite3
import threading
import mysql.connector
from datetime import datetime
from pathlib import Path
import pandas as pd

from run_manager.common.common import ModelStatus, RunStatus, RunType
from run_manager.db.db import init_sqlite_db, init_mysql_db, INDEXES
from run_manager.db.tables import AIModel, TrainingRun, ModelMetric

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Base class for database-related errors."""
    pass


class ConnectionError(DatabaseError):
    """Error connecting to the database."""
    pass


class QueryError(DatabaseError):
    """Error executing a database query."""
    pass


def _to_db_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_db_time(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class DatabaseManager:
    """Manages database operations for training runs.

    This class provides a high-level interface over the run database. It
    supports both SQLite and MySQL backends. A single connection is shared
    by the caller and by every scheduler thread, so each statement (and each
    multi-statement transaction) runs under one re-entrant lock and is
    committed before the lock is released; writes are therefore visible to
    the very next read from any thread.

    Attributes:
        use_sqlite (bool): Whether SQLite is being used as the backend
        connection: Database connection object (SQLite or MySQL)
        cursor: Database cursor object
    """

    def __init__(self, database_path: Union[str, Path] = "run_manager.db",
                 use_sqlite: bool = False, host: str = "localhost",
                 user: str = "root", password: str = "", recreate: bool = False, readonly: bool = False):
        self.use_sqlite = use_sqlite
        self.readonly = readonly
        self._lock = threading.RLock()
        self._depth = 0
        try:
            if use_sqlite:
                self.connection = init_sqlite_db(database_path, recreate=recreate, readonly=readonly)
                self.cursor = self.connection.cursor()
            else:
                self.connection = init_mysql_db(host, user, password, str(database_path), recreate=recreate)
                self.cursor = self.connection.cursor(dictionary=True)
        except (sqlite3.Error, OSError, mysql.connector.Error) as e:
            raise ConnectionError(f"Failed to connect to database: {e}") from e

    def close(self) -> None:
        with self._lock:
            try:
                if getattr(self, 'cursor', None) is not None:
                    self.cursor.close()
                if getattr(self, 'connection', None) is not None:
                    self.connection.close()
            except (sqlite3.Error, mysql.connector.Error) as e:
                logger.warning(f"Error during cleanup: {e}")
            finally:
                self.cursor = None
                self.connection = None

    def _execute_query(self, query: str, params: tuple = None) -> Any:
        try:
            if params:
                self.cursor.execute(query, params)
            else:
                self.cursor.execute(query)
            return self.cursor
        except (sqlite3.Error, mysql.connector.Error) as e:
            raise QueryError(f"Query execution failed: {e}") from e

    def _get_placeholder(self) -> str:
        """Get the appropriate parameter placeholder for the current database."""
        return "?" if self.use_sqlite else "%s"

    def _fetchone(self, query: str, params: tuple = None) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._execute_query(query, params).fetchone()

    def _fetchall(self, query: str, params: tuple = None) -> List[Dict[str, Any]]:
        with self._lock:
            return self._execute_query(query, params).fetchall()

    def _write(self, query: str, params: tuple = None) -> int:
        """Execute a single write statement and commit it; returns the rowcount."""
        with self.transaction():
            return self._execute_query(query, params).rowcount

    @contextmanager
    def transaction(self):
        """Run several statements atomically under the connection lock.

        Nested transactions join the outermost one, which alone commits or
        rolls back.
        """
        with self._lock:
            self._depth += 1
            try:
                yield self
                if self._depth == 1:
                    self.connection.commit()
            except Exception:
                if self._depth == 1:
                    self.connection.rollback()
                raise
            finally:
                self._depth -= 1

    # ========================
    # Models
    # ========================

    def create_model(self, model: AIModel) -> AIModel:
        ph = self._get_placeholder()
        query = f"""
        INSERT INTO AI_MODEL (id, name, model_type, base_model, version, status,
                              accuracy, latency, error_rate, created_at, updated_at, deployed_at)
        VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph})
        """
        self._write(query, (
            model.id, model.name, model.model_type, model.base_model, model.version,
            ModelStatus(model.status).value, model.accuracy, model.latency, model.error_rate,
            _to_db_time(model.created_at), _to_db_time(model.updated_at),
            _to_db_time(model.deployed_at)))
        return model

    def get_model(self, model_id: str) -> Optional[AIModel]:
        ph = self._get_placeholder()
        row = self._fetchone(f"SELECT * FROM AI_MODEL WHERE id = {ph}", (model_id,))
        return self._row_to_model(row) if row else None

    def list_models(self) -> List[AIModel]:
        rows = self._fetchall("SELECT * FROM AI_MODEL ORDER BY created_at DESC")
        return [self._row_to_model(row) for row in rows]

    def update_model_metrics(self, model_id: str, accuracy: float, latency: float,
                             error_rate: float, updated_at: datetime) -> int:
        ph = self._get_placeholder()
        query = f"""
        UPDATE AI_MODEL
        SET accuracy = {ph}, latency = {ph}, error_rate = {ph}, updated_at = {ph}
        WHERE id = {ph}
        """
        return self._write(query, (accuracy, latency, error_rate, _to_db_time(updated_at), model_id))

    def update_model_status(self, model_id: str, status: ModelStatus, updated_at: datetime,
                            deployed_at: Optional[datetime] = None) -> int:
        ph = self._get_placeholder()
        query = f"""
        UPDATE AI_MODEL
        SET status = {ph}, updated_at = {ph}, deployed_at = COALESCE({ph}, deployed_at)
        WHERE id = {ph}
        """
        return self._write(query, (ModelStatus(status).value, _to_db_time(updated_at),
                                   _to_db_time(deployed_at), model_id))

    @staticmethod
    def _row_to_model(row: Dict[str, Any]) -> AIModel:
        return AIModel(
            id=row["id"],
            name=row["name"],
            model_type=row["model_type"],
            base_model=row["base_model"],
            version=row["version"],
            status=ModelStatus(row["status"]),
            accuracy=row["accuracy"],
            latency=row["latency"],
            error_rate=row["error_rate"],
            created_at=_from_db_time(row["created_at"]),
            updated_at=_from_db_time(row["updated_at"]),
            deployed_at=_from_db_time(row["deployed_at"]),
        )

    # ========================
    # Training runs
    # ========================

    def create_run(self, run: TrainingRun) -> TrainingRun:
        ph = self._get_placeholder()
        if self.get_model(run.model_id) is None:
            raise QueryError(f"Model with id {run.model_id} does not exist")

        query = f"""
        INSERT INTO TRAINING_RUN (id, model_id, dataset_id, run_type, status, epochs_total,
                                  epochs_completed, accuracy, val_accuracy, loss, val_loss,
                                  learning_rate, batch_size, config, started_by, started_at,
                                  completed_at, created_at)
        VALUES ({", ".join([ph] * 18)})
        """
        self._write(query, (
            run.id, run.model_id, run.dataset_id, RunType(run.run_type).value,
            RunStatus(run.status).value, run.epochs_total, run.epochs_completed,
            run.accuracy, run.val_accuracy, run.loss, run.val_loss,
            run.learning_rate, run.batch_size, json.dumps(run.config or {}), run.started_by,
            _to_db_time(run.started_at), _to_db_time(run.completed_at),
            _to_db_time(run.created_at)))
        return run

    def get_run(self, run_id: str) -> Optional[TrainingRun]:
        ph = self._get_placeholder()
        row = self._fetchone(f"SELECT * FROM TRAINING_RUN WHERE id = {ph}", (run_id,))
        return self._row_to_run(row) if row else None

    def list_runs(self, model_id: Optional[str] = None,
                  status: Optional[RunStatus] = None) -> List[TrainingRun]:
        ph = self._get_placeholder()
        clauses, params = [], []
        if model_id is not None:
            clauses.append(f"model_id = {ph}")
            params.append(model_id)
        if status is not None:
            clauses.append(f"status = {ph}")
            params.append(RunStatus(status).value)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = f"SELECT * FROM TRAINING_RUN {where} ORDER BY created_at DESC"
        return [self._row_to_run(row) for row in self._fetchall(query, tuple(params))]

    def update_run_progress(self, run_id: str, status: RunStatus, epochs_completed: int,
                            accuracy: float, loss: float, val_accuracy: float, val_loss: float,
                            completed_at: Optional[datetime] = None) -> int:
        """Write every progress field of a run in one statement."""
        ph = self._get_placeholder()
        query = f"""
        UPDATE TRAINING_RUN
        SET status = {ph}, epochs_completed = {ph}, accuracy = {ph}, loss = {ph},
            val_accuracy = {ph}, val_loss = {ph}, completed_at = COALESCE({ph}, completed_at)
        WHERE id = {ph}
        """
        return self._write(query, (
            RunStatus(status).value, epochs_completed, accuracy, loss, val_accuracy, val_loss,
            _to_db_time(completed_at), run_id))

    def set_run_status(self, run_id: str, status: RunStatus) -> int:
        ph = self._get_placeholder()
        query = f"UPDATE TRAINING_RUN SET status = {ph} WHERE id = {ph}"
        return self._write(query, (RunStatus(status).value, run_id))

    def mark_run_started(self, run_id: str, started_at: datetime,
                         started_by: Optional[str] = None) -> int:
        ph = self._get_placeholder()
        query = f"""
        UPDATE TRAINING_RUN
        SET status = {ph}, started_at = COALESCE(started_at, {ph}),
            started_by = COALESCE({ph}, started_by)
        WHERE id = {ph}
        """
        return self._write(query, (RunStatus.RUNNING.value, _to_db_time(started_at),
                                   started_by, run_id))

    def delete_run(self, run_id: str) -> int:
        ph = self._get_placeholder()
        with self.transaction():
            self._execute_query(f"DELETE FROM MODEL_METRIC WHERE run_id = {ph}", (run_id,))
            return self._execute_query(f"DELETE FROM TRAINING_RUN WHERE id = {ph}", (run_id,)).rowcount

    @staticmethod
    def _row_to_run(row: Dict[str, Any]) -> TrainingRun:
        return TrainingRun(
            id=row["id"],
            model_id=row["model_id"],
            dataset_id=row["dataset_id"],
            run_type=RunType(row["run_type"]),
            status=RunStatus(row["status"]),
            epochs_total=row["epochs_total"],
            epochs_completed=row["epochs_completed"],
            accuracy=row["accuracy"],
            val_accuracy=row["val_accuracy"],
            loss=row["loss"],
            val_loss=row["val_loss"],
            learning_rate=row["learning_rate"],
            batch_size=row["batch_size"],
            config=json.loads(row["config"]) if row["config"] else {},
            started_by=row["started_by"],
            started_at=_from_db_time(row["started_at"]),
            completed_at=_from_db_time(row["completed_at"]),
            created_at=_from_db_time(row["created_at"]),
        )

    # ========================
    # Epoch metrics
    # ========================

    def insert_metric(self, metric: ModelMetric) -> ModelMetric:
        ph = self._get_placeholder()
        query = f"""
        INSERT INTO MODEL_METRIC (run_id, epoch, accuracy, loss, val_accuracy, val_loss, created_at)
        VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph})
        """
        self._write(query, (metric.run_id, metric.epoch, metric.accuracy, metric.loss,
                            metric.val_accuracy, metric.val_loss, _to_db_time(metric.created_at)))
        return metric

    def delete_metric(self, run_id: str, epoch: int) -> int:
        ph = self._get_placeholder()
        return self._write(f"DELETE FROM MODEL_METRIC WHERE run_id = {ph} AND epoch = {ph}",
                           (run_id, epoch))

    def delete_metrics(self, run_id: str) -> int:
        ph = self._get_placeholder()
        return self._write(f"DELETE FROM MODEL_METRIC WHERE run_id = {ph}", (run_id,))

    def get_metrics(self, run_id: str) -> List[ModelMetric]:
        ph = self._get_placeholder()
        query = f"SELECT * FROM MODEL_METRIC WHERE run_id = {ph} ORDER BY epoch ASC"
        return [
            ModelMetric(
                run_id=row["run_id"],
                epoch=row["epoch"],
                accuracy=row["accuracy"],
                loss=row["loss"],
                val_accuracy=row["val_accuracy"],
                val_loss=row["val_loss"],
                created_at=_from_db_time(row["created_at"]),
            )
            for row in self._fetchall(query, (run_id,))
        ]

    def get_last_epoch(self, run_id: str) -> int:
        ph = self._get_placeholder()
        row = self._fetchone(
            f"SELECT MAX(epoch) AS last_epoch FROM MODEL_METRIC WHERE run_id = {ph}", (run_id,))
        return row["last_epoch"] if row and row["last_epoch"] is not None else 0

    def get_metrics_dataframe(self, run_id: str) -> pd.DataFrame:
        """Return the epoch metrics of a run as a DataFrame indexed by epoch."""
        metrics = self.get_metrics(run_id)
        columns = ["epoch", "accuracy", "loss", "val_accuracy", "val_loss", "created_at"]
        df = pd.DataFrame([{c: getattr(m, c) for c in columns} for m in metrics], columns=columns)
        return df.set_index("epoch")

    def create_indexes(self) -> None:
        """Create the lookup indexes used by list queries."""
        for index_sql in INDEXES:
            if self.use_sqlite:
                index_sql = index_sql.replace("CREATE INDEX", "CREATE INDEX IF NOT EXISTS")
            try:
                self._write(index_sql)
                logger.debug(f"Created index: {index_sql}")
            except QueryError as e:
                # MySQL has no IF NOT EXISTS for indexes
                logger.warning(f"Failed to create index: {index_sql}. Error: {e}")
