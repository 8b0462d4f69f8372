"""Database initialization and utilities."""
import logging
import os
import sqlite3
import mysql.connector
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"

# SQL statements for creating tables
MYSQL_TABLES = {
    "AI_MODEL": """
    CREATE TABLE IF NOT EXISTS AI_MODEL (
        id VARCHAR(36) PRIMARY KEY,
        name VARCHAR(255) NOT NULL,
        model_type VARCHAR(50) NOT NULL,
        base_model VARCHAR(255),
        version VARCHAR(20) NOT NULL DEFAULT '1.0.0',
        status VARCHAR(20) NOT NULL DEFAULT 'created',
        accuracy DOUBLE NOT NULL DEFAULT 0,
        latency DOUBLE NOT NULL DEFAULT 0,
        error_rate DOUBLE NOT NULL DEFAULT 0,
        created_at DATETIME NOT NULL,
        updated_at DATETIME NOT NULL,
        deployed_at DATETIME
    )
    """,
    "TRAINING_RUN": """
    CREATE TABLE IF NOT EXISTS TRAINING_RUN (
        id VARCHAR(36) PRIMARY KEY,
        model_id VARCHAR(36) NOT NULL,
        dataset_id VARCHAR(36),
        run_type VARCHAR(20) NOT NULL DEFAULT 'full',
        status VARCHAR(20) NOT NULL DEFAULT 'pending',
        epochs_total INT NOT NULL,
        epochs_completed INT NOT NULL DEFAULT 0,
        accuracy DOUBLE NOT NULL DEFAULT 0,
        val_accuracy DOUBLE NOT NULL DEFAULT 0,
        loss DOUBLE,
        val_loss DOUBLE,
        learning_rate DOUBLE NOT NULL,
        batch_size INT NOT NULL,
        config JSON,
        started_by VARCHAR(255),
        started_at DATETIME,
        completed_at DATETIME,
        created_at DATETIME NOT NULL,
        FOREIGN KEY (model_id) REFERENCES AI_MODEL(id) ON DELETE CASCADE
    )
    """,
    "MODEL_METRIC": """
    CREATE TABLE IF NOT EXISTS MODEL_METRIC (
        run_id VARCHAR(36),
        epoch INT,
        accuracy DOUBLE NOT NULL,
        loss DOUBLE NOT NULL,
        val_accuracy DOUBLE,
        val_loss DOUBLE,
        created_at DATETIME NOT NULL,
        PRIMARY KEY (run_id, epoch),
        FOREIGN KEY (run_id) REFERENCES TRAINING_RUN(id) ON DELETE CASCADE
    )
    """,
}

# SQLite version of the tables (replacing MySQL-specific syntax)
SQLITE_TABLES = {
    name: sql.replace("DATETIME", "TEXT")
             .replace("JSON", "TEXT")
    for name, sql in MYSQL_TABLES.items()
}

INDEXES = [
    "CREATE INDEX idx_training_run_model_id ON TRAINING_RUN(model_id)",
    "CREATE INDEX idx_training_run_status ON TRAINING_RUN(status)",
    "CREATE INDEX idx_ai_model_status ON AI_MODEL(status)",
]


def dict_factory(cursor: sqlite3.Cursor, row: tuple) -> dict:
    """Convert SQLite row to dictionary."""
    d = {}
    for idx, col in enumerate(cursor.description):
        d[col[0]] = row[idx]
    return d


def init_sqlite_db(db_path: Union[str, Path], recreate: bool = False, readonly: bool = False) -> sqlite3.Connection:
    """Initialize SQLite database with all tables.

    The connection is shared between the caller and the per-run scheduler
    threads, so it is opened with ``check_same_thread=False``; callers are
    responsible for serializing access to it.

    Args:
        db_path: Path to SQLite database file, or ``:memory:``
        recreate: If True, delete existing database file
        readonly: If True, open database in readonly mode
    Returns:
        SQLite connection object
    """
    if str(db_path) == MEMORY_DB:
        conn = sqlite3.connect(MEMORY_DB, check_same_thread=False)
    else:
        db_path = Path(db_path)

        if recreate and db_path.exists():
            os.remove(db_path)

        db_path.parent.mkdir(parents=True, exist_ok=True)

        if readonly:
            conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True, check_same_thread=False)
        else:
            conn = sqlite3.connect(str(db_path), check_same_thread=False)

    conn.row_factory = dict_factory
    cursor = conn.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")

    if not readonly:
        # Create tables in order (due to foreign key constraints)
        for table_name, create_sql in SQLITE_TABLES.items():
            try:
                cursor.execute(create_sql)
            except sqlite3.OperationalError as e:
                logger.error(f"Error creating table {table_name}: {e}")
                raise
        conn.commit()
    return conn


def init_mysql_db(host: str, user: str, password: str, database: str,
                  recreate: bool = False) -> mysql.connector.MySQLConnection:
    """Initialize MySQL database with all tables.

    Args:
        host: Database host
        user: Database user
        password: Database password
        database: Database name
        recreate: If True, drop and recreate database

    Returns:
        MySQL connection object
    """
    conn = mysql.connector.connect(
        host=host,
        user=user,
        password=password
    )
    cursor = conn.cursor(dictionary=True)

    if recreate:
        cursor.execute(f"DROP DATABASE IF EXISTS {database}")

    cursor.execute(f"CREATE DATABASE IF NOT EXISTS {database}")
    cursor.execute(f"USE {database}")

    for table_name, create_sql in MYSQL_TABLES.items():
        try:
            cursor.execute(create_sql)
        except mysql.connector.Error as e:
            logger.error(f"Error creating table {table_name}: {e}")
            raise

    conn.commit()
    return conn
