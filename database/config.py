"""
SQLite configuration for the workflow engine stores.

All stores share one database file. Reads use a short-lived connection;
writes run inside ``BEGIN IMMEDIATE`` so concurrent writers to the same file
are serialized and every read-modify-write sees the latest committed row.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)

# Seconds a writer waits for the database lock before failing
BUSY_TIMEOUT = 30.0

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS workflows (
        workflow_id TEXT PRIMARY KEY,
        name TEXT,
        graph TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS runs (
        run_id TEXT PRIMARY KEY,
        workflow_id TEXT NOT NULL,
        entity_id TEXT,
        trigger TEXT NOT NULL,
        node_states TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (workflow_id) REFERENCES workflows (workflow_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS webhook_configs (
        config_id TEXT PRIMARY KEY,
        canvas_id TEXT NOT NULL,
        name TEXT,
        source TEXT NOT NULL,
        endpoint_slug TEXT NOT NULL UNIQUE,
        secret TEXT,
        require_signature INTEGER DEFAULT 0,
        is_active INTEGER DEFAULT 1,
        workflow_id TEXT NOT NULL,
        entry_edge_id TEXT NOT NULL,
        entity_mapping TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS webhook_events (
        event_id TEXT PRIMARY KEY,
        config_id TEXT NOT NULL,
        payload TEXT,
        status TEXT NOT NULL,
        error TEXT,
        error_type TEXT,
        event_type TEXT,
        external_event_id TEXT,
        entity_id TEXT,
        run_id TEXT,
        duplicate_of TEXT,
        received_at TEXT NOT NULL,
        processed_at TEXT,
        FOREIGN KEY (config_id) REFERENCES webhook_configs (config_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entities (
        entity_id TEXT PRIMARY KEY,
        canvas_id TEXT NOT NULL,
        name TEXT NOT NULL,
        email TEXT,
        entity_type TEXT NOT NULL,
        metadata TEXT NOT NULL,
        source TEXT,
        current_node_id TEXT,
        current_edge_id TEXT,
        journey TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_runs_workflow_id ON runs(workflow_id)",
    "CREATE INDEX IF NOT EXISTS idx_webhook_configs_canvas_id ON webhook_configs(canvas_id)",
    "CREATE INDEX IF NOT EXISTS idx_webhook_events_config_id ON webhook_events(config_id)",
    "CREATE INDEX IF NOT EXISTS idx_webhook_events_external_id ON webhook_events(config_id, external_event_id)",
    # Identity dedup key; email-less entities are never deduplicated
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_entities_canvas_email
    ON entities(canvas_id, email) WHERE email IS NOT NULL
    """,
]


def connect(db_path: str) -> sqlite3.Connection:
    """Open a connection in autocommit mode; transactions are explicit."""
    conn = sqlite3.connect(db_path, timeout=BUSY_TIMEOUT, isolation_level=None)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def connection(db_path: str) -> Iterator[sqlite3.Connection]:
    """Read-only connection scoped to one operation."""
    conn = connect(db_path)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(db_path: str) -> Iterator[sqlite3.Connection]:
    """
    Write transaction holding the database write lock from the first statement.

    Commits on normal exit and rolls back on any exception, which is re-raised.
    """
    conn = connect(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except Exception:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()


_initialized = set()


def init_schema(db_path: str):
    """Create tables and indexes if they don't exist."""
    if db_path in _initialized:
        return
    try:
        with transaction(db_path) as conn:
            for statement in SCHEMA:
                conn.execute(statement)
        _initialized.add(db_path)
        logger.info(f"Database initialized successfully at {db_path}")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def datetime_to_str(dt: Optional[datetime]) -> Optional[str]:
    """Convert datetime to ISO string for storage."""
    if dt is None:
        return None
    return dt.isoformat()


def str_to_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Convert ISO string to datetime."""
    if dt_str is None:
        return None
    try:
        return datetime.fromisoformat(dt_str)
    except ValueError:
        return None


def to_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str)


def from_json(text: Optional[str], default: Any = None) -> Any:
    if text is None:
        return default
    return json.loads(text)
