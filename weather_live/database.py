"""
Database module for Weather Live Poller.

Handles SQLite persistence of weather observations:
- Append-only observations table (rows are never updated or deleted)
- Latest / recent / by-id queries for the API and the WebSocket channel
"""

import json
import sqlite3
import threading
import logging
from typing import List, Dict, Any, Optional

from .config import DEFAULT_DB_PATH
from .fetcher import Observation

logger = logging.getLogger(__name__)


class Database:
    """
    SQLite database wrapper with thread-safe operations.

    The poller thread writes and the API event loop reads, so every
    statement runs under one lock. UPDATE and DELETE on observations are
    rejected by triggers.
    """

    def __init__(self, db_path: str = None) -> None:
        self._db_path = db_path or str(DEFAULT_DB_PATH)
        self._lock = threading.Lock()
        self._conn = None
        self._connect()
        self._init_schema()
        logger.info(f"Database initialized at {self._db_path}")

    def _connect(self) -> None:
        """Establish database connection with WAL mode."""
        self._conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
            isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._lock:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS observations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    temperature REAL,
                    windspeed REAL,
                    winddirection REAL,
                    weathercode INTEGER,
                    raw TEXT NOT NULL
                )
            """)

            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_observation_timestamp
                ON observations(timestamp)
            """)

            # Observations are immutable once stored
            self._conn.execute("""
                CREATE TRIGGER IF NOT EXISTS observations_no_update
                BEFORE UPDATE ON observations
                BEGIN
                    SELECT RAISE(ABORT, 'observations are immutable');
                END
            """)
            self._conn.execute("""
                CREATE TRIGGER IF NOT EXISTS observations_no_delete
                BEFORE DELETE ON observations
                BEGIN
                    SELECT RAISE(ABORT, 'observations are immutable');
                END
            """)

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
        record = dict(row)
        record["raw"] = json.loads(record["raw"])
        return record

    def insert_observation(self, observation: Observation) -> Dict[str, Any]:
        """
        Append an observation.

        Returns:
            The stored record, including its assigned id.
        """
        raw = json.dumps(observation.raw, ensure_ascii=False)
        with self._lock:
            cursor = self._conn.execute("""
                INSERT INTO observations
                (timestamp, temperature, windspeed, winddirection, weathercode, raw)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (observation.timestamp, observation.temperature,
                  observation.windspeed, observation.winddirection,
                  observation.weathercode, raw))
            row = self._conn.execute(
                "SELECT * FROM observations WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
        return self._row_to_dict(row)

    def get_latest(self) -> Optional[Dict[str, Any]]:
        """Get the most recently stored observation."""
        with self._lock:
            row = self._conn.execute("""
                SELECT * FROM observations
                ORDER BY id DESC
                LIMIT 1
            """).fetchone()
        return self._row_to_dict(row) if row else None

    def get_recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Get recent observations, newest first."""
        with self._lock:
            cursor = self._conn.execute("""
                SELECT * FROM observations
                ORDER BY id DESC
                LIMIT ?
            """, (limit,))
            rows = cursor.fetchall()
        return [self._row_to_dict(row) for row in rows]

    def get_observation(self, observation_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM observations WHERE id = ?", (observation_id,)
            ).fetchone()
        return self._row_to_dict(row) if row else None

    def count(self) -> int:
        """Get total stored observation count."""
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM observations").fetchone()[0]

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
                logger.info("Database connection closed")
