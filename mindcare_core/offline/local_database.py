# =============================================================================
# mindcare_core/offline/local_database.py
# Local SQLite Mirror for Offline Operations
# =============================================================================
"""
LocalDatabase - SQLite-backed durable fallback for the remote documents.

Features:
- One row per document (patients, appointments, settings), stored as JSON
- App settings key/value table (credential artifacts, migration flags)
- Synchronous; every call completes before returning
"""

from __future__ import annotations
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union
import logging

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class LocalDatabase:
    """
    Local SQLite store mirroring the remote documents under fixed keys.

    Never authoritative: it is read only when the remote store cannot be
    reached, and written on every successful write or remote load.
    """

    # Default database location
    DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "local_data" / "mindcare.db"

    SCHEMA = {
        "documents": """
            CREATE TABLE IF NOT EXISTS documents (
                key TEXT PRIMARY KEY,
                data_json TEXT NOT NULL,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
        "app_settings": """
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
    }

    def __init__(self, db_path: Optional[Union[Path, str]] = None):
        """
        Initialize local database.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        if db_path is None:
            self.db_path: Union[Path, str] = self.DEFAULT_DB_PATH
        elif str(db_path) == MEMORY_PATH:
            self.db_path = MEMORY_PATH
        else:
            self.db_path = Path(db_path)
        self._ensure_directory()
        self._connection: Optional[sqlite3.Connection] = None
        self._initialized = False

    def _ensure_directory(self) -> None:
        """Ensure database directory exists."""
        if self.db_path != MEMORY_PATH:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = sqlite3.connect(str(self.db_path))
            self._connection.row_factory = sqlite3.Row
        return self._connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> None:
        """Initialize database schema."""
        if self._initialized:
            return

        with self.transaction() as conn:
            for table_name, schema in self.SCHEMA.items():
                conn.execute(schema)
                logger.debug(f"Created/verified table: {table_name}")

        self._initialized = True
        logger.info(f"Local database initialized at: {self.db_path}")

    # =========================================================================
    # DOCUMENTS
    # =========================================================================

    def read(self, key: str) -> Optional[Any]:
        """
        Read a mirrored document.

        Args:
            key: Local document key (e.g. "mindcare_patients")

        Returns:
            Decoded JSON data, or None if absent or unreadable
        """
        self.initialize()
        row = self._get_connection().execute(
            "SELECT data_json FROM documents WHERE key = ?",
            [key]
        ).fetchone()
        if row is None:
            return None

        try:
            return json.loads(row["data_json"])
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding unreadable local document '{key}': {e}")
            return None

    def write(self, key: str, data: Any) -> None:
        """Replace a mirrored document with a full snapshot."""
        self.initialize()
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO documents (key, data_json, updated_at)
                VALUES (?, ?, ?)
                """,
                [key, json.dumps(data, ensure_ascii=False), datetime.now().isoformat()]
            )

    def remove(self, key: str) -> None:
        """Drop a mirrored document."""
        self.initialize()
        with self.transaction() as conn:
            conn.execute("DELETE FROM documents WHERE key = ?", [key])

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get an app setting."""
        self.initialize()
        row = self._get_connection().execute(
            "SELECT value FROM app_settings WHERE key = ?",
            [key]
        ).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            return row["value"]

    def set_setting(self, key: str, value: Any) -> None:
        """Set an app setting."""
        self.initialize()
        value_str = json.dumps(value)
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO app_settings (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                [key, value_str, datetime.now().isoformat()]
            )

    def delete_setting(self, key: str) -> None:
        """Remove an app setting."""
        self.initialize()
        with self.transaction() as conn:
            conn.execute("DELETE FROM app_settings WHERE key = ?", [key])

    def close(self) -> None:
        """Close database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            self._initialized = False
