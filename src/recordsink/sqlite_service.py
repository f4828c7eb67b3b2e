"""SQLite implementation of DatabaseService."""

import sqlite3
from typing import Any

from recordsink.errors import (
    ConstraintWriteError,
    DestinationUnavailableError,
    TransientWriteError,
    WriteError,
)
from recordsink.service import DatabaseService
from recordsink.types import Params

# SQLITE_MAX_VARIABLE_NUMBER default since SQLite 3.32.
SQLITE_MAX_PARAMETERS = 32766


class SQLiteDatabaseService(DatabaseService):
    """SQLite backend using stdlib sqlite3.

    Connections are opened with check_same_thread=False so the pool can hand
    them to worker threads; WAL mode lets readers run alongside the writer.
    """

    max_parameters = SQLITE_MAX_PARAMETERS
    placeholder = "?"

    def __init__(self, db_path: str, pool_size: int = 4, acquire_timeout: float = 30.0):
        super().__init__(pool_size, acquire_timeout)
        self._db_path = db_path

    def _open_connection(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
        except sqlite3.Error as e:
            raise DestinationUnavailableError(f"Cannot open {self._db_path}: {e}") from e
        return conn

    def _translate_error(self, exc: Exception) -> WriteError | None:
        if isinstance(exc, sqlite3.OperationalError):
            message = str(exc).lower()
            if "locked" in message or "busy" in message:
                return TransientWriteError(str(exc))
            return WriteError(str(exc))
        if isinstance(exc, (sqlite3.IntegrityError, sqlite3.DataError, sqlite3.InterfaceError)):
            return ConstraintWriteError(str(exc))
        if isinstance(exc, sqlite3.Error):
            return WriteError(str(exc))
        return None

    def execute(self, sql: str, params: Params | None = None) -> list[dict[str, Any]]:
        conn = self._get_conn()
        cursor = conn.execute(sql, params or ())
        if cursor.description is None:
            return []
        columns = [desc[0] for desc in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def execute_write(self, sql: str, params: Params) -> int:
        conn = self._get_conn()
        return conn.execute(sql, params).rowcount

    def execute_ddl(self, sql: str) -> None:
        conn = self._acquire()
        try:
            conn.executescript(sql)
            conn.commit()
        finally:
            self._release(conn)
