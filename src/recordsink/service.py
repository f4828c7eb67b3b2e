"""Abstract DatabaseService interface and the shared connection pool."""

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from queue import Empty, Queue
from typing import Any, Iterator, Mapping, Sequence

from recordsink.errors import (
    BulkLoadUnavailableError,
    DestinationUnavailableError,
    WriteError,
)
from recordsink.types import Params, ValuesRow


class DatabaseService(ABC):
    """Database-agnostic interface for all sink operations.

    Design principles:
    - Pooled: connect() opens pool_size connections up front
    - Thread-confined: a connection is used by one thread at a time, either for
      one transaction() or for the whole lifetime of a pinned() block
    - DB-agnostic: callers program against this ABC, never a concrete backend
    - Driver exceptions leave the service as recordsink.errors types
    """

    #: Bind-parameter ceiling for a single statement.
    max_parameters: int = 999
    #: DB-API paramstyle marker used when generating multi-row inserts.
    placeholder: str = "?"

    def __init__(self, pool_size: int = 4, acquire_timeout: float = 30.0):
        self._pool_size = pool_size
        self._acquire_timeout = acquire_timeout
        self._pool: Queue = Queue(maxsize=pool_size)
        self._local = threading.local()

    @abstractmethod
    def _open_connection(self) -> Any:
        """Open one driver connection, raising DestinationUnavailableError on failure."""

    @abstractmethod
    def _translate_error(self, exc: Exception) -> WriteError | None:
        """Map a driver exception onto recordsink.errors, or None if it is not one."""

    def _recover(self, conn: Any) -> Any:
        """Roll back after a failed transaction and return a usable connection."""
        conn.rollback()
        return conn

    @property
    def pool_size(self) -> int:
        """Connections the pool holds; also the most workers that can pin one at once."""
        return self._pool_size

    @property
    def supports_bulk_load(self) -> bool:
        """Whether bulk_load_file() may be used with this service."""
        return False

    def connect(self) -> None:
        """Initialize the connection pool."""
        for _ in range(self._pool_size):
            self._pool.put(self._open_connection())

    def close(self) -> None:
        """Close all pooled connections and release resources."""
        while not self._pool.empty():
            try:
                conn = self._pool.get_nowait()
                conn.close()
            except Empty:
                break

    def _acquire(self) -> Any:
        try:
            return self._pool.get(timeout=self._acquire_timeout)
        except Empty:
            raise DestinationUnavailableError(
                f"No pooled connection became available within {self._acquire_timeout:.1f}s"
            ) from None

    def _release(self, conn: Any) -> None:
        self._pool.put(conn)

    def _get_conn(self) -> Any:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            return conn
        raise RuntimeError(
            "No active transaction. Wrap calls in a `with service.transaction():` block."
        )

    @contextmanager
    def pinned(self) -> Iterator[None]:
        """Hold one pooled connection for the calling thread until the block exits.

        transaction() blocks opened inside reuse it instead of going back to the pool.
        """
        self._local.pinned = self._acquire()
        try:
            yield
        finally:
            conn = self._local.pinned
            self._local.pinned = None
            self._release(conn)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Context manager: commits on success, rolls back on error."""
        pinned = getattr(self._local, "pinned", None)
        conn = pinned if pinned is not None else self._acquire()
        self._local.conn = conn
        try:
            yield
            conn.commit()
        except Exception as e:
            conn = self._recover(conn)
            if pinned is not None:
                self._local.pinned = conn
            translated = self._translate_error(e)
            if translated is not None:
                raise translated from e
            raise
        finally:
            self._local.conn = None
            if pinned is None:
                self._release(conn)

    @abstractmethod
    def execute(self, sql: str, params: Params | None = None) -> list[dict[str, Any]]:
        """Execute a single SQL statement and return rows as dicts."""

    @abstractmethod
    def execute_write(self, sql: str, params: Params) -> int:
        """Execute one data-modifying statement and return the affected row count."""

    @abstractmethod
    def execute_ddl(self, sql: str) -> None:
        """Execute DDL statements (CREATE TABLE, CREATE INDEX, etc.)."""

    def insert_rows(self, table: str, columns: Sequence[str], rows: Sequence[ValuesRow]) -> int:
        """Insert rows with a single multi-row INSERT statement.

        Returns the number of rows the destination reports as affected.
        """
        if not rows:
            return 0
        cols = ", ".join(columns)
        row_placeholders = "(" + ", ".join(self.placeholder for _ in columns) + ")"
        values = ", ".join(row_placeholders for _ in rows)
        sql = f"INSERT INTO {table} ({cols}) VALUES {values}"
        params = [value for row in rows for value in row]
        affected = self.execute_write(sql, params)
        return affected if affected >= 0 else len(rows)

    def bulk_load_file(
        self,
        path: str | Path,
        table: str,
        file_columns: Sequence[str | None],
        constants: Mapping[str, Any],
        *,
        delimiter: str = ",",
        quotechar: str = '"',
    ) -> int:
        """Hand a whole delimited file to the engine's native loader.

        `file_columns` names the destination column for each field position of the
        file (None for fields that are not loaded); `constants` are applied to every
        row. The header line is skipped. Returns the number of rows loaded.
        """
        raise BulkLoadUnavailableError(f"{type(self).__name__} has no native bulk load")
