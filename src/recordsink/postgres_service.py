"""PostgreSQL implementation of DatabaseService."""

import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

import psycopg2
import psycopg2.extras
from psycopg2.sql import SQL, Identifier, Literal

from recordsink.errors import (
    BulkLoadUnavailableError,
    ConstraintWriteError,
    DestinationUnavailableError,
    TransientWriteError,
    WriteError,
)
from recordsink.service import DatabaseService
from recordsink.types import Params

logger = logging.getLogger(__name__)

# Wire protocol limit on bind parameters per statement.
POSTGRES_MAX_PARAMETERS = 65535
BULK_STAGE_TABLE = "_bulkingest_stage"


class PostgresDatabaseService(DatabaseService):
    """PostgreSQL backend using psycopg2.

    Native bulk load streams the file through COPY ... FROM STDIN into a
    temporary staging table and moves it into the target with one
    INSERT ... SELECT. It is refused unless allow_file_load=True.
    """

    max_parameters = POSTGRES_MAX_PARAMETERS
    placeholder = "%s"

    def __init__(
        self,
        dsn: str,
        pool_size: int = 4,
        acquire_timeout: float = 30.0,
        allow_file_load: bool = False,
    ):
        super().__init__(pool_size, acquire_timeout)
        self._dsn = dsn
        self._allow_file_load = allow_file_load

    @property
    def supports_bulk_load(self) -> bool:
        return self._allow_file_load

    def _open_connection(self):
        try:
            conn = psycopg2.connect(self._dsn)
        except psycopg2.OperationalError as e:
            raise DestinationUnavailableError(str(e).strip()) from e
        conn.autocommit = False
        return conn

    def _recover(self, conn):
        if not conn.closed:
            try:
                conn.rollback()
                return conn
            except psycopg2.Error as e:
                logger.warning("Rollback failed (%s); replacing connection", e)
        try:
            conn.close()
        except psycopg2.Error:
            logger.debug("Closing broken connection failed", exc_info=True)
        return self._open_connection()

    def _translate_error(self, exc: Exception) -> WriteError | None:
        if isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError)):
            return TransientWriteError(str(exc).strip())
        if isinstance(exc, (psycopg2.IntegrityError, psycopg2.DataError)):
            return ConstraintWriteError(str(exc).strip())
        if isinstance(exc, psycopg2.Error):
            return WriteError(str(exc).strip())
        return None

    def execute(self, sql: str, params: Params | None = None) -> list[dict[str, Any]]:
        conn = self._get_conn()
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(sql, params or ())
            if cur.description is None:
                return []
            return [dict(row) for row in cur.fetchall()]

    def execute_write(self, sql: str, params: Params) -> int:
        conn = self._get_conn()
        with conn.cursor() as cur:
            cur.execute(sql, params)
            return cur.rowcount

    def execute_ddl(self, sql: str) -> None:
        conn = self._acquire()
        try:
            with conn.cursor() as cur:
                for statement in sql.split(";"):
                    statement = statement.strip()
                    if statement:
                        cur.execute(statement)
            conn.commit()
        finally:
            self._release(conn)

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
        if not self._allow_file_load:
            raise BulkLoadUnavailableError(
                "Native bulk load is disabled; create the service with allow_file_load=True"
            )
        conn = self._get_conn()
        loaded = [c for c in file_columns if c is not None]
        target_columns = loaded + list(constants)
        stage = Identifier(BULK_STAGE_TABLE)

        with conn.cursor() as cur:
            # Typed copy of the target columns, without the target's constraints.
            cur.execute(
                SQL(
                    "CREATE TEMP TABLE {stage} ON COMMIT DROP AS "
                    "SELECT {cols} FROM {table} WITH NO DATA"
                ).format(
                    stage=stage,
                    cols=SQL(", ").join(SQL(c) for c in target_columns),
                    table=SQL(table),
                )
            )
            # COPY fills unlisted columns from their defaults, like LOAD DATA ... SET.
            for column, value in constants.items():
                cur.execute(
                    SQL("ALTER TABLE {stage} ALTER COLUMN {col} SET DEFAULT {value}").format(
                        stage=stage, col=SQL(column), value=Literal(value)
                    )
                )
            copy_columns = []
            for position, column in enumerate(file_columns):
                if column is None:
                    column = f"_unused_{position}"
                    cur.execute(
                        SQL("ALTER TABLE {stage} ADD COLUMN {col} text").format(
                            stage=stage, col=SQL(column)
                        )
                    )
                copy_columns.append(column)

            copy = SQL(
                "COPY {stage} ({cols}) FROM STDIN "
                "WITH (FORMAT csv, HEADER true, DELIMITER {delim}, QUOTE {quote})"
            ).format(
                stage=stage,
                cols=SQL(", ").join(SQL(c) for c in copy_columns),
                delim=Literal(delimiter),
                quote=Literal(quotechar),
            )
            with open(path, encoding="utf-8", newline="") as f:
                cur.copy_expert(copy.as_string(conn), f)

            cols = SQL(", ").join(SQL(c) for c in target_columns)
            cur.execute(
                SQL("INSERT INTO {table} ({cols}) SELECT {cols} FROM {stage}").format(
                    table=SQL(table), cols=cols, stage=stage
                )
            )
            return cur.rowcount
