"""Multi-row insert executor with retry on transient failures."""

import logging
import time
from typing import Sequence

from bulkingest.batching import Batch
from bulkingest.errors import ConfigurationError, TransientWriteError
from recordsink.service import DatabaseService

logger = logging.getLogger(__name__)


class BatchInsertExecutor:
    """Writes each Batch as one INSERT statement inside its own transaction.

    A committed batch stays committed if a later one fails or the process dies;
    the batch being written rolls back as a whole.
    """

    def __init__(
        self,
        service: DatabaseService,
        table: str,
        columns: Sequence[str],
        max_batch_size: int,
        max_retries: int = 3,
        retry_backoff: float = 0.5,
    ):
        self._service = service
        self._table = table
        self._columns = list(columns)
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff
        self._check_parameters(max_batch_size)

    def _check_parameters(self, rows: int) -> None:
        needed = rows * len(self._columns)
        if needed > self._service.max_parameters:
            raise ConfigurationError(
                f"{rows} rows x {len(self._columns)} columns needs {needed} placeholders; "
                f"the destination allows {self._service.max_parameters} per statement"
            )

    def execute(self, batch: Batch) -> int:
        """Insert the batch and return the rows affected.

        TransientWriteError is retried up to max_retries times with exponential
        backoff, then re-raised. Any other WriteError is raised immediately.
        """
        self._check_parameters(len(batch))
        for attempt in range(self._max_retries + 1):
            try:
                with self._service.transaction():
                    return self._service.insert_rows(self._table, self._columns, batch.rows)
            except TransientWriteError as e:
                if attempt < self._max_retries:
                    delay = self._retry_backoff * (2**attempt)
                    logger.warning(
                        "Batch %d-%d attempt %d failed: %s. Retrying in %.1fs...",
                        batch.first_ordinal,
                        batch.last_ordinal,
                        attempt + 1,
                        e,
                        delay,
                    )
                    time.sleep(delay)
                else:
                    raise
