"""Run Result and the lock-protected aggregator workers report into."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Literal

from bulkingest.batching import Batch
from bulkingest.errors import ConstraintWriteError, ParseError, TransientWriteError

logger = logging.getLogger(__name__)

RunStatus = Literal["completed", "cancelled", "aborted"]
ErrorKind = Literal["parse", "constraint", "transient", "write", "fatal"]

# Parse errors kept in RunResult.errors; rows_rejected still counts all of them.
MAX_RECORDED_REJECTS = 1000


@dataclass(frozen=True)
class RunError:
    """One recorded failure and the data lines it covers."""

    kind: ErrorKind
    message: str
    worker_index: int | None = None
    first_ordinal: int | None = None
    last_ordinal: int | None = None
    rows: int = 0


@dataclass(frozen=True)
class RunResult:
    """Immutable outcome of one run.

    rows_inserted + rows_rejected + rows_failed == rows_read, where rows_failed
    are rows of batches whose write failed.
    """

    status: RunStatus
    strategy: str
    rows_read: int = 0
    rows_inserted: int = 0
    rows_rejected: int = 0
    rows_failed: int = 0
    batches_executed: int = 0
    batches_failed: int = 0
    errors: tuple[RunError, ...] = ()
    duration_seconds: float = 0.0
    fatal_error: BaseException | None = field(default=None, compare=False, repr=False)

    @property
    def outcome(self) -> str:
        if self.status != "completed":
            return self.status
        if self.batches_failed:
            return "failed-batches"
        if self.rows_rejected:
            return "rejected-rows"
        return "clean"

    def raise_for_status(self) -> None:
        """Re-raise the fatal error of an aborted run; no-op otherwise."""
        if self.fatal_error is not None:
            raise self.fatal_error

    def render_one_line(self) -> str:
        return (
            f"{self.outcome}: read={self.rows_read} inserted={self.rows_inserted} "
            f"rejected={self.rows_rejected} failed={self.rows_failed} "
            f"batches={self.batches_executed} failed_batches={self.batches_failed} "
            f"strategy={self.strategy} in {self.duration_seconds:.2f}s"
        )


def _write_error_kind(exc: Exception) -> ErrorKind:
    if isinstance(exc, ConstraintWriteError):
        return "constraint"
    if isinstance(exc, TransientWriteError):
        return "transient"
    return "write"


class ResultAggregator:
    """The only state shared between workers; every update takes the lock."""

    def __init__(self, strategy: str):
        self._strategy = strategy
        self._lock = threading.Lock()
        self._started = time.monotonic()
        self._rows_read = 0
        self._rows_inserted = 0
        self._rows_rejected = 0
        self._rows_failed = 0
        self._batches_executed = 0
        self._batches_failed = 0
        self._errors: list[RunError] = []
        self._recorded_rejects = 0
        self._fatal_error: BaseException | None = None

    def _add_rejects(self, rejects: list[ParseError], worker_index: int) -> None:
        self._rows_read += len(rejects)
        self._rows_rejected += len(rejects)
        for reject in rejects:
            if self._recorded_rejects >= MAX_RECORDED_REJECTS:
                break
            self._recorded_rejects += 1
            self._errors.append(
                RunError("parse", str(reject), worker_index, reject.ordinal, reject.ordinal, 1)
            )

    def record_batch(self, batch: Batch, inserted: int, rejects: list[ParseError]) -> int:
        """Record a committed batch; returns the running inserted total."""
        with self._lock:
            self._add_rejects(rejects, batch.worker_index)
            self._rows_read += len(batch)
            self._rows_inserted += inserted
            self._batches_executed += 1
            return self._rows_inserted

    def record_failed_batch(self, batch: Batch, exc: Exception, rejects: list[ParseError]) -> None:
        with self._lock:
            self._add_rejects(rejects, batch.worker_index)
            self._rows_read += len(batch)
            self._rows_failed += len(batch)
            self._batches_failed += 1
            self._errors.append(
                RunError(
                    _write_error_kind(exc),
                    str(exc),
                    batch.worker_index,
                    batch.first_ordinal,
                    batch.last_ordinal,
                    len(batch),
                )
            )

    def record_failed_load(self, exc: Exception) -> None:
        with self._lock:
            self._batches_failed += 1
            self._errors.append(RunError(_write_error_kind(exc), str(exc)))

    def record_rejects(self, rejects: list[ParseError], worker_index: int) -> None:
        if not rejects:
            return
        with self._lock:
            self._add_rejects(rejects, worker_index)

    def record_bulk_load(self, loaded: int) -> None:
        with self._lock:
            self._rows_read += loaded
            self._rows_inserted += loaded
            self._batches_executed += 1

    def record_fatal(self, exc: BaseException, worker_index: int | None = None) -> None:
        with self._lock:
            if self._fatal_error is None:
                self._fatal_error = exc
            self._errors.append(RunError("fatal", f"{type(exc).__name__}: {exc}", worker_index))

    def finalize(self, status: RunStatus) -> RunResult:
        with self._lock:
            if self._fatal_error is not None:
                status = "aborted"
            return RunResult(
                status=status,
                strategy=self._strategy,
                rows_read=self._rows_read,
                rows_inserted=self._rows_inserted,
                rows_rejected=self._rows_rejected,
                rows_failed=self._rows_failed,
                batches_executed=self._batches_executed,
                batches_failed=self._batches_failed,
                errors=tuple(self._errors),
                duration_seconds=time.monotonic() - self._started,
                fatal_error=self._fatal_error,
            )
