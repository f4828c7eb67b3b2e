"""Bounded batch assembly."""

from dataclasses import dataclass, field

from bulkingest.errors import ConfigurationError

DEFAULT_BATCH_SIZE = 1000


@dataclass
class Batch:
    """Rows bound for one write call, already in destination column order."""

    rows: list[tuple] = field(default_factory=list)
    first_ordinal: int = -1
    last_ordinal: int = -1
    worker_index: int = 0

    def __len__(self) -> int:
        return len(self.rows)


class BatchAssembler:
    """Accumulates projected rows and hands back a Batch once max_batch_size is reached.

    flush() must be called at end of stream; otherwise the trailing partial
    batch is lost. Neither push() nor flush() ever returns an empty batch.
    """

    def __init__(self, max_batch_size: int = DEFAULT_BATCH_SIZE, worker_index: int = 0):
        if max_batch_size < 1:
            raise ConfigurationError(f"max_batch_size must be >= 1, got {max_batch_size}")
        self._max_batch_size = max_batch_size
        self._worker_index = worker_index
        self._current = Batch(worker_index=worker_index)

    @property
    def pending(self) -> int:
        return len(self._current)

    def push(self, ordinal: int, values: tuple) -> Batch | None:
        if not self._current.rows:
            self._current.first_ordinal = ordinal
        self._current.rows.append(values)
        self._current.last_ordinal = ordinal
        if len(self._current) >= self._max_batch_size:
            return self._take()
        return None

    def flush(self) -> Batch | None:
        if not self._current.rows:
            return None
        return self._take()

    def _take(self) -> Batch:
        batch = self._current
        self._current = Batch(worker_index=self._worker_index)
        return batch
