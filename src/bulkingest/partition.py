"""Deterministic assignment of data lines to workers.

Every worker reads the whole file through its own handle and keeps only the
lines it owns, so no cursor is ever shared between workers.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator

from bulkingest.errors import ConfigurationError


def assign_worker(ordinal: int, worker_count: int) -> int:
    """Worker index that owns the data line at `ordinal`."""
    if worker_count < 1:
        raise ConfigurationError(f"worker_count must be >= 1, got {worker_count}")
    return ordinal % worker_count


@dataclass(frozen=True)
class Partition:
    worker_index: int
    worker_count: int

    def __post_init__(self):
        if self.worker_count < 1:
            raise ConfigurationError(f"worker_count must be >= 1, got {self.worker_count}")
        if not 0 <= self.worker_index < self.worker_count:
            raise ConfigurationError(
                f"worker_index {self.worker_index} outside [0, {self.worker_count})"
            )

    def owns(self, ordinal: int) -> bool:
        return assign_worker(ordinal, self.worker_count) == self.worker_index

    def filter(self, lines: Iterable[tuple[int, str]]) -> Iterator[tuple[int, str]]:
        for ordinal, line in lines:
            if self.owns(ordinal):
                yield ordinal, line


def partitions(worker_count: int) -> list[Partition]:
    return [Partition(i, worker_count) for i in range(worker_count)]
