"""Run configuration."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from bulkingest.batching import DEFAULT_BATCH_SIZE
from bulkingest.errors import ConfigurationError
from bulkingest.mapping import ColumnMapping, check_table_name
from bulkingest.native import ComputedDefaultsPolicy

DB_URL_ENV = "BULKINGEST_DB_URL"


class Strategy(str, Enum):
    BATCHED_INSERT = "batched-insert"
    NATIVE_BULK_LOAD = "native-bulk-load"


@dataclass(frozen=True)
class PipelineConfig:
    """Everything one run needs besides the destination service.

    Validated on construction; a bad value raises ConfigurationError before
    the source is opened.
    """

    source_path: Path
    table: str
    column_mapping: ColumnMapping
    max_batch_size: int = DEFAULT_BATCH_SIZE
    worker_count: int = 1
    strategy: Strategy = Strategy.BATCHED_INSERT
    max_retries: int = 3
    retry_backoff: float = 0.5
    delimiter: str = ","
    quotechar: str = '"'
    native_computed_defaults: ComputedDefaultsPolicy = "reject"

    def __post_init__(self):
        # Frozen dataclass: normalize through object.__setattr__.
        object.__setattr__(self, "source_path", Path(self.source_path))
        try:
            object.__setattr__(self, "strategy", Strategy(self.strategy))
        except ValueError:
            valid = ", ".join(s.value for s in Strategy)
            raise ConfigurationError(
                f"Unknown strategy {self.strategy!r}; expected one of {valid}"
            ) from None
        check_table_name(self.table)
        if not isinstance(self.column_mapping, ColumnMapping):
            raise ConfigurationError("column_mapping must be a ColumnMapping")
        if self.max_batch_size < 1:
            raise ConfigurationError(f"max_batch_size must be >= 1, got {self.max_batch_size}")
        if self.worker_count < 1:
            raise ConfigurationError(f"worker_count must be >= 1, got {self.worker_count}")
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.retry_backoff < 0:
            raise ConfigurationError(f"retry_backoff must be >= 0, got {self.retry_backoff}")
        if len(self.delimiter) != 1 or len(self.quotechar) != 1:
            raise ConfigurationError("delimiter and quotechar must be single characters")
        if self.native_computed_defaults not in ("reject", "evaluate-once"):
            raise ConfigurationError(
                f"native_computed_defaults must be 'reject' or 'evaluate-once', "
                f"got {self.native_computed_defaults!r}"
            )
