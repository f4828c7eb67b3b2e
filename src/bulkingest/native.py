"""Whole-file load through the destination engine's own bulk loader.

Rows never pass through the process, so there is no batching, partitioning
or per-row rejection. Constant columns get one value for every row; computed
defaults (e.g. an individually hashed placeholder) cannot be honoured per row
and must be refused or evaluated once, as chosen by the caller.
"""

import logging
from pathlib import Path
from typing import Literal

from bulkingest.errors import ConfigurationError
from bulkingest.mapping import ColumnMapping
from recordsink.service import DatabaseService

logger = logging.getLogger(__name__)

ComputedDefaultsPolicy = Literal["reject", "evaluate-once"]


def normalize_path(path: str | Path) -> str:
    """Absolute path with forward slashes, as file loaders expect."""
    return str(Path(path).resolve()).replace("\\", "/")


class NativeBulkLoader:
    def __init__(
        self,
        service: DatabaseService,
        table: str,
        mapping: ColumnMapping,
        field_count: int,
        computed_defaults: ComputedDefaultsPolicy = "reject",
        *,
        delimiter: str = ",",
        quotechar: str = '"',
    ):
        if not service.supports_bulk_load:
            raise ConfigurationError(
                f"{type(service).__name__} is not configured for native bulk load"
            )
        if mapping.has_computed_defaults and computed_defaults != "evaluate-once":
            raise ConfigurationError(
                "Mapping has computed defaults; native bulk load can only apply them "
                "by setting native_computed_defaults='evaluate-once'"
            )
        mapping.validate_header(["_"] * field_count)
        self._service = service
        self._table = table
        self._mapping = mapping
        self._field_count = field_count
        self._computed_defaults = computed_defaults
        self._delimiter = delimiter
        self._quotechar = quotechar

    def execute_whole_file(self, path: str | Path) -> int:
        """Load every data line of `path` in one transaction; returns rows loaded."""
        if self._mapping.has_computed_defaults:
            logger.warning(
                "Evaluating computed defaults once; every row gets the same value for %s",
                [c for c, v in self._mapping.constants if callable(v)],
            )
        constants = self._mapping.resolve_constants(
            evaluate_computed=self._computed_defaults == "evaluate-once"
        )
        file_path = normalize_path(path)
        with self._service.transaction():
            loaded = self._service.bulk_load_file(
                file_path,
                self._table,
                self._mapping.file_columns(self._field_count),
                constants,
                delimiter=self._delimiter,
                quotechar=self._quotechar,
            )
        logger.info("Native bulk load of %s into %s: %d rows", file_path, self._table, loaded)
        return loaded
