"""Bulk ingestion of large delimited files into a relational table."""

from bulkingest.batching import Batch, BatchAssembler
from bulkingest.config import PipelineConfig, Strategy
from bulkingest.errors import (
    ConfigurationError,
    ConstraintWriteError,
    DestinationUnavailableError,
    ParseError,
    TransientWriteError,
    WriteError,
)
from bulkingest.executor import BatchInsertExecutor
from bulkingest.mapping import ColumnMapping
from bulkingest.native import NativeBulkLoader
from bulkingest.partition import Partition, assign_worker, partitions
from bulkingest.pipeline import Pipeline, PipelineState
from bulkingest.result import RunError, RunResult
from bulkingest.source import ParsedRow, RowSource

__all__ = [
    "Batch",
    "BatchAssembler",
    "BatchInsertExecutor",
    "ColumnMapping",
    "ConfigurationError",
    "ConstraintWriteError",
    "DestinationUnavailableError",
    "NativeBulkLoader",
    "ParseError",
    "ParsedRow",
    "Partition",
    "Pipeline",
    "PipelineConfig",
    "PipelineState",
    "RowSource",
    "RunError",
    "RunResult",
    "Strategy",
    "TransientWriteError",
    "WriteError",
    "assign_worker",
    "partitions",
]
