"""Pipeline coordinator.

Idle -> Validating -> Running -> Draining -> Completed | Aborted.

The strategy chosen in PipelineConfig turns the run into units of work;
the coordinator runs them on a thread pool, waits for all of them and
finalizes the Run Result. Each unit owns its own file handle and its own
destination connection; the ResultAggregator is the only shared state.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable

from bulkingest.batching import Batch, BatchAssembler
from bulkingest.config import PipelineConfig, Strategy
from bulkingest.errors import (
    ConfigurationError,
    DestinationUnavailableError,
    ParseError,
    WriteError,
)
from bulkingest.executor import BatchInsertExecutor
from bulkingest.native import NativeBulkLoader
from bulkingest.partition import Partition, partitions
from bulkingest.result import ResultAggregator, RunResult
from bulkingest.source import RowSource
from recordsink.service import DatabaseService

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    RUNNING = "running"
    DRAINING = "draining"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class WorkUnit:
    """One independent read -> filter -> batch -> write chain, run on its own thread."""

    worker_index: int
    run: Callable[[], None]


class LoadStrategy(ABC):
    """How rows get from the source file into the destination."""

    def __init__(self, service: DatabaseService, config: PipelineConfig):
        self._service = service
        self._config = config

    @abstractmethod
    def validate(self, header: tuple[str, ...]) -> None:
        """Raise ConfigurationError if the run cannot proceed. Nothing is written."""

    @abstractmethod
    def units_of_work(
        self, aggregator: ResultAggregator, cancelled: threading.Event
    ) -> list[WorkUnit]:
        """Units to run concurrently; each reports into `aggregator`."""


class BatchedInsertStrategy(LoadStrategy):
    """worker_count partitioned workers, each issuing one multi-row INSERT per batch."""

    def _make_executor(self) -> BatchInsertExecutor:
        config = self._config
        return BatchInsertExecutor(
            self._service,
            config.table,
            config.column_mapping.columns,
            config.max_batch_size,
            max_retries=config.max_retries,
            retry_backoff=config.retry_backoff,
        )

    def validate(self, header: tuple[str, ...]) -> None:
        self._config.column_mapping.validate_header(header)
        self._make_executor()
        # Every worker pins one pooled connection for its whole life.
        if self._config.worker_count > self._service.pool_size:
            raise ConfigurationError(
                f"worker_count {self._config.worker_count} exceeds the destination pool size "
                f"{self._service.pool_size}"
            )

    def units_of_work(
        self, aggregator: ResultAggregator, cancelled: threading.Event
    ) -> list[WorkUnit]:
        return [
            WorkUnit(p.worker_index, partial(self._run_worker, p, aggregator, cancelled))
            for p in partitions(self._config.worker_count)
        ]

    def _run_worker(
        self, partition: Partition, aggregator: ResultAggregator, cancelled: threading.Event
    ) -> None:
        config = self._config
        mapping = config.column_mapping
        executor = self._make_executor()
        assembler = BatchAssembler(config.max_batch_size, partition.worker_index)
        rejects: list[ParseError] = []
        try:
            with RowSource(
                config.source_path, delimiter=config.delimiter, quotechar=config.quotechar
            ) as source, self._service.pinned():
                for ordinal, line in partition.filter(source.lines()):
                    if cancelled.is_set():
                        logger.info(
                            "Worker %d cancelled; discarding %d buffered rows",
                            partition.worker_index,
                            assembler.pending,
                        )
                        break
                    item = source.parse(ordinal, line)
                    if isinstance(item, ParseError):
                        logger.warning("Rejected %s", item)
                        rejects.append(item)
                        if len(rejects) >= config.max_batch_size:
                            aggregator.record_rejects(rejects, partition.worker_index)
                            rejects = []
                        continue
                    batch = assembler.push(ordinal, mapping.project(item.fields))
                    if batch is not None:
                        self._write(executor, batch, rejects, aggregator)
                        rejects = []
                else:
                    batch = assembler.flush()
                    if batch is not None and not cancelled.is_set():
                        self._write(executor, batch, rejects, aggregator)
                        rejects = []
        except OSError as e:
            logger.error("Worker %d aborted: %s", partition.worker_index, e)
            aggregator.record_fatal(e, partition.worker_index)
        finally:
            aggregator.record_rejects(rejects, partition.worker_index)

    def _write(
        self,
        executor: BatchInsertExecutor,
        batch: Batch,
        rejects: list[ParseError],
        aggregator: ResultAggregator,
    ) -> None:
        try:
            inserted = executor.execute(batch)
        except DestinationUnavailableError:
            raise
        except WriteError as e:
            logger.warning(
                "Worker %d: batch %d-%d (%d rows) failed: %s",
                batch.worker_index,
                batch.first_ordinal,
                batch.last_ordinal,
                len(batch),
                e,
            )
            aggregator.record_failed_batch(batch, e, rejects)
            return
        total = aggregator.record_batch(batch, inserted, rejects)
        logger.info(
            "Worker %d: inserted batch %d-%d, %d rows (total: %d)",
            batch.worker_index,
            batch.first_ordinal,
            batch.last_ordinal,
            inserted,
            total,
        )


class NativeBulkLoadStrategy(LoadStrategy):
    """One unit handing the whole file to the destination's bulk loader."""

    _loader: NativeBulkLoader | None = None

    def validate(self, header: tuple[str, ...]) -> None:
        config = self._config
        self._loader = NativeBulkLoader(
            self._service,
            config.table,
            config.column_mapping,
            len(header),
            config.native_computed_defaults,
            delimiter=config.delimiter,
            quotechar=config.quotechar,
        )

    def units_of_work(
        self, aggregator: ResultAggregator, cancelled: threading.Event
    ) -> list[WorkUnit]:
        return [WorkUnit(0, partial(self._load, aggregator, cancelled))]

    def _load(self, aggregator: ResultAggregator, cancelled: threading.Event) -> None:
        if self._loader is None:
            raise RuntimeError("validate() must run before the load")
        if cancelled.is_set():
            return
        try:
            with self._service.pinned():
                loaded = self._loader.execute_whole_file(self._config.source_path)
        except OSError as e:
            logger.error("Native bulk load aborted: %s", e)
            aggregator.record_fatal(e, 0)
        except WriteError as e:
            logger.warning("Native bulk load failed: %s", e)
            aggregator.record_failed_load(e)
        else:
            aggregator.record_bulk_load(loaded)


STRATEGIES: dict[Strategy, type[LoadStrategy]] = {
    Strategy.BATCHED_INSERT: BatchedInsertStrategy,
    Strategy.NATIVE_BULK_LOAD: NativeBulkLoadStrategy,
}


class Pipeline:
    """Drives one run. The service is borrowed: the caller connects and closes it.

    run() always returns a RunResult; fatal errors are recorded in it rather
    than raised (see RunResult.raise_for_status).
    """

    def __init__(self, service: DatabaseService, config: PipelineConfig):
        self._service = service
        self._config = config
        self._strategy = STRATEGIES[config.strategy](service, config)
        self._cancelled = threading.Event()
        self._state = PipelineState.IDLE

    @property
    def state(self) -> PipelineState:
        return self._state

    def _transition(self, state: PipelineState) -> None:
        logger.info("Pipeline %s -> %s", self._state.value, state.value)
        self._state = state

    def cancel(self) -> None:
        """Stop before the next batch. Writes already in flight finish."""
        self._cancelled.set()

    def _sample_header(self) -> tuple[str, ...]:
        config = self._config
        with RowSource(
            config.source_path, delimiter=config.delimiter, quotechar=config.quotechar
        ) as source:
            return source.header

    def run(self) -> RunResult:
        if self._state is not PipelineState.IDLE:
            raise RuntimeError(f"Pipeline already {self._state.value}")
        config = self._config
        aggregator = ResultAggregator(config.strategy.value)

        self._transition(PipelineState.VALIDATING)
        try:
            header = self._sample_header()
            if header:
                self._strategy.validate(header)
        except (OSError, ConfigurationError, ParseError) as e:
            logger.error("Validation failed: %s", e)
            aggregator.record_fatal(e)
            self._transition(PipelineState.ABORTED)
            return aggregator.finalize("aborted")
        if not header:
            self._transition(PipelineState.COMPLETED)
            return aggregator.finalize("completed")

        self._transition(PipelineState.RUNNING)
        units = self._strategy.units_of_work(aggregator, self._cancelled)
        with ThreadPoolExecutor(
            max_workers=len(units), thread_name_prefix="bulkingest-worker"
        ) as pool:
            futures = {pool.submit(unit.run): unit for unit in units}
            self._transition(PipelineState.DRAINING)
            for future in as_completed(futures):
                unit = futures[future]
                try:
                    future.result()
                except Exception as e:
                    logger.exception("Worker %d crashed", unit.worker_index)
                    aggregator.record_fatal(e, unit.worker_index)

        result = aggregator.finalize("cancelled" if self._cancelled.is_set() else "completed")
        if result.status == "aborted":
            self._transition(PipelineState.ABORTED)
        else:
            self._transition(PipelineState.COMPLETED)
        logger.info("Run finished: %s", result.render_one_line())
        return result
