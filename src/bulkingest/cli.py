"""CLI entry point for bulk CSV ingestion.

Usage:
    bulkingest --db-url sqlite:///data.db --file users.csv --table users \
        --map 1=name --map 2=email --const password=changeme [--batch-size 1000] [--workers 4]
"""

import argparse
import logging
import os
import sys

from bulkingest.config import DB_URL_ENV, PipelineConfig, Strategy
from bulkingest.errors import ConfigurationError, DestinationUnavailableError
from bulkingest.mapping import ColumnMapping
from bulkingest.pipeline import Pipeline
from recordsink import create_service

logger = logging.getLogger(__name__)


def _pair(text: str) -> tuple[str, str]:
    key, sep, value = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {text!r}")
    return key, value


def _field_pair(text: str) -> tuple[int, str]:
    index, column = _pair(text)
    try:
        return int(index), column
    except ValueError:
        raise argparse.ArgumentTypeError(f"source field index must be an int: {text!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stream a delimited file into a database table")
    parser.add_argument(
        "--db-url",
        default=os.environ.get(DB_URL_ENV),
        help=f"Database URL (sqlite:/// or postgresql://); defaults to ${DB_URL_ENV}",
    )
    parser.add_argument("--file", required=True, help="Path to the delimited file")
    parser.add_argument("--table", required=True, help="Destination table")
    parser.add_argument(
        "--map",
        dest="fields",
        type=_field_pair,
        action="append",
        required=True,
        metavar="INDEX=COLUMN",
        help="Map a 0-based source field to a destination column (repeatable)",
    )
    parser.add_argument(
        "--const",
        dest="constants",
        type=_pair,
        action="append",
        default=[],
        metavar="COLUMN=VALUE",
        help="Set a destination column to a constant for every row (repeatable)",
    )
    parser.add_argument("--batch-size", type=int, default=1000, help="Rows per INSERT statement")
    parser.add_argument("--workers", type=int, default=1, help="Concurrent workers")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in Strategy],
        default=Strategy.BATCHED_INSERT.value,
    )
    parser.add_argument("--max-retries", type=int, default=3)
    parser.add_argument("--retry-backoff", type=float, default=0.5, help="Base backoff in seconds")
    parser.add_argument("--delimiter", default=",")
    parser.add_argument(
        "--allow-file-load",
        action="store_true",
        help="Let the destination read the file directly (required for native-bulk-load)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = build_parser().parse_args(argv)
    if not args.db_url:
        logger.error("No database URL. Pass --db-url or set %s.", DB_URL_ENV)
        return 2

    try:
        config = PipelineConfig(
            source_path=args.file,
            table=args.table,
            column_mapping=ColumnMapping.from_pairs(args.fields, dict(args.constants)),
            max_batch_size=args.batch_size,
            worker_count=args.workers,
            strategy=args.strategy,
            max_retries=args.max_retries,
            retry_backoff=args.retry_backoff,
            delimiter=args.delimiter,
        )
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    service = create_service(
        args.db_url, pool_size=config.worker_count, allow_file_load=args.allow_file_load
    )
    try:
        service.connect()
        result = Pipeline(service, config).run()
    except DestinationUnavailableError as e:
        logger.error("Cannot reach the destination: %s", e)
        return 1
    finally:
        service.close()

    print(result.render_one_line())
    for error in result.errors:
        if error.kind != "parse":
            logger.warning(
                "%s error (worker %s, lines %s-%s): %s",
                error.kind,
                error.worker_index,
                error.first_ordinal,
                error.last_ordinal,
                error.message,
            )
    return 0 if result.outcome in ("clean", "rejected-rows") else 1


if __name__ == "__main__":
    sys.exit(main())
