"""Tests for the bulk insert executor."""

import pytest

from bulkingest.batching import Batch
from bulkingest.errors import ConfigurationError, ConstraintWriteError, TransientWriteError
from bulkingest.executor import BatchInsertExecutor


def _batch(*ids):
    return Batch(rows=[(i, f"user{i}") for i in ids], first_ordinal=0, last_ordinal=len(ids) - 1)


def _count(db_service):
    with db_service.transaction():
        return db_service.execute("SELECT COUNT(*) AS cnt FROM users")[0]["cnt"]


class TestBatchInsertExecutor:
    def test_one_write_per_batch(self, db_service, users_table, monkeypatch):
        calls = []
        original = db_service.insert_rows

        def spy(table, columns, rows):
            calls.append(len(rows))
            return original(table, columns, rows)

        monkeypatch.setattr(db_service, "insert_rows", spy)
        executor = BatchInsertExecutor(db_service, users_table, ["id", "name"], max_batch_size=10)
        assert executor.execute(_batch(1, 2, 3)) == 3
        assert calls == [3]
        assert _count(db_service) == 3

    def test_placeholder_ceiling_fails_fast(self, db_service, users_table):
        limit = db_service.max_parameters
        with pytest.raises(ConfigurationError, match="placeholders"):
            BatchInsertExecutor(db_service, users_table, ["id", "name"], max_batch_size=limit)

    def test_oversized_batch_rejected(self, db_service, users_table):
        executor = BatchInsertExecutor(db_service, users_table, ["id", "name"], max_batch_size=10)
        big = _batch(*range(1, db_service.max_parameters))
        with pytest.raises(ConfigurationError):
            executor.execute(big)
        assert _count(db_service) == 0

    def test_transient_failure_is_retried(self, db_service, users_table, monkeypatch):
        attempts = []
        original = db_service.insert_rows

        def flaky(table, columns, rows):
            attempts.append(1)
            if len(attempts) < 3:
                raise TransientWriteError("database is locked")
            return original(table, columns, rows)

        monkeypatch.setattr(db_service, "insert_rows", flaky)
        executor = BatchInsertExecutor(
            db_service, users_table, ["id", "name"], 10, max_retries=3, retry_backoff=0
        )
        assert executor.execute(_batch(1, 2)) == 2
        assert len(attempts) == 3

    def test_retries_exhausted(self, db_service, users_table, monkeypatch):
        attempts = []

        def down(table, columns, rows):
            attempts.append(1)
            raise TransientWriteError("connection reset")

        monkeypatch.setattr(db_service, "insert_rows", down)
        executor = BatchInsertExecutor(
            db_service, users_table, ["id", "name"], 10, max_retries=2, retry_backoff=0
        )
        with pytest.raises(TransientWriteError):
            executor.execute(_batch(1))
        assert len(attempts) == 3

    def test_constraint_violation_not_retried(self, db_service, users_table):
        executor = BatchInsertExecutor(
            db_service, users_table, ["id", "name"], 10, max_retries=5, retry_backoff=0
        )
        with pytest.raises(ConstraintWriteError):
            executor.execute(_batch(1, 1))
        assert _count(db_service) == 0
