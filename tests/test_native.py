"""Tests for the native bulk load strategy, using a recording SQLite service."""

from pathlib import Path

import pytest

from bulkingest import ColumnMapping, ConfigurationError, NativeBulkLoader, Pipeline, PipelineConfig
from bulkingest.native import normalize_path
from recordsink import ConstraintWriteError, SQLiteDatabaseService


class RecordingBulkService(SQLiteDatabaseService):
    """SQLite service that records bulk_load_file calls instead of loading."""

    def __init__(self, db_path, loaded=0, error=None):
        super().__init__(db_path, pool_size=1, acquire_timeout=5.0)
        self.calls = []
        self._loaded = loaded
        self._error = error

    @property
    def supports_bulk_load(self):
        return True

    def bulk_load_file(self, path, table, file_columns, constants, *, delimiter=",", quotechar='"'):
        self.calls.append(
            {
                "path": path,
                "table": table,
                "file_columns": list(file_columns),
                "constants": dict(constants),
                "delimiter": delimiter,
            }
        )
        if self._error is not None:
            raise self._error
        return self._loaded


@pytest.fixture
def bulk_service(tmp_path):
    service = RecordingBulkService(str(tmp_path / "bulk.db"), loaded=3)
    service.connect()
    yield service
    service.close()


class TestNativeBulkLoader:
    def test_hands_whole_file_to_service(self, bulk_service, write_csv):
        path = write_csv("id,skip,name\n1,x,A\n2,y,B\n3,z,C\n")
        mapping = ColumnMapping.from_pairs({0: "id", 2: "name"}, {"password": "changeme"})
        loader = NativeBulkLoader(bulk_service, "users", mapping, 3, delimiter=",")

        assert loader.execute_whole_file(path) == 3
        (call,) = bulk_service.calls
        assert call["path"] == normalize_path(path)
        assert call["table"] == "users"
        assert call["file_columns"] == ["id", None, "name"]
        assert call["constants"] == {"password": "changeme"}

    def test_normalize_path(self, tmp_path):
        normalized = normalize_path(tmp_path / "sub" / ".." / "f.csv")
        assert "\\" not in normalized
        assert ".." not in normalized
        assert Path(normalized).is_absolute()

    def test_computed_defaults_rejected_by_default(self, bulk_service):
        mapping = ColumnMapping.from_pairs({0: "id"}, {"password": lambda: "hash"})
        with pytest.raises(ConfigurationError, match="computed defaults"):
            NativeBulkLoader(bulk_service, "users", mapping, 1)

    def test_computed_defaults_evaluated_once(self, bulk_service, write_csv):
        calls = []
        mapping = ColumnMapping.from_pairs(
            {0: "id"}, {"password": lambda: calls.append(1) or "hash"}
        )
        loader = NativeBulkLoader(bulk_service, "users", mapping, 1, "evaluate-once")
        loader.execute_whole_file(write_csv("id\n1\n2\n"))

        assert bulk_service.calls[0]["constants"] == {"password": "hash"}
        assert calls == [1]

    def test_mapping_wider_than_file(self, bulk_service):
        mapping = ColumnMapping.from_pairs({0: "id", 4: "name"})
        with pytest.raises(ConfigurationError):
            NativeBulkLoader(bulk_service, "users", mapping, 2)

    def test_requires_bulk_load_support(self, db_service):
        with pytest.raises(ConfigurationError, match="native bulk load"):
            NativeBulkLoader(db_service, "users", ColumnMapping.from_pairs({0: "id"}), 1)


class TestNativeStrategy:
    def _config(self, path, **overrides):
        return PipelineConfig(
            path,
            "users",
            ColumnMapping.from_pairs({0: "id", 1: "name"}),
            strategy="native-bulk-load",
            **overrides,
        )

    def test_run_reports_loaded_rows(self, bulk_service, write_csv):
        path = write_csv("id,name\n1,A\n2,B\n3,C\n")
        result = Pipeline(bulk_service, self._config(path, delimiter=",")).run()

        assert result.status == "completed"
        assert result.strategy == "native-bulk-load"
        assert (result.rows_read, result.rows_inserted, result.batches_executed) == (3, 3, 1)
        assert len(bulk_service.calls) == 1

    def test_load_failure_is_recorded(self, tmp_path, write_csv):
        service = RecordingBulkService(
            str(tmp_path / "f.db"), error=ConstraintWriteError("duplicate key")
        )
        service.connect()
        try:
            result = Pipeline(service, self._config(write_csv("id,name\n1,A\n"))).run()
        finally:
            service.close()

        assert result.status == "completed"
        assert result.outcome == "failed-batches"
        assert result.rows_inserted == 0
        assert [e.kind for e in result.errors] == ["constraint"]

    def test_computed_defaults_abort_before_loading(self, bulk_service, write_csv):
        config = PipelineConfig(
            write_csv("id,name\n1,A\n"),
            "users",
            ColumnMapping.from_pairs({0: "id"}, {"name": lambda: "n"}),
            strategy="native-bulk-load",
        )
        result = Pipeline(bulk_service, config).run()

        assert result.status == "aborted"
        assert bulk_service.calls == []
