"""Shared test fixtures."""

from pathlib import Path

import pytest

from recordsink import create_service

USERS_DDL = "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL, password TEXT)"


@pytest.fixture
def db_service(tmp_path):
    """Provide a fresh SQLite DatabaseService for each test."""
    db_path = tmp_path / "test.db"
    service = create_service(f"sqlite:///{db_path}", acquire_timeout=5.0)
    service.connect()
    yield service
    service.close()


@pytest.fixture
def users_table(db_service):
    db_service.execute_ddl(USERS_DDL)
    return "users"


@pytest.fixture
def write_csv(tmp_path):
    """Write raw text to a CSV file and return its path."""

    def _write(text: str, name: str = "input.csv") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def users_csv(write_csv):
    """Return a function building an `id,name` file with ids 1..count."""

    def _build(count: int, name: str = "users.csv") -> Path:
        lines = ["id,name"] + [f"{i},user{i}" for i in range(1, count + 1)]
        return write_csv("\n".join(lines) + "\n", name)

    return _build
