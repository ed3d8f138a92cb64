"""Tests for the DatabaseConnection class."""

import sqlite3

import pytest

from picking_sync.database.connection import DatabaseConnection, StorageError


class TestDatabaseConnectionInit:
    def test_creates_db_file_on_connect(self, tmp_path):
        db_path = tmp_path / "test.db"
        db = DatabaseConnection(str(db_path))
        db.execute("CREATE TABLE t (id INTEGER PRIMARY KEY)")
        assert db_path.exists()

    def test_creates_parent_dirs(self, tmp_path):
        db_path = tmp_path / "sub" / "deep" / "test.db"
        DatabaseConnection(str(db_path))
        assert db_path.parent.exists()

    def test_db_path_stored(self, tmp_path):
        db_path = tmp_path / "stored.db"
        db = DatabaseConnection(str(db_path))
        assert db.db_path == db_path


class TestGetConnection:
    def test_row_factory_is_row(self, tmp_path):
        db = DatabaseConnection(tmp_path / "row.db")
        with db.get_connection() as conn:
            assert conn.row_factory == sqlite3.Row

    def test_auto_commits(self, tmp_path):
        db = DatabaseConnection(tmp_path / "commit.db")
        with db.get_connection() as conn:
            conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, v TEXT)")
            conn.execute("INSERT INTO t (v) VALUES ('hello')")
        rows = db.execute("SELECT v FROM t")
        assert len(rows) == 1
        assert rows[0]["v"] == "hello"

    def test_rolls_back_on_python_error(self, tmp_path):
        db = DatabaseConnection(tmp_path / "rollback.db")
        db.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, v TEXT)")
        with pytest.raises(RuntimeError):
            with db.get_connection() as conn:
                conn.execute("INSERT INTO t (v) VALUES ('lost')")
                raise RuntimeError("boom")
        assert db.execute("SELECT * FROM t") == []

    def test_sqlite_error_becomes_storage_error(self, tmp_path):
        db = DatabaseConnection(tmp_path / "err.db")
        with pytest.raises(StorageError):
            db.execute("SELECT * FROM missing_table")

    def test_storage_error_rolls_back_whole_block(self, tmp_path):
        db = DatabaseConnection(tmp_path / "partial.db")
        db.execute("CREATE TABLE t (id INTEGER PRIMARY KEY)")
        with pytest.raises(StorageError):
            with db.get_connection() as conn:
                conn.execute("INSERT INTO t (id) VALUES (1)")
                conn.execute("INSERT INTO t (id) VALUES (1)")
        assert db.execute("SELECT * FROM t") == []

    def test_storage_error_keeps_cause(self, tmp_path):
        db = DatabaseConnection(tmp_path / "cause.db")
        with pytest.raises(StorageError) as exc_info:
            db.execute("NOT SQL")
        assert isinstance(exc_info.value.__cause__, sqlite3.Error)
