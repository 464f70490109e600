"""Tests for the DatabaseConnection class."""

import sqlite3

import pytest

from fork_and_spoon.database.connection import DatabaseConnection
from fork_and_spoon.errors import LocalStoreError


class TestDatabaseConnectionInit:
    def test_creates_db_file_on_connect(self, tmp_path):
        db_path = tmp_path / "test.db"
        db = DatabaseConnection(str(db_path))
        db.execute("CREATE TABLE t (id INTEGER PRIMARY KEY)")
        assert db_path.exists()

    def test_creates_parent_dirs(self, tmp_path):
        db_path = tmp_path / "sub" / "deep" / "test.db"
        DatabaseConnection(db_path)
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

    def test_foreign_keys_enabled(self, tmp_path):
        db = DatabaseConnection(tmp_path / "fk.db")
        with db.get_connection() as conn:
            assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_commits_on_success(self, tmp_path):
        db = DatabaseConnection(tmp_path / "commit.db")
        db.execute("CREATE TABLE t (v TEXT)")
        with db.get_connection() as conn:
            conn.execute("INSERT INTO t VALUES ('a')")
        assert db.scalar("SELECT COUNT(*) FROM t") == 1

    def test_rolls_back_on_error(self, tmp_path):
        db = DatabaseConnection(tmp_path / "rollback.db")
        db.execute("CREATE TABLE t (v TEXT)")
        with pytest.raises(RuntimeError):
            with db.get_connection() as conn:
                conn.execute("INSERT INTO t VALUES ('a')")
                raise RuntimeError("boom")
        assert db.scalar("SELECT COUNT(*) FROM t") == 0

    def test_immediate_transaction_rolls_back_all_statements(self, tmp_path):
        db = DatabaseConnection(tmp_path / "immediate.db")
        db.execute("CREATE TABLE t (v TEXT UNIQUE)")
        with pytest.raises(LocalStoreError):
            with db.get_connection(immediate=True) as conn:
                conn.execute("INSERT INTO t VALUES ('a')")
                conn.execute("INSERT INTO t VALUES ('a')")
        assert db.scalar("SELECT COUNT(*) FROM t") == 0

    def test_sqlite_errors_become_local_store_errors(self, tmp_path):
        db = DatabaseConnection(tmp_path / "err.db")
        with pytest.raises(LocalStoreError) as exc:
            db.execute("SELECT * FROM missing_table")
        assert exc.value.code == "STORE_001"
        assert isinstance(exc.value.__cause__, sqlite3.Error)


class TestHelpers:
    def test_execute_many_and_scalar(self, tmp_path):
        db = DatabaseConnection(tmp_path / "many.db")
        db.execute("CREATE TABLE t (v INTEGER)")
        db.execute_many("INSERT INTO t VALUES (?)", [(1,), (2,), (3,)])
        assert db.scalar("SELECT SUM(v) FROM t") == 6

    def test_scalar_none_for_no_rows(self, tmp_path):
        db = DatabaseConnection(tmp_path / "none.db")
        db.execute("CREATE TABLE t (v INTEGER)")
        assert db.scalar("SELECT v FROM t") is None

    def test_execute_script(self, tmp_path):
        db = DatabaseConnection(tmp_path / "script.db")
        db.execute_script(
            "CREATE TABLE a (id INTEGER); CREATE TABLE b (id INTEGER);"
        )
        names = {r["name"] for r in db.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table'"
        )}
        assert {"a", "b"} <= names
