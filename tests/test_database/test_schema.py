"""Tests for schema creation and forward migrations."""

import json
import os

import pytest

from fork_and_spoon.config import LOCAL_STORE_NAME, Config
from fork_and_spoon.database.connection import DatabaseConnection
from fork_and_spoon.database.schema import (
    SCHEMA_VERSION,
    create_v1_schema,
    get_schema_version,
    initialize_database,
)
from fork_and_spoon.errors import LocalStoreError


def _tables(db):
    return {r["name"] for r in db.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table'"
    )}


def _columns(db, table):
    return {r["name"] for r in db.execute(f"PRAGMA table_info({table})")}


@pytest.fixture
def v1_db(tmp_path):
    db = DatabaseConnection(tmp_path / "v1.db")
    with db.get_connection() as conn:
        create_v1_schema(conn)
        conn.execute(
            "INSERT INTO recipes (id, title, ingredients, instructions, "
            "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
            ("r1", "Old Soup", '["water"]', '["boil"]',
             "2023-01-01T00:00:00+00:00", "2023-01-01T00:00:00+00:00"),
        )
        conn.execute(
            "INSERT INTO schedule_entries (id, recipe_id, date, meal_type, "
            "created_at) VALUES ('e1', 'r1', '2023-01-02', 'dinner', "
            "'2023-01-01T00:00:00+00:00')"
        )
    return db


class TestFreshSchema:
    def test_creates_all_tables(self, db):
        assert {"schema_version", "recipes", "schedule_entries",
                "sync_queue", "recipe_ingredients"} <= _tables(db)

    def test_returns_current_version(self, tmp_path):
        db = DatabaseConnection(tmp_path / "fresh.db")
        assert initialize_database(db) == SCHEMA_VERSION == 4

    def test_idempotent(self, db):
        assert initialize_database(db) == SCHEMA_VERSION
        assert initialize_database(db) == SCHEMA_VERSION

    def test_empty_database_has_version_zero(self, tmp_path):
        db = DatabaseConnection(tmp_path / "empty.db")
        with db.get_connection() as conn:
            assert get_schema_version(conn) == 0

    def test_slot_uniqueness_enforced(self, db):
        insert = ("INSERT INTO schedule_entries (id, recipe_id, date, "
                  "meal_type, created_at) VALUES (?, 'r', '2024-01-01', "
                  "'dinner', 'x')")
        db.execute(insert, ("a",))
        with pytest.raises(LocalStoreError):
            db.execute(insert, ("b",))

    def test_meal_type_restricted(self, db):
        with pytest.raises(LocalStoreError):
            db.execute(
                "INSERT INTO schedule_entries (id, recipe_id, date, meal_type, "
                "created_at) VALUES ('a', 'r', '2024-01-01', 'breakfast', 'x')"
            )

    def test_queue_table_name_restricted(self, db):
        with pytest.raises(LocalStoreError):
            db.execute(
                "INSERT INTO sync_queue (id, table_name, operation, payload, "
                "timestamp) VALUES ('q', 'users', 'upsert', '{}', 1)"
            )


class TestUpgrade:
    def test_v1_upgrades_to_current(self, v1_db):
        assert initialize_database(v1_db) == SCHEMA_VERSION
        assert "tags" in _columns(v1_db, "recipes")
        assert {"sync_queue", "recipe_ingredients"} <= _tables(v1_db)

    def test_existing_recipes_get_empty_tags(self, v1_db):
        initialize_database(v1_db)
        row = v1_db.execute("SELECT tags FROM recipes WHERE id = 'r1'")[0]
        assert json.loads(row["tags"]) == []

    def test_upgrade_keeps_data(self, v1_db):
        initialize_database(v1_db)
        assert v1_db.scalar("SELECT title FROM recipes WHERE id = 'r1'") == "Old Soup"
        assert v1_db.scalar("SELECT COUNT(*) FROM schedule_entries") == 1


class TestStoreName:
    def test_local_store_keeps_legacy_name(self):
        assert LOCAL_STORE_NAME == "MealOrganizerDB"

    @pytest.mark.skipif("DATABASE_PATH" in os.environ, reason="path overridden")
    def test_default_database_file_uses_store_name(self):
        assert Config.DATABASE_PATH.name == f"{LOCAL_STORE_NAME}.sqlite3"
