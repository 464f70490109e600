"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

import fork_and_spoon.config as config_mod
from fork_and_spoon.config import Config
from fork_and_spoon.database.connection import DatabaseConnection
from fork_and_spoon.database.models import (
    Recipe,
    ScheduleEntry,
    SyncTable,
    format_timestamp,
    new_id,
)
from fork_and_spoon.database.repository import Repository
from fork_and_spoon.database.schema import initialize_database
from fork_and_spoon.errors import RemoteStoreError
from fork_and_spoon.migration.snapshot_store import SnapshotStore
from fork_and_spoon.sync.remote import RemoteStore
from fork_and_spoon.sync.sync_manager import SyncManager

HOUSEHOLD = "household-1"


class FakeRemoteStore(RemoteStore):
    """In-memory household store with switchable failures."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.tables = {table: {} for table in SyncTable}
        # Operations ("upsert", "delete", "select") that currently fail
        self.failing: set[str] = set()
        # Row ids whose upsert or delete currently fails
        self.failing_ids: set[str] = set()
        self.calls: list[tuple] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def _check(self, operation, table, ids=()):
        if operation in self.failing or self.failing_ids.intersection(ids):
            raise RemoteStoreError(
                "Network unavailable", table=table.value, operation=operation
            )

    def upsert(self, table, rows):
        table = SyncTable(table)
        self.calls.append(("upsert", table, [r["id"] for r in rows]))
        self._check("upsert", table, [r["id"] for r in rows])
        for row in rows:
            self.tables[table][row["id"]] = dict(row)
        return [dict(r) for r in rows]

    def delete(self, table, row_id):
        table = SyncTable(table)
        self.calls.append(("delete", table, [row_id]))
        self._check("delete", table, [row_id])
        self.tables[table].pop(row_id, None)

    def select_by_household(self, table, household_id, columns="*"):
        table = SyncTable(table)
        self.calls.append(("select", table, []))
        self._check("select", table)
        return [
            dict(row) for _, row in sorted(self.tables[table].items())
            if row.get("household_id") == household_id
        ]

    def seed(self, table, **row):
        row.setdefault("household_id", HOUSEHOLD)
        self.tables[SyncTable(table)][row["id"]] = row
        return row

    def rows(self, table) -> dict:
        return self.tables[SyncTable(table)]


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def isolate_config(tmp_path, monkeypatch):
    """Redirect settings I/O to a temp file and reset session state."""
    monkeypatch.setattr(config_mod, "_SETTINGS_FILE", tmp_path / "settings.json")
    monkeypatch.setattr(Config, "SUPABASE_URL", "")
    monkeypatch.setattr(Config, "SUPABASE_ANON_KEY", "")
    monkeypatch.setattr(Config, "HOUSEHOLD_ID", "")
    monkeypatch.setattr(Config, "USER_ID", "")
    monkeypatch.setattr(Config, "LAST_SYNC_TIMESTAMP", "")


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path):
    """Provide an initialized database connection."""
    conn = DatabaseConnection(db_path)
    initialize_database(conn)
    return conn


@pytest.fixture
def repo(db):
    """Provide a repository with an initialized database."""
    return Repository(db)


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(repo, remote, clock):
    return SyncManager(repo, remote, clock=clock)


@pytest.fixture
def snapshot_store(tmp_path):
    return SnapshotStore(tmp_path / "migration")


@pytest.fixture
def make_recipe():
    """Factory for recipes with sensible defaults."""

    def _make(title="Pancakes", **fields):
        stamp = format_timestamp(datetime(2024, 1, 1, tzinfo=timezone.utc))
        fields.setdefault("id", new_id())
        fields.setdefault("created_at", stamp)
        fields.setdefault("updated_at", stamp)
        return Recipe(title=title, **fields)

    return _make


@pytest.fixture
def make_entry():
    """Factory for schedule entries."""

    def _make(recipe_id="", date="2024-03-04", meal_type="dinner", **fields):
        fields.setdefault("id", new_id())
        fields.setdefault("created_at", "2024-03-01T00:00:00.000000+00:00")
        return ScheduleEntry(recipe_id=recipe_id, date=date,
                             meal_type=meal_type, **fields)

    return _make
