"""Remote store access and per-table sync adapters.

The remote store is the household's Supabase project. Only three calls
are used: upsert by primary key, delete by id, and select by household.
Every failure surfaces as RemoteStoreError so callers have one thing to
catch.
"""

import logging
from typing import Optional

from supabase import Client, create_client

from fork_and_spoon.config import Config
from fork_and_spoon.database.models import SyncOperation, SyncTable
from fork_and_spoon.errors import (
    RemoteNotConfiguredError,
    RemoteStoreError,
    SyncError,
)

logger = logging.getLogger(__name__)


class RemoteStore:
    """Interface of the shared household store."""

    @property
    def is_configured(self) -> bool:
        return False

    def upsert(self, table: SyncTable, rows: list[dict]) -> list[dict]:
        """Insert or replace rows by primary key; idempotent."""
        raise NotImplementedError

    def delete(self, table: SyncTable, row_id: str):
        raise NotImplementedError

    def select_by_household(self, table: SyncTable, household_id: str,
                            columns: str = "*") -> list[dict]:
        raise NotImplementedError


class SupabaseRemoteStore(RemoteStore):
    """RemoteStore backed by supabase-py."""

    PAGE_SIZE = 1000  # PostgREST default max rows per response

    def __init__(self, url: str = "", key: str = "",
                 client: Optional[Client] = None):
        self.url = url
        self.key = key
        self._client = client

    @classmethod
    def from_config(cls) -> "SupabaseRemoteStore":
        return cls(Config.SUPABASE_URL, Config.SUPABASE_ANON_KEY)

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self.url and self.key)

    @property
    def client(self) -> Client:
        """Lazily create the Supabase client."""
        if self._client is None:
            if not (self.url and self.key):
                raise RemoteNotConfiguredError()
            try:
                self._client = create_client(self.url, self.key)
            except Exception as e:
                raise RemoteStoreError(f"Cannot create Supabase client: {e}") from e
        return self._client

    def upsert(self, table: SyncTable, rows: list[dict]) -> list[dict]:
        if not rows:
            return []
        table = SyncTable(table)
        try:
            response = (
                self.client.table(table.value)
                .upsert(rows, on_conflict="id")
                .execute()
            )
        except RemoteStoreError:
            raise
        except Exception as e:
            raise RemoteStoreError(
                str(e), table=table.value, operation="upsert"
            ) from e
        return response.data or []

    def delete(self, table: SyncTable, row_id: str):
        table = SyncTable(table)
        try:
            self.client.table(table.value).delete().eq("id", row_id).execute()
        except RemoteStoreError:
            raise
        except Exception as e:
            raise RemoteStoreError(
                str(e), table=table.value, operation="delete",
                details={"id": row_id},
            ) from e

    def select_by_household(self, table: SyncTable, household_id: str,
                            columns: str = "*") -> list[dict]:
        """Fetch every row of ``table`` for the household, page by page."""
        table = SyncTable(table)
        rows: list[dict] = []
        start = 0
        try:
            while True:
                response = (
                    self.client.table(table.value)
                    .select(columns)
                    .eq("household_id", household_id)
                    .order("id")
                    .range(start, start + self.PAGE_SIZE - 1)
                    .execute()
                )
                page = response.data or []
                rows.extend(page)
                if len(page) < self.PAGE_SIZE:
                    break
                start += self.PAGE_SIZE
        except RemoteStoreError:
            raise
        except Exception as e:
            raise RemoteStoreError(
                str(e), table=table.value, operation="select"
            ) from e
        logger.debug("Fetched %d %s rows", len(rows), table.value)
        return rows


# ── Table adapters ──────────────────────────────────────────────

class TableAdapter:
    """Upsert/delete pair for one remote table."""

    def __init__(self, table: SyncTable, remote: RemoteStore):
        self.table = SyncTable(table)
        self.remote = remote
        self._handlers = {
            SyncOperation.UPSERT: self.upsert,
            SyncOperation.DELETE: self.delete,
        }
        missing = set(SyncOperation) - set(self._handlers)
        if missing:
            raise SyncError(f"No handler for operations: {sorted(missing)}")

    def upsert(self, payload: dict, household_id: Optional[str] = None):
        row = dict(payload)
        if household_id:
            row["household_id"] = household_id
        self.remote.upsert(self.table, [row])

    def delete(self, payload: dict, household_id: Optional[str] = None):
        record_id = payload.get("id")
        if not record_id:
            raise SyncError(
                f"Delete payload for {self.table.value} has no id",
                details={"payload": payload},
            )
        self.remote.delete(self.table, record_id)

    def apply(self, operation: SyncOperation, payload: dict,
              household_id: Optional[str] = None):
        try:
            handler = self._handlers[SyncOperation(operation)]
        except (KeyError, ValueError) as e:
            raise SyncError(f"Unknown sync operation: {operation!r}") from e
        handler(payload, household_id)


def build_adapters(remote: RemoteStore) -> dict[SyncTable, TableAdapter]:
    """One adapter per syncable table; fails if any table is left out."""
    adapters = {
        SyncTable.RECIPES: TableAdapter(SyncTable.RECIPES, remote),
        SyncTable.SCHEDULE_ENTRIES: TableAdapter(SyncTable.SCHEDULE_ENTRIES, remote),
    }
    missing = set(SyncTable) - set(adapters)
    if missing:
        raise SyncError(f"No sync adapter for tables: {sorted(missing)}")
    return adapters
