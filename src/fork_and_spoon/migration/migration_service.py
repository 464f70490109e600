"""One-time migration of local-only data into a household.

Status moves not-started → in-progress → completed | failed and is kept
in the SnapshotStore together with the pre-migration snapshot. Batch
failures are collected as messages and never abort the remaining batches.
Rollback is a destructive restore from the snapshot.
"""

import logging
from typing import Optional

from fork_and_spoon.database.models import (
    MigrationResult,
    MigrationSnapshot,
    MigrationStatus,
    MigrationSummary,
    SyncTable,
    utc_now_iso,
)
from fork_and_spoon.database.repository import Repository
from fork_and_spoon.errors import (
    LocalStoreError,
    RemoteStoreError,
    RollbackError,
    SnapshotError,
)
from fork_and_spoon.sync.mapping import recipe_to_cloud, schedule_to_cloud
from fork_and_spoon.sync.remote import RemoteStore
from fork_and_spoon.utils.constants import MIGRATION_BATCH_SIZE

from .snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


def _batches(rows: list, size: int):
    for start in range(0, len(rows), size):
        yield start // size + 1, rows[start:start + size]


class MigrationService:
    """Copies local recipes and schedule entries into a household."""

    def __init__(self, repo: Repository, remote: RemoteStore,
                 store: SnapshotStore, batch_size: int = MIGRATION_BATCH_SIZE):
        self.repo = repo
        self.remote = remote
        self.store = store
        self.batch_size = batch_size

    # ── Detection ───────────────────────────────────────────────

    def detect_local_data(self) -> MigrationSummary:
        return MigrationSummary(
            recipes=self.repo.recipe_count(),
            schedule_entries=self.repo.schedule_entry_count(),
            tags=len(self.repo.get_all_tags()),
        )

    def has_local_data(self) -> bool:
        return self.detect_local_data().has_data

    def get_migration_status(self) -> MigrationStatus:
        return self.store.get_status()

    # ── Snapshot ────────────────────────────────────────────────

    def _create_snapshot(self) -> MigrationSnapshot:
        try:
            snapshot = MigrationSnapshot(
                recipes=tuple(self.repo.get_all_recipes()),
                schedule_entries=tuple(self.repo.get_all_schedule_entries()),
                timestamp=utc_now_iso(),
            )
        except LocalStoreError as e:
            raise SnapshotError(f"Failed to create snapshot: {e.message}") from e
        self.store.save_snapshot(snapshot)
        return snapshot

    def get_stored_snapshot(self) -> Optional[MigrationSnapshot]:
        return self.store.load_snapshot()

    def clear_migration_snapshot(self):
        """Forget the snapshot once the user accepts the migration."""
        self.store.clear_snapshot()

    # ── Migration ───────────────────────────────────────────────

    def migrate_local_to_cloud(self, household_id: str,
                               user_id: Optional[str] = None) -> MigrationResult:
        """Upload every local recipe and schedule entry to the household."""
        result = MigrationResult(status=MigrationStatus.IN_PROGRESS)

        try:
            self.store.set_status(MigrationStatus.IN_PROGRESS)
            snapshot = self._create_snapshot()
        except SnapshotError as e:
            logger.error("Migration aborted: %s", e.message)
            result.status = MigrationStatus.FAILED
            result.errors.append(e.message)
            self._record_status(result)
            return result
        result.snapshot = snapshot
        result.tags_migrated = len({tag for r in snapshot.recipes for tag in r.tags})

        # Recipes
        recipes = list(snapshot.recipes)
        for number, batch in _batches(recipes, self.batch_size):
            rows = [recipe_to_cloud(r, household_id, user_id) for r in batch]
            try:
                self.remote.upsert(SyncTable.RECIPES, rows)
            except RemoteStoreError as e:
                logger.error("Recipe batch %d failed: %s", number, e.message)
                result.errors.append(f"Recipe batch {number}: {e.message}")
            else:
                result.recipes_migrated += len(batch)

        # Only schedule entries whose recipe actually landed
        try:
            landed = {
                row["id"] for row in self.remote.select_by_household(
                    SyncTable.RECIPES, household_id, columns="id"
                )
            }
        except RemoteStoreError as e:
            logger.warning(
                "Could not confirm uploaded recipes, assuming all landed: %s",
                e.message,
            )
            landed = {r.id for r in recipes}

        entries = [
            e for e in snapshot.schedule_entries
            if not e.recipe_id or e.recipe_id in landed
        ]
        result.schedule_entries_skipped = len(snapshot.schedule_entries) - len(entries)
        if result.schedule_entries_skipped:
            result.errors.append(
                f"Skipped {result.schedule_entries_skipped} schedule entries "
                "referencing missing recipes"
            )

        for number, batch in _batches(entries, self.batch_size):
            rows = [schedule_to_cloud(e, household_id) for e in batch]
            try:
                self.remote.upsert(SyncTable.SCHEDULE_ENTRIES, rows)
            except RemoteStoreError as e:
                logger.error("Schedule batch %d failed: %s", number, e.message)
                result.errors.append(f"Schedule batch {number}: {e.message}")
            else:
                result.schedule_entries_migrated += len(batch)

        if not result.errors:
            result.status = MigrationStatus.COMPLETED
        elif result.recipes_migrated or result.schedule_entries_migrated:
            # Partial success still counts as migrated
            result.status = MigrationStatus.COMPLETED
        else:
            result.status = MigrationStatus.FAILED
        self._record_status(result)

        logger.info(
            "Migration %s: %d recipes, %d schedule entries, %d tags, %d errors",
            result.status.value, result.recipes_migrated,
            result.schedule_entries_migrated, result.tags_migrated,
            len(result.errors),
        )
        return result

    def _record_status(self, result: MigrationResult):
        """Persist the final status; a failed write is reported in the result."""
        try:
            self.store.set_status(result.status)
        except SnapshotError as e:
            logger.error("Could not record migration status: %s", e.message)
            result.errors.append(e.message)

    # ── Rollback ────────────────────────────────────────────────

    def rollback_migration(self) -> MigrationSnapshot:
        """Restore local recipes and schedule entries from the snapshot.

        Anything changed locally since the snapshot is lost. Returns the
        snapshot that was restored.
        """
        snapshot = self.store.load_snapshot()
        if snapshot is None:
            raise RollbackError("No migration snapshot found for rollback")
        try:
            self.repo.restore_snapshot(snapshot.recipes, snapshot.schedule_entries)
        except LocalStoreError as e:
            raise RollbackError(f"Rollback failed: {e.message}") from e

        self.store.set_status(MigrationStatus.NOT_STARTED)
        self.store.clear_snapshot()
        logger.info(
            "Rolled back migration to snapshot from %s (%d recipes, %d entries)",
            snapshot.timestamp, len(snapshot.recipes),
            len(snapshot.schedule_entries),
        )
        return snapshot
