"""SyncManager: offline-first recipe and meal-plan operations.

Every mutation follows the same three steps:
1. Apply the change to the local store and commit it
2. If sync is enabled (remote configured and household known) and the
   device is online, write the remote row immediately
3. If that write fails, or the device is offline, queue the remote-shaped
   row in ``sync_queue`` for the queue processor to replay later

Remote failures never reach the caller; only local store errors do.
Connectivity and household are passed into each call rather than read
from shared state.
"""

import logging
from datetime import date as date_cls
from datetime import datetime
from typing import Callable, Iterable, Optional

from fork_and_spoon.database.models import (
    MealType,
    PullResult,
    Recipe,
    RecipeIngredient,
    ScheduleEntry,
    SyncOperation,
    SyncQueueItem,
    SyncTable,
    epoch_millis,
    format_timestamp,
    new_id,
    next_timestamp,
    utc_now,
)
from fork_and_spoon.database.repository import Repository
from fork_and_spoon.errors import (
    RemoteNotConfiguredError,
    RemoteStoreError,
    SyncError,
)
from fork_and_spoon.utils.constants import MAX_SYNC_RETRIES
from fork_and_spoon.utils.formatters import format_meal_slot

from . import reconcile
from .mapping import delete_payload, recipe_to_cloud, schedule_to_cloud
from .queue_processor import SyncQueueProcessor
from .remote import RemoteStore, build_adapters

logger = logging.getLogger(__name__)

# Fields a caller may change through update_recipe
RECIPE_UPDATE_FIELDS = {
    "title", "ingredients", "instructions", "image_url",
    "source_url", "last_cooked_date", "tags",
}


def _validate_slot(date: str, meal_type: str) -> str:
    try:
        date_cls.fromisoformat(date)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid schedule date: {date!r}") from e
    try:
        return MealType(meal_type).value
    except ValueError as e:
        raise ValueError(f"Invalid meal type: {meal_type!r}") from e


class SyncManager:
    """Local-first CRUD with best-effort remote writes."""

    def __init__(self, repo: Repository, remote: Optional[RemoteStore] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 max_retries: int = MAX_SYNC_RETRIES):
        self.repo = repo
        self.remote = remote
        self.max_retries = max_retries
        self._clock = clock or utc_now
        self._adapters = build_adapters(remote) if remote is not None else {}

    def is_sync_enabled(self, household_id: Optional[str]) -> bool:
        """Remote configured and a household to write into."""
        return (
            self.remote is not None
            and self.remote.is_configured
            and bool(household_id)
        )

    # ── Remote write or queue ───────────────────────────────────

    def _push(self, table: SyncTable, operation: SyncOperation, payload: dict,
              household_id: Optional[str], online: bool) -> bool:
        """Write one row remotely, queueing it on failure.

        Returns True when the remote write succeeded. Does nothing when
        sync is disabled.
        """
        if not self.is_sync_enabled(household_id):
            return False
        if online:
            try:
                self._adapters[table].apply(operation, payload, household_id)
                return True
            except RemoteStoreError as e:
                logger.warning(
                    "Remote %s on %s failed, queued for retry: %s",
                    operation.value, table.value, e.message,
                )
        self.enqueue_sync_operation(table, operation, payload)
        return False

    def enqueue_sync_operation(self, table: SyncTable, operation: SyncOperation,
                               payload: dict) -> SyncQueueItem:
        try:
            table, operation = SyncTable(table), SyncOperation(operation)
        except ValueError as e:
            raise SyncError(str(e)) from e
        item = SyncQueueItem(
            id=new_id(),
            table=table,
            operation=operation,
            payload=dict(payload),
            timestamp=epoch_millis(self._clock()),
        )
        self.repo.enqueue(item)
        return item

    def get_sync_queue_length(self) -> int:
        return self.repo.queue_length()

    # ── Recipes ─────────────────────────────────────────────────

    def get_recipes(self, sort_by: str = "created_at") -> list[Recipe]:
        return self.repo.get_all_recipes(sort_by)

    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        return self.repo.get_recipe_by_id(recipe_id)

    def search_recipes(self, query: str) -> list[Recipe]:
        return self.repo.search_recipes(query)

    def get_all_tags(self) -> list[str]:
        return self.repo.get_all_tags()

    def filter_recipes_by_tag(self, tag: str) -> list[Recipe]:
        return self.repo.filter_recipes_by_tag(tag)

    def get_recipe_count(self) -> int:
        return self.repo.recipe_count()

    def create_recipe(self, title: str,
                      ingredients: Optional[list[str]] = None,
                      instructions: Optional[list[str]] = None,
                      image_url: Optional[str] = None,
                      source_url: Optional[str] = None,
                      last_cooked_date: Optional[str] = None,
                      tags: Optional[list[str]] = None, *,
                      household_id: Optional[str] = None,
                      user_id: Optional[str] = None,
                      online: bool = True) -> Recipe:
        if not title or not title.strip():
            raise ValueError("Recipe title is required")
        now = format_timestamp(self._clock())
        recipe = Recipe(
            id=new_id(),
            title=title.strip(),
            ingredients=list(ingredients or []),
            instructions=list(instructions or []),
            image_url=image_url,
            source_url=source_url,
            last_cooked_date=last_cooked_date,
            tags=list(dict.fromkeys(tags or [])),
            created_at=now,
            updated_at=now,
        )
        self.repo.insert_recipe(recipe)
        self._push(
            SyncTable.RECIPES, SyncOperation.UPSERT,
            recipe_to_cloud(recipe, household_id, user_id),
            household_id, online,
        )
        return recipe

    def update_recipe(self, recipe_id: str, updates: dict, *,
                      household_id: Optional[str] = None,
                      user_id: Optional[str] = None,
                      online: bool = True) -> Optional[Recipe]:
        """Apply field updates; returns the updated recipe or None if absent."""
        unknown = set(updates) - RECIPE_UPDATE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update recipe fields: {sorted(unknown)}")
        recipe = self.repo.get_recipe_by_id(recipe_id)
        if recipe is None:
            return None
        for name, value in updates.items():
            if name in ("ingredients", "instructions", "tags"):
                value = list(value or [])
            setattr(recipe, name, value)
        recipe.updated_at = next_timestamp(recipe.updated_at, self._clock())
        self.repo.update_recipe(recipe)
        self._push(
            SyncTable.RECIPES, SyncOperation.UPSERT,
            recipe_to_cloud(recipe, household_id, user_id),
            household_id, online,
        )
        return recipe

    def mark_cooked(self, recipe_id: str, cooked_on: Optional[str] = None,
                    **sync_kwargs) -> Optional[Recipe]:
        """Set ``last_cooked_date`` (defaults to today)."""
        cooked_on = cooked_on or self._clock().date().isoformat()
        return self.update_recipe(
            recipe_id, {"last_cooked_date": cooked_on}, **sync_kwargs
        )

    def delete_recipe(self, recipe_id: str, *,
                      household_id: Optional[str] = None,
                      online: bool = True) -> bool:
        deleted = self.repo.delete_recipe(recipe_id)
        self._push(
            SyncTable.RECIPES, SyncOperation.DELETE,
            delete_payload(recipe_id), household_id, online,
        )
        return deleted

    def bulk_delete_recipes(self, recipe_ids: Iterable[str], *,
                            household_id: Optional[str] = None,
                            online: bool = True) -> int:
        ids = list(dict.fromkeys(recipe_ids))
        deleted = self.repo.delete_recipes(ids)
        for recipe_id in ids:
            self._push(
                SyncTable.RECIPES, SyncOperation.DELETE,
                delete_payload(recipe_id), household_id, online,
            )
        return len(deleted)

    def bulk_assign_tag(self, recipe_ids: Iterable[str], tag: str, *,
                        household_id: Optional[str] = None,
                        user_id: Optional[str] = None,
                        online: bool = True) -> int:
        """Add a tag to many recipes; recipes that already have it are untouched."""
        tag = (tag or "").strip()
        if not tag:
            raise ValueError("Tag must not be empty")
        changed = self.repo.add_tag_to_recipes(recipe_ids, tag, self._clock())
        for recipe in changed:
            self._push(
                SyncTable.RECIPES, SyncOperation.UPSERT,
                recipe_to_cloud(recipe, household_id, user_id),
                household_id, online,
            )
        return len(changed)

    # ── Recipe ingredients (local only) ─────────────────────────

    def save_recipe_ingredients(self, recipe_id: str,
                                ingredients: Iterable[RecipeIngredient]) -> list[RecipeIngredient]:
        return self.repo.save_recipe_ingredients(recipe_id, ingredients)

    def get_recipe_ingredients(self, recipe_id: str) -> list[RecipeIngredient]:
        return self.repo.get_recipe_ingredients(recipe_id)

    # ── Schedule ────────────────────────────────────────────────

    def get_schedule_entries(self, start_date: str,
                             end_date: str) -> list[ScheduleEntry]:
        return self.repo.get_schedule_entries(start_date, end_date)

    def get_entries_for_date(self, date: str) -> list[ScheduleEntry]:
        return self.repo.get_entries_for_date(date)

    def get_entries_by_recipe(self, recipe_id: str) -> list[ScheduleEntry]:
        return self.repo.get_entries_by_recipe(recipe_id)

    def get_schedule_entry_count(self) -> int:
        return self.repo.schedule_entry_count()

    def get_schedule_for_week(self, start_date: str, end_date: str) -> dict:
        """Entries grouped by date then meal type, with their recipes.

        ``{"2024-03-04": {"dinner": {"entry": ScheduleEntry, "recipe": Recipe | None}}}``
        """
        entries = self.repo.get_schedule_entries(start_date, end_date)
        recipes = {
            r.id: r for r in self.repo.get_recipes_by_ids(
                e.recipe_id for e in entries if e.recipe_id
            )
        }
        schedule: dict[str, dict] = {}
        for entry in entries:
            schedule.setdefault(entry.date, {})[entry.meal_type] = {
                "entry": entry,
                "recipe": recipes.get(entry.recipe_id),
            }
        return schedule

    def add_to_schedule(self, recipe_id: str, date: str, meal_type: str, *,
                        household_id: Optional[str] = None,
                        online: bool = True) -> ScheduleEntry:
        """Schedule a recipe, replacing whatever occupies the slot."""
        meal_type = _validate_slot(date, meal_type)
        entry = ScheduleEntry(
            id=new_id(),
            recipe_id=recipe_id,
            date=date,
            meal_type=meal_type,
            created_at=format_timestamp(self._clock()),
        )
        displaced = self.repo.place_schedule_entry(entry)
        if displaced is not None:
            logger.debug("Replaced %s", format_meal_slot(date, meal_type))
            self._push(
                SyncTable.SCHEDULE_ENTRIES, SyncOperation.DELETE,
                delete_payload(displaced.id), household_id, online,
            )
        self._push(
            SyncTable.SCHEDULE_ENTRIES, SyncOperation.UPSERT,
            schedule_to_cloud(entry, household_id), household_id, online,
        )
        return entry

    def remove_from_schedule(self, entry_id: str, *,
                             household_id: Optional[str] = None,
                             online: bool = True) -> bool:
        removed = self.repo.delete_schedule_entry(entry_id)
        self._push(
            SyncTable.SCHEDULE_ENTRIES, SyncOperation.DELETE,
            delete_payload(entry_id), household_id, online,
        )
        return removed

    def swap_meals(self, source_date: str, source_meal_type: str,
                   target_date: str, target_meal_type: str, *,
                   household_id: Optional[str] = None,
                   online: bool = True) -> list[ScheduleEntry]:
        """Swap two slots, or move a meal into an empty slot.

        Two occupied slots exchange recipes and keep their entry ids.
        Moving into an empty slot deletes the source entry and creates a
        new one at the target. Returns the entries now holding the moved
        recipes; empty when there was nothing to move.
        """
        source_meal_type = _validate_slot(source_date, source_meal_type)
        target_meal_type = _validate_slot(target_date, target_meal_type)
        if (source_date, source_meal_type) == (target_date, target_meal_type):
            return []

        source = self.repo.get_entry_for_slot(source_date, source_meal_type)
        if source is None:
            return []
        target = self.repo.get_entry_for_slot(target_date, target_meal_type)

        if target is not None:
            first, second = self.repo.swap_schedule_recipes(source.id, target.id)
            for entry in (first, second):
                self._push(
                    SyncTable.SCHEDULE_ENTRIES, SyncOperation.UPSERT,
                    schedule_to_cloud(entry, household_id), household_id, online,
                )
            return [first, second]

        moved = ScheduleEntry(
            id=new_id(),
            recipe_id=source.recipe_id,
            date=target_date,
            meal_type=target_meal_type,
            created_at=format_timestamp(self._clock()),
        )
        self.repo.move_schedule_entry(source.id, moved)
        self._push(
            SyncTable.SCHEDULE_ENTRIES, SyncOperation.DELETE,
            delete_payload(source.id), household_id, online,
        )
        self._push(
            SyncTable.SCHEDULE_ENTRIES, SyncOperation.UPSERT,
            schedule_to_cloud(moved, household_id), household_id, online,
        )
        return [moved]

    # ── Queue and pull ──────────────────────────────────────────

    def _require_remote(self, household_id: Optional[str]) -> RemoteStore:
        if self.remote is None or not self.remote.is_configured:
            raise RemoteNotConfiguredError()
        if not household_id:
            raise SyncError("A household is required to sync")
        return self.remote

    def process_sync_queue(self, household_id: Optional[str]) -> int:
        """Replay queued mutations once; returns how many were flushed."""
        remote = self._require_remote(household_id)
        processor = SyncQueueProcessor(self.repo, remote, self.max_retries)
        return processor.process_sync_queue(household_id)

    def pull_from_cloud(self, household_id: Optional[str]) -> PullResult:
        remote = self._require_remote(household_id)
        return reconcile.pull_from_cloud(self.repo, remote, household_id)
