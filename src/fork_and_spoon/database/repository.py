"""Repository layer: all local reads and writes."""

import json
from datetime import datetime
from typing import Callable, Iterable, Optional

from fork_and_spoon.utils.constants import RECIPE_SORT_ORDERS

from .connection import DatabaseConnection
from .models import (
    Recipe,
    RecipeIngredient,
    ScheduleEntry,
    SyncOperation,
    SyncQueueItem,
    SyncTable,
    new_id,
    next_timestamp,
)

_RECIPE_COLUMNS = (
    "id, title, ingredients, instructions, image_url, source_url, "
    "last_cooked_date, tags, created_at, updated_at"
)

_RECIPE_ORDER = {
    "created_at": "created_at DESC",
    "title": "title COLLATE NOCASE ASC",
    # Never-cooked recipes first, then the longest since cooked
    "last_cooked_date": "last_cooked_date IS NOT NULL, last_cooked_date ASC",
}


def _row_to_recipe(row) -> Recipe:
    return Recipe(
        id=row["id"],
        title=row["title"],
        ingredients=json.loads(row["ingredients"] or "[]"),
        instructions=json.loads(row["instructions"] or "[]"),
        image_url=row["image_url"],
        source_url=row["source_url"],
        last_cooked_date=row["last_cooked_date"],
        tags=json.loads(row["tags"] or "[]"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _recipe_params(recipe: Recipe) -> tuple:
    return (
        recipe.id, recipe.title,
        json.dumps(list(recipe.ingredients)),
        json.dumps(list(recipe.instructions)),
        recipe.image_url, recipe.source_url, recipe.last_cooked_date,
        json.dumps(list(recipe.tags)),
        recipe.created_at, recipe.updated_at,
    )


def _row_to_queue_item(row) -> SyncQueueItem:
    return SyncQueueItem(
        id=row["id"],
        table=SyncTable(row["table_name"]),
        operation=SyncOperation(row["operation"]),
        payload=json.loads(row["payload"]),
        timestamp=row["timestamp"],
        retry_count=row["retry_count"],
    )


class Repository:
    """Provides all local store operations for the sync core."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    # ── Recipes ─────────────────────────────────────────────────

    def get_all_recipes(self, sort_by: str = "created_at") -> list[Recipe]:
        if sort_by not in RECIPE_SORT_ORDERS:
            raise ValueError(
                f"Unknown sort order {sort_by!r}; "
                f"expected one of {RECIPE_SORT_ORDERS}"
            )
        rows = self.db.execute(
            f"SELECT {_RECIPE_COLUMNS} FROM recipes "
            f"ORDER BY {_RECIPE_ORDER[sort_by]}"
        )
        return [_row_to_recipe(r) for r in rows]

    def get_recipe_by_id(self, recipe_id: str) -> Optional[Recipe]:
        rows = self.db.execute(
            f"SELECT {_RECIPE_COLUMNS} FROM recipes WHERE id = ?",
            (recipe_id,),
        )
        return _row_to_recipe(rows[0]) if rows else None

    def get_recipes_by_ids(self, recipe_ids: Iterable[str]) -> list[Recipe]:
        ids = list(dict.fromkeys(recipe_ids))
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        rows = self.db.execute(
            f"SELECT {_RECIPE_COLUMNS} FROM recipes WHERE id IN ({placeholders})",
            tuple(ids),
        )
        return [_row_to_recipe(r) for r in rows]

    def get_recipe_ids(self) -> set[str]:
        return {r["id"] for r in self.db.execute("SELECT id FROM recipes")}

    def search_recipes(self, query: str) -> list[Recipe]:
        """Case-insensitive match on title or any ingredient line."""
        needle = (query or "").strip().lower()
        recipes = self.get_all_recipes()
        if not needle:
            return recipes
        return [
            r for r in recipes
            if needle in r.title.lower()
            or any(needle in line.lower() for line in r.ingredients)
        ]

    def filter_recipes_by_tag(self, tag: str) -> list[Recipe]:
        return [r for r in self.get_all_recipes() if tag in r.tags]

    def get_all_tags(self) -> list[str]:
        tags = set()
        for r in self.get_all_recipes():
            tags.update(r.tags)
        return sorted(tags)

    def recipe_count(self) -> int:
        return self.db.scalar("SELECT COUNT(*) FROM recipes") or 0

    def insert_recipe(self, recipe: Recipe):
        with self.db.get_connection() as conn:
            conn.execute(
                f"INSERT INTO recipes ({_RECIPE_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                _recipe_params(recipe),
            )

    def put_recipe(self, recipe: Recipe):
        """Insert or fully replace a recipe row."""
        with self.db.get_connection() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO recipes ({_RECIPE_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                _recipe_params(recipe),
            )

    def update_recipe(self, recipe: Recipe) -> bool:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE recipes SET title = ?, ingredients = ?, "
                "instructions = ?, image_url = ?, source_url = ?, "
                "last_cooked_date = ?, tags = ?, created_at = ?, "
                "updated_at = ? WHERE id = ?",
                _recipe_params(recipe)[1:] + (recipe.id,),
            )
            return cursor.rowcount > 0

    def delete_recipe(self, recipe_id: str) -> bool:
        """Delete a recipe and its structured ingredients.

        Schedule entries pointing at it are left alone.
        """
        with self.db.get_connection() as conn:
            conn.execute(
                "DELETE FROM recipe_ingredients WHERE recipe_id = ?",
                (recipe_id,),
            )
            cursor = conn.execute(
                "DELETE FROM recipes WHERE id = ?", (recipe_id,)
            )
            return cursor.rowcount > 0

    def delete_recipes(self, recipe_ids: Iterable[str]) -> list[str]:
        """Delete several recipes in one transaction; returns the ids removed."""
        deleted = []
        with self.db.get_connection(immediate=True) as conn:
            for recipe_id in dict.fromkeys(recipe_ids):
                conn.execute(
                    "DELETE FROM recipe_ingredients WHERE recipe_id = ?",
                    (recipe_id,),
                )
                cursor = conn.execute(
                    "DELETE FROM recipes WHERE id = ?", (recipe_id,)
                )
                if cursor.rowcount:
                    deleted.append(recipe_id)
        return deleted

    def add_tag_to_recipes(self, recipe_ids: Iterable[str], tag: str,
                           now: Optional[datetime] = None) -> list[Recipe]:
        """Add ``tag`` to each recipe that lacks it, in one transaction.

        Returns the recipes that changed, with refreshed ``updated_at``.
        """
        changed = []
        with self.db.get_connection(immediate=True) as conn:
            for recipe_id in dict.fromkeys(recipe_ids):
                row = conn.execute(
                    f"SELECT {_RECIPE_COLUMNS} FROM recipes WHERE id = ?",
                    (recipe_id,),
                ).fetchone()
                if row is None:
                    continue
                recipe = _row_to_recipe(row)
                if tag in recipe.tags:
                    continue
                recipe.tags = recipe.tags + [tag]
                recipe.updated_at = next_timestamp(recipe.updated_at, now)
                conn.execute(
                    "UPDATE recipes SET tags = ?, updated_at = ? WHERE id = ?",
                    (json.dumps(recipe.tags), recipe.updated_at, recipe.id),
                )
                changed.append(recipe)
        return changed

    def apply_remote_recipes(self, incoming: Iterable[Recipe],
                             is_newer: Callable[[str, str], bool]) -> tuple[int, int, int]:
        """Merge the household's full recipe set in one write transaction.

        Local timestamps are read under the write lock, so a local edit
        committed after the remote fetch is still compared before being
        replaced. A local recipe is replaced only when
        ``is_newer(remote_updated_at, local_updated_at)``; local recipes
        absent from ``incoming`` are deleted.
        Returns (inserted, updated, deleted).
        """
        incoming = list(incoming)
        remote_ids = {r.id for r in incoming}
        inserted = updated = 0
        upserts = []
        with self.db.get_connection(immediate=True) as conn:
            local = {
                row["id"]: row["updated_at"]
                for row in conn.execute("SELECT id, updated_at FROM recipes")
            }
            for recipe in incoming:
                if recipe.id not in local:
                    inserted += 1
                elif is_newer(recipe.updated_at, local[recipe.id]):
                    updated += 1
                else:
                    continue
                upserts.append(recipe)
            conn.executemany(
                f"INSERT OR REPLACE INTO recipes ({_RECIPE_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [_recipe_params(r) for r in upserts],
            )
            deletions = [rid for rid in local if rid not in remote_ids]
            for recipe_id in deletions:
                conn.execute(
                    "DELETE FROM recipe_ingredients WHERE recipe_id = ?",
                    (recipe_id,),
                )
                conn.execute("DELETE FROM recipes WHERE id = ?", (recipe_id,))
        return inserted, updated, len(deletions)

    # ── Schedule ────────────────────────────────────────────────

    def get_schedule_entry(self, entry_id: str) -> Optional[ScheduleEntry]:
        rows = self.db.execute(
            "SELECT * FROM schedule_entries WHERE id = ?", (entry_id,)
        )
        return ScheduleEntry(**dict(rows[0])) if rows else None

    def get_entry_for_slot(self, date: str,
                           meal_type: str) -> Optional[ScheduleEntry]:
        rows = self.db.execute(
            "SELECT * FROM schedule_entries WHERE date = ? AND meal_type = ?",
            (date, meal_type),
        )
        return ScheduleEntry(**dict(rows[0])) if rows else None

    def get_schedule_entries(self, start_date: str,
                             end_date: str) -> list[ScheduleEntry]:
        """Entries between two dates, both ends inclusive."""
        rows = self.db.execute(
            "SELECT * FROM schedule_entries WHERE date BETWEEN ? AND ? "
            "ORDER BY date, meal_type",
            (start_date, end_date),
        )
        return [ScheduleEntry(**dict(r)) for r in rows]

    def get_entries_for_date(self, date: str) -> list[ScheduleEntry]:
        rows = self.db.execute(
            "SELECT * FROM schedule_entries WHERE date = ? ORDER BY meal_type",
            (date,),
        )
        return [ScheduleEntry(**dict(r)) for r in rows]

    def get_entries_by_recipe(self, recipe_id: str) -> list[ScheduleEntry]:
        rows = self.db.execute(
            "SELECT * FROM schedule_entries WHERE recipe_id = ? ORDER BY date",
            (recipe_id,),
        )
        return [ScheduleEntry(**dict(r)) for r in rows]

    def get_all_schedule_entries(self) -> list[ScheduleEntry]:
        rows = self.db.execute(
            "SELECT * FROM schedule_entries ORDER BY date, meal_type"
        )
        return [ScheduleEntry(**dict(r)) for r in rows]

    def schedule_entry_count(self) -> int:
        return self.db.scalar("SELECT COUNT(*) FROM schedule_entries") or 0

    def place_schedule_entry(self, entry: ScheduleEntry) -> Optional[ScheduleEntry]:
        """Put ``entry`` in its slot, removing whatever was there.

        Returns the displaced entry, if any.
        """
        with self.db.get_connection(immediate=True) as conn:
            row = conn.execute(
                "SELECT * FROM schedule_entries WHERE date = ? AND meal_type = ?",
                (entry.date, entry.meal_type),
            ).fetchone()
            displaced = ScheduleEntry(**dict(row)) if row else None
            if displaced is not None:
                conn.execute(
                    "DELETE FROM schedule_entries WHERE id = ?", (displaced.id,)
                )
            conn.execute(
                "INSERT OR REPLACE INTO schedule_entries "
                "(id, recipe_id, date, meal_type, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (entry.id, entry.recipe_id, entry.date,
                 entry.meal_type, entry.created_at),
            )
        if displaced is not None and displaced.id == entry.id:
            return None
        return displaced

    def delete_schedule_entry(self, entry_id: str) -> bool:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM schedule_entries WHERE id = ?", (entry_id,)
            )
            return cursor.rowcount > 0

    def swap_schedule_recipes(self, first_id: str,
                              second_id: str) -> tuple[ScheduleEntry, ScheduleEntry]:
        """Exchange the recipes of two entries, keeping both identities."""
        with self.db.get_connection(immediate=True) as conn:
            rows = {
                r["id"]: ScheduleEntry(**dict(r))
                for r in conn.execute(
                    "SELECT * FROM schedule_entries WHERE id IN (?, ?)",
                    (first_id, second_id),
                )
            }
            first, second = rows[first_id], rows[second_id]
            first.recipe_id, second.recipe_id = second.recipe_id, first.recipe_id
            for entry in (first, second):
                conn.execute(
                    "UPDATE schedule_entries SET recipe_id = ? WHERE id = ?",
                    (entry.recipe_id, entry.id),
                )
        return first, second

    def move_schedule_entry(self, source_id: str, target: ScheduleEntry):
        """Replace entry ``source_id`` with ``target`` in an empty slot."""
        with self.db.get_connection(immediate=True) as conn:
            conn.execute(
                "DELETE FROM schedule_entries WHERE id = ?", (source_id,)
            )
            conn.execute(
                "INSERT INTO schedule_entries "
                "(id, recipe_id, date, meal_type, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (target.id, target.recipe_id, target.date,
                 target.meal_type, target.created_at),
            )

    def insert_schedule_entries(self, entries: Iterable[ScheduleEntry]) -> tuple[int, int]:
        """Insert entries whose id is not present locally.

        Existing ids are left untouched. An entry whose slot is already
        taken by a different local entry is not inserted.
        Returns (inserted, slot_conflicts).
        """
        inserted = conflicts = 0
        with self.db.get_connection(immediate=True) as conn:
            for entry in entries:
                exists = conn.execute(
                    "SELECT 1 FROM schedule_entries WHERE id = ?", (entry.id,)
                ).fetchone()
                if exists:
                    continue
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO schedule_entries "
                    "(id, recipe_id, date, meal_type, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (entry.id, entry.recipe_id, entry.date,
                     entry.meal_type, entry.created_at),
                )
                if cursor.rowcount:
                    inserted += 1
                else:
                    conflicts += 1
        return inserted, conflicts

    # ── Recipe ingredients ──────────────────────────────────────

    def save_recipe_ingredients(self, recipe_id: str,
                                ingredients: Iterable[RecipeIngredient]) -> list[RecipeIngredient]:
        """Replace the structured ingredient lines of a recipe.

        Lines are stored in the order given.
        """
        saved = []
        with self.db.get_connection(immediate=True) as conn:
            conn.execute(
                "DELETE FROM recipe_ingredients WHERE recipe_id = ?",
                (recipe_id,),
            )
            for position, ing in enumerate(ingredients):
                ing.id = ing.id or new_id()
                ing.recipe_id = recipe_id
                ing.sort_order = position
                conn.execute(
                    "INSERT INTO recipe_ingredients "
                    "(id, recipe_id, quantity, quantity_max, unit, name, "
                    "raw_text, sort_order) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (ing.id, ing.recipe_id, ing.quantity, ing.quantity_max,
                     ing.unit, ing.name, ing.raw_text, ing.sort_order),
                )
                saved.append(ing)
        return saved

    def get_recipe_ingredients(self, recipe_id: str) -> list[RecipeIngredient]:
        rows = self.db.execute(
            "SELECT * FROM recipe_ingredients WHERE recipe_id = ? "
            "ORDER BY sort_order",
            (recipe_id,),
        )
        return [RecipeIngredient(**dict(r)) for r in rows]

    def get_all_recipe_ingredients(self) -> list[RecipeIngredient]:
        rows = self.db.execute(
            "SELECT * FROM recipe_ingredients ORDER BY recipe_id, sort_order"
        )
        return [RecipeIngredient(**dict(r)) for r in rows]

    # ── Sync queue ──────────────────────────────────────────────

    def enqueue(self, item: SyncQueueItem):
        """Append one pending mutation (a single atomic insert)."""
        with self.db.get_connection() as conn:
            conn.execute(
                "INSERT INTO sync_queue "
                "(id, table_name, operation, payload, timestamp, retry_count) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (item.id, SyncTable(item.table).value,
                 SyncOperation(item.operation).value,
                 json.dumps(item.payload), item.timestamp, item.retry_count),
            )

    def get_queue_items(self) -> list[SyncQueueItem]:
        """All pending mutations, oldest first."""
        rows = self.db.execute(
            "SELECT * FROM sync_queue ORDER BY timestamp, rowid"
        )
        return [_row_to_queue_item(r) for r in rows]

    def get_queue_item(self, item_id: str) -> Optional[SyncQueueItem]:
        rows = self.db.execute(
            "SELECT * FROM sync_queue WHERE id = ?", (item_id,)
        )
        return _row_to_queue_item(rows[0]) if rows else None

    def delete_queue_item(self, item_id: str):
        with self.db.get_connection() as conn:
            conn.execute("DELETE FROM sync_queue WHERE id = ?", (item_id,))

    def increment_retry_count(self, item_id: str) -> int:
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE sync_queue SET retry_count = retry_count + 1 "
                "WHERE id = ?",
                (item_id,),
            )
            row = conn.execute(
                "SELECT retry_count FROM sync_queue WHERE id = ?", (item_id,)
            ).fetchone()
            return row["retry_count"] if row else 0

    def queue_length(self) -> int:
        return self.db.scalar("SELECT COUNT(*) FROM sync_queue") or 0

    def clear_queue(self):
        with self.db.get_connection() as conn:
            conn.execute("DELETE FROM sync_queue")

    # ── Bulk replace ────────────────────────────────────────────

    def restore_snapshot(self, recipes: Iterable[Recipe],
                         schedule_entries: Iterable[ScheduleEntry]):
        """Clear recipes and schedule entries, then refill them exactly."""
        with self.db.get_connection(immediate=True) as conn:
            conn.execute("DELETE FROM schedule_entries")
            conn.execute("DELETE FROM recipes")
            self._insert_all(conn, recipes, schedule_entries)

    def replace_library(self, recipes: Iterable[Recipe],
                        schedule_entries: Iterable[ScheduleEntry],
                        ingredients: Iterable[RecipeIngredient] = ()):
        """Clear recipes, schedule and ingredient lines, then refill them."""
        with self.db.get_connection(immediate=True) as conn:
            conn.execute("DELETE FROM recipe_ingredients")
            conn.execute("DELETE FROM schedule_entries")
            conn.execute("DELETE FROM recipes")
            self._insert_all(conn, recipes, schedule_entries)
            self._insert_ingredients(conn, ingredients)

    def replace_recipes(self, recipes: Iterable[Recipe]):
        """Clear recipes and their ingredient lines, then insert ``recipes``.

        Schedule entries are left alone.
        """
        with self.db.get_connection(immediate=True) as conn:
            conn.execute("DELETE FROM recipe_ingredients")
            conn.execute("DELETE FROM recipes")
            self._insert_all(conn, recipes, ())

    def add_missing(self, recipes: Iterable[Recipe],
                    schedule_entries: Iterable[ScheduleEntry] = (),
                    ingredients: Iterable[RecipeIngredient] = ()) -> tuple[int, int]:
        """Insert rows whose ids are absent; returns (recipes, entries) added."""
        added_recipes = added_entries = 0
        with self.db.get_connection(immediate=True) as conn:
            for recipe in recipes:
                cursor = conn.execute(
                    f"INSERT OR IGNORE INTO recipes ({_RECIPE_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    _recipe_params(recipe),
                )
                added_recipes += cursor.rowcount
            for entry in schedule_entries:
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO schedule_entries "
                    "(id, recipe_id, date, meal_type, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (entry.id, entry.recipe_id, entry.date,
                     entry.meal_type, entry.created_at),
                )
                added_entries += cursor.rowcount
            self._insert_ingredients(conn, ingredients, ignore_existing=True)
        return added_recipes, added_entries

    @staticmethod
    def _insert_all(conn, recipes, schedule_entries):
        conn.executemany(
            f"INSERT INTO recipes ({_RECIPE_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [_recipe_params(r) for r in recipes],
        )
        conn.executemany(
            "INSERT INTO schedule_entries "
            "(id, recipe_id, date, meal_type, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            [(e.id, e.recipe_id, e.date, e.meal_type, e.created_at)
             for e in schedule_entries],
        )

    @staticmethod
    def _insert_ingredients(conn, ingredients, ignore_existing=False):
        verb = "INSERT OR IGNORE" if ignore_existing else "INSERT"
        conn.executemany(
            f"{verb} INTO recipe_ingredients "
            "(id, recipe_id, quantity, quantity_max, unit, name, "
            "raw_text, sort_order) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [(i.id or new_id(), i.recipe_id, i.quantity, i.quantity_max,
              i.unit, i.name, i.raw_text, i.sort_order) for i in ingredients],
        )
