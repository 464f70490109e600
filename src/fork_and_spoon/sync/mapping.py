"""Conversion between local records and remote (Supabase) rows.

Remote rows use snake_case foreign keys and carry an explicit
``household_id``. Local rows have no household.
"""

from typing import Optional

from fork_and_spoon.database.models import Recipe, ScheduleEntry


def recipe_to_cloud(recipe: Recipe, household_id: str,
                    user_id: Optional[str] = None) -> dict:
    row = {
        "id": recipe.id,
        "household_id": household_id,
        "title": recipe.title,
        "ingredients": list(recipe.ingredients),
        "instructions": list(recipe.instructions),
        "image_url": recipe.image_url or None,
        "source_url": recipe.source_url or None,
        "last_cooked_date": recipe.last_cooked_date or None,
        "tags": list(recipe.tags or []),
        "created_at": recipe.created_at,
        "updated_at": recipe.updated_at,
    }
    # Omitted rather than nulled so an upsert never clears the author
    if user_id:
        row["created_by"] = user_id
    return row


def cloud_to_recipe(row: dict) -> Recipe:
    return Recipe(
        id=row["id"],
        title=row.get("title") or "",
        ingredients=list(row.get("ingredients") or []),
        instructions=list(row.get("instructions") or []),
        image_url=row.get("image_url") or None,
        source_url=row.get("source_url") or None,
        last_cooked_date=row.get("last_cooked_date") or None,
        tags=list(row.get("tags") or []),
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or row.get("created_at") or "",
    )


def schedule_to_cloud(entry: ScheduleEntry, household_id: str) -> dict:
    return {
        "id": entry.id,
        "household_id": household_id,
        "recipe_id": entry.recipe_id or None,
        "date": entry.date,
        "meal_type": entry.meal_type,
        "created_at": entry.created_at,
    }


def cloud_to_schedule(row: dict) -> ScheduleEntry:
    return ScheduleEntry(
        id=row["id"],
        recipe_id=row.get("recipe_id") or "",
        date=row["date"],
        meal_type=row["meal_type"],
        created_at=row.get("created_at") or "",
    )


def delete_payload(record_id: str) -> dict:
    """Queue payload for a delete: only the primary key is needed."""
    return {"id": record_id}
