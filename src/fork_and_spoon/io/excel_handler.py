"""Excel (XLSX) import and export for recipes and the meal plan."""

from pathlib import Path
from typing import Optional

from openpyxl import Workbook, load_workbook

from fork_and_spoon.database.models import (
    Recipe,
    new_id,
    next_timestamp,
    utc_now_iso,
)
from fork_and_spoon.database.repository import Repository
from fork_and_spoon.io.validators import validate_recipe_row

RECIPE_HEADERS = [
    "ID", "Title", "Ingredients", "Instructions", "Tags",
    "Source URL", "Image URL", "Last Cooked", "Created", "Updated",
]
SCHEDULE_HEADERS = ["Date", "Meal", "Recipe", "Recipe ID"]


def _autofit(ws):
    """Approximate column widths from content."""
    for col in ws.columns:
        max_len = max(
            len(line)
            for cell in col
            for line in str(cell.value or "").split("\n")
        )
        ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 40)


def _split(value: str, sep: str) -> list[str]:
    return [part.strip() for part in value.split(sep) if part.strip()]


def export_recipes_excel(repo: Repository, filepath: str | Path) -> int:
    """Export all recipes to an Excel workbook. Returns row count."""
    recipes = repo.get_all_recipes(sort_by="title")
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = "Recipes"
    ws.append(RECIPE_HEADERS)

    # List fields: one line per item, tags comma-separated
    for recipe in recipes:
        ws.append([
            recipe.id,
            recipe.title,
            "\n".join(recipe.ingredients),
            "\n".join(recipe.instructions),
            ", ".join(recipe.tags),
            recipe.source_url or "",
            recipe.image_url or "",
            recipe.last_cooked_date or "",
            recipe.created_at,
            recipe.updated_at,
        ])

    _autofit(ws)
    wb.save(filepath)
    return len(recipes)


def export_schedule_excel(repo: Repository, filepath: str | Path,
                          start_date: Optional[str] = None,
                          end_date: Optional[str] = None) -> int:
    """Export the meal plan (optionally a date range). Returns row count."""
    if start_date and end_date:
        entries = repo.get_schedule_entries(start_date, end_date)
    else:
        entries = repo.get_all_schedule_entries()
    titles = {
        r.id: r.title
        for r in repo.get_recipes_by_ids(e.recipe_id for e in entries if e.recipe_id)
    }
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = "Meal Plan"
    ws.append(SCHEDULE_HEADERS)

    for entry in entries:
        ws.append([
            entry.date,
            entry.meal_type.capitalize(),
            titles.get(entry.recipe_id, "(deleted recipe)"),
            entry.recipe_id,
        ])

    _autofit(ws)
    wb.save(filepath)
    return len(entries)


def import_recipes_excel(
    repo: Repository,
    filepath: str | Path,
    update_existing: bool = False,
) -> dict:
    """Import recipes from Excel. Returns results dict.

    Rows are matched to existing recipes by ID, or by title when the ID
    column is empty.
    """
    filepath = Path(filepath)
    results = {"imported": 0, "updated": 0, "skipped": 0, "errors": []}

    by_title = {r.title.strip().lower(): r for r in repo.get_all_recipes()}

    try:
        wb = load_workbook(filepath, read_only=True)
        ws = wb.active

        rows = list(ws.iter_rows(values_only=True))
        if not rows:
            results["errors"].append("Empty workbook")
            return results

        # Use first row as header
        header = [str(h or "").strip().lower().replace(" ", "_") for h in rows[0]]
        header_map = {
            "name": "title",
            "recipe": "title",
            "directions": "instructions",
            "categories": "tags",
            "last_cooked_date": "last_cooked",
            "url": "source_url",
        }
        header = [header_map.get(h, h) for h in header]

        for row_num, row_data in enumerate(rows[1:], start=2):
            if not any(v not in (None, "") for v in row_data):
                continue
            row = dict(zip(header, [str(v) if v is not None else "" for v in row_data]))

            errors = validate_recipe_row(row, row_num)
            if errors:
                results["errors"].extend(errors)
                results["skipped"] += 1
                continue

            title = row.get("title", "").strip()
            recipe_id = row.get("id", "").strip()
            existing = (repo.get_recipe_by_id(recipe_id) if recipe_id
                        else by_title.get(title.lower()))

            fields = dict(
                title=title,
                ingredients=_split(row.get("ingredients", ""), "\n"),
                instructions=_split(row.get("instructions", ""), "\n"),
                tags=list(dict.fromkeys(_split(row.get("tags", ""), ","))),
                source_url=row.get("source_url", "").strip() or None,
                image_url=row.get("image_url", "").strip() or None,
                last_cooked_date=row.get("last_cooked", "").strip()[:10] or None,
            )

            if existing and update_existing:
                for name, value in fields.items():
                    setattr(existing, name, value)
                existing.updated_at = next_timestamp(existing.updated_at)
                repo.update_recipe(existing)
                results["updated"] += 1
            elif existing:
                results["skipped"] += 1
            else:
                now = utc_now_iso()
                recipe = Recipe(id=recipe_id or new_id(), created_at=now,
                                updated_at=now, **fields)
                repo.insert_recipe(recipe)
                by_title[title.lower()] = recipe
                results["imported"] += 1

        wb.close()
    except Exception as e:
        results["errors"].append(f"File error: {e}")

    return results
