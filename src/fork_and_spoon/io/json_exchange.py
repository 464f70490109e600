"""JSON backup and restore of the local library.

The native backup format (version 2) also reads backups written under
the old "Meal Organizer" name. Paprika and Recipe Keeper exports import
as recipes only. Imports write to the local store and queue nothing for
the remote store.
"""

import gzip
import io
import json
import logging
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from fork_and_spoon.database.models import (
    Recipe,
    RecipeIngredient,
    ScheduleEntry,
    new_id,
    utc_now_iso,
)
from fork_and_spoon.database.repository import Repository
from fork_and_spoon.errors import ImportFormatError
from fork_and_spoon.utils.constants import (
    APP_NAME,
    APP_VERSION,
    EXPORT_VERSION,
    IMPORT_MODES,
    LEGACY_APP_NAME,
)

logger = logging.getLogger(__name__)

_APP_NAMES = (APP_NAME, LEGACY_APP_NAME)


@dataclass
class ImportPreview:
    valid: bool
    format: str
    version: int = 0
    exported_at: str = ""
    recipe_count: int = 0
    schedule_entry_count: int = 0
    recipe_ingredient_count: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class ImportResult:
    format: str
    mode: str
    recipes_imported: int = 0
    schedule_entries_imported: int = 0


# ── Native record shapes (camelCase) ────────────────────────────

def _recipe_to_json(r: Recipe) -> dict:
    data = {
        "id": r.id,
        "title": r.title,
        "ingredients": r.ingredients,
        "instructions": r.instructions,
        "tags": r.tags,
        "createdAt": r.created_at,
        "updatedAt": r.updated_at,
    }
    if r.image_url:
        data["imageUrl"] = r.image_url
    if r.source_url:
        data["sourceUrl"] = r.source_url
    if r.last_cooked_date:
        data["lastCookedDate"] = r.last_cooked_date
    return data


def _recipe_from_json(d: dict) -> Recipe:
    created = d.get("createdAt") or utc_now_iso()
    return Recipe(
        id=d["id"],
        title=d["title"],
        ingredients=list(d.get("ingredients") or []),
        instructions=list(d.get("instructions") or []),
        image_url=d.get("imageUrl"),
        source_url=d.get("sourceUrl"),
        last_cooked_date=d.get("lastCookedDate"),
        tags=list(d.get("tags") or []),
        created_at=created,
        updated_at=d.get("updatedAt") or created,
    )


def _entry_to_json(e: ScheduleEntry) -> dict:
    return {
        "id": e.id,
        "recipeId": e.recipe_id,
        "date": e.date,
        "mealType": e.meal_type,
        "createdAt": e.created_at,
    }


def _entry_from_json(d: dict) -> ScheduleEntry:
    return ScheduleEntry(
        id=d["id"],
        recipe_id=d.get("recipeId") or "",
        date=d["date"],
        meal_type=d["mealType"],
        created_at=d.get("createdAt") or utc_now_iso(),
    )


def _ingredient_to_json(i: RecipeIngredient) -> dict:
    return {
        "id": i.id,
        "recipeId": i.recipe_id,
        "quantity": i.quantity,
        "quantityMax": i.quantity_max,
        "unit": i.unit or "",
        "name": i.name,
        "rawText": i.raw_text,
        "sortOrder": i.sort_order,
    }


def _ingredient_from_json(d: dict) -> RecipeIngredient:
    return RecipeIngredient(
        id=d.get("id") or new_id(),
        recipe_id=d["recipeId"],
        quantity=d.get("quantity"),
        quantity_max=d.get("quantityMax"),
        unit=d.get("unit") or None,
        name=d.get("name") or "",
        raw_text=d.get("rawText") or "",
        sort_order=d.get("sortOrder") or 0,
    )


# ── Export ──────────────────────────────────────────────────────

def export_all_data(repo: Repository) -> str:
    """Serialize recipes, schedule and ingredient lines as a backup."""
    recipes = repo.get_all_recipes()
    entries = repo.get_all_schedule_entries()
    ingredients = repo.get_all_recipe_ingredients()
    tags = {t for r in recipes for t in r.tags}

    export = {
        "version": EXPORT_VERSION,
        "exportedAt": utc_now_iso(),
        "appName": APP_NAME,
        "appVersion": APP_VERSION,
        "stats": {
            "recipeCount": len(recipes),
            "scheduleEntryCount": len(entries),
            "recipeIngredientCount": len(ingredients),
            "tagCount": len(tags),
        },
        "data": {
            "recipes": [_recipe_to_json(r) for r in recipes],
            "scheduleEntries": [_entry_to_json(e) for e in entries],
            "recipeIngredients": [_ingredient_to_json(i) for i in ingredients],
        },
    }
    return json.dumps(export, indent=2)


def export_to_file(repo: Repository, filepath: str | Path) -> Path:
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(export_all_data(repo), encoding="utf-8")
    return path


# ── Format detection ────────────────────────────────────────────

def detect_import_format(content: str, filename: Optional[str] = None) -> str:
    """One of "meal-organizer", "paprika", "recipe-keeper" or "unknown"."""
    name = (filename or "").lower()
    if name.endswith(".paprikarecipes"):
        return "paprika"
    if name.endswith((".xml", ".recipekeeperxml")):
        return "recipe-keeper"

    try:
        parsed = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        text = (content or "").strip()
        if text.startswith("<?xml") or "<RecipeKeeper>" in text:
            return "recipe-keeper"
        return "unknown"

    if isinstance(parsed, dict) and parsed.get("appName") in _APP_NAMES:
        return "meal-organizer"
    if (isinstance(parsed, list) and parsed and isinstance(parsed[0], dict)
            and "directions" in parsed[0]):
        return "paprika"
    if isinstance(parsed, dict) and isinstance(parsed.get("recipes"), list):
        first = parsed["recipes"][0] if parsed["recipes"] else {}
        if isinstance(first, dict) and "recipeSource" in first:
            return "recipe-keeper"
    return "unknown"


# ── External formats ────────────────────────────────────────────

def _lines(value) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value if str(v).strip()]
    if isinstance(value, str):
        return [line for line in value.split("\n") if line.strip()]
    return []


def _new_external_recipe(title: str, ingredients, instructions,
                         source_url=None, image_url=None, tags=None) -> Recipe:
    now = utc_now_iso()
    return Recipe(
        id=new_id(),
        title=title or "Untitled Recipe",
        ingredients=_lines(ingredients),
        instructions=_lines(instructions),
        image_url=image_url or None,
        source_url=source_url or None,
        tags=[t for t in (tags or []) if t],
        created_at=now,
        updated_at=now,
    )


def parse_paprika_recipes(content: str) -> list[Recipe]:
    """Recipes from Paprika JSON (one recipe or a list); categories become tags."""
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return []
    items = data if isinstance(data, list) else [data]
    return [
        _new_external_recipe(
            r["name"], r.get("ingredients"), r.get("directions"),
            source_url=r.get("source_url") or r.get("source"),
            image_url=r.get("photo_url"),
            tags=r.get("categories") or [],
        )
        for r in items
        if isinstance(r, dict) and r.get("name")
    ]


def read_paprika_archive(data: bytes) -> str:
    """Unpack a .paprikarecipes archive into a JSON list of recipes.

    The archive is a zip of gzipped JSON files, one per recipe.
    """
    recipes = []
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        for member in archive.namelist():
            raw = archive.read(member)
            if raw[:2] == b"\x1f\x8b":
                raw = gzip.decompress(raw)
            recipes.append(json.loads(raw.decode("utf-8")))
    return json.dumps(recipes)


def parse_recipe_keeper_recipes(content: str) -> list[Recipe]:
    """Recipes from a Recipe Keeper JSON or XML export."""
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        data = None

    if data is not None:
        items = data.get("recipes", []) if isinstance(data, dict) else data
        recipes = []
        for r in items if isinstance(items, list) else []:
            if not isinstance(r, dict):
                continue
            title = r.get("name") or r.get("recipeName")
            if not title:
                continue
            tags = r.get("categories")
            if not isinstance(tags, list):
                tags = [t.strip() for t in str(r.get("recipeCategory") or "").split(",")]
            recipes.append(_new_external_recipe(
                title, r.get("ingredients"), r.get("directions"),
                source_url=r.get("source_url") or r.get("recipeSource"),
                tags=tags,
            ))
        return recipes

    try:
        root = ET.fromstring(content)
    except ET.ParseError:
        return []

    def text_of(el, *names):
        for name in names:
            child = el.find(name)
            if child is not None and child.text and child.text.strip():
                return child.text.strip()
        return ""

    recipes = []
    elements = [root] if root.tag.lower() == "recipe" else []
    elements += root.iter("Recipe")
    elements += root.iter("recipe")
    seen = set()
    for el in elements:
        if id(el) in seen:
            continue
        seen.add(id(el))
        title = text_of(el, "Name", "name", "RecipeName")
        if not title:
            continue
        recipes.append(_new_external_recipe(
            title,
            text_of(el, "Ingredients"),
            text_of(el, "Directions"),
            source_url=text_of(el, "Source", "SourceUrl"),
            tags=[t.strip() for t in text_of(el, "Categories").split(",")],
        ))
    return recipes


# ── Preview and import ──────────────────────────────────────────

def preview_import(content: str, filename: Optional[str] = None) -> ImportPreview:
    """Validate a file without touching the store."""
    fmt = detect_import_format(content, filename)

    if fmt == "unknown":
        return ImportPreview(
            valid=False, format=fmt,
            errors=["Unrecognised file format. Supported: Fork and Spoon JSON, "
                    "Paprika, Recipe Keeper."],
        )

    if fmt in ("paprika", "recipe-keeper"):
        parser = parse_paprika_recipes if fmt == "paprika" else parse_recipe_keeper_recipes
        recipes = parser(content)
        label = "Paprika" if fmt == "paprika" else "Recipe Keeper"
        return ImportPreview(
            valid=bool(recipes), format=fmt, recipe_count=len(recipes),
            errors=[] if recipes else [f"Could not parse any recipes from this {label} file."],
        )

    try:
        data = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return ImportPreview(
            valid=False, format=fmt,
            errors=["Invalid JSON file. Please select a valid backup file."],
        )

    errors = []
    version = data.get("version")
    if not isinstance(version, int) or isinstance(version, bool) or not version:
        errors.append("Missing or invalid version field.")
        version = 0
    elif version > EXPORT_VERSION:
        errors.append(
            f"Backup version {version} is newer than this app supports "
            f"(v{EXPORT_VERSION}). Please update the app."
        )
    if data.get("appName") not in _APP_NAMES:
        errors.append("This file is not a Fork and Spoon backup.")

    inner = data.get("data")
    if not isinstance(inner, dict):
        errors.append("Missing data section in backup file.")
        return ImportPreview(
            valid=False, format=fmt, version=version,
            exported_at=data.get("exportedAt") or "", errors=errors,
        )

    recipes = inner.get("recipes")
    entries = inner.get("scheduleEntries")
    ingredients = inner.get("recipeIngredients")
    if not isinstance(recipes, list):
        errors.append("Invalid or missing recipes array.")
    if not isinstance(entries, list):
        errors.append("Invalid or missing schedule entries array.")
    if isinstance(recipes, list) and any(
        not isinstance(r, dict) or not r.get("id") or not r.get("title")
        for r in recipes
    ):
        errors.append("Recipe data appears malformed (missing id or title).")

    return ImportPreview(
        valid=not errors,
        format=fmt,
        version=version,
        exported_at=data.get("exportedAt") or "",
        recipe_count=len(recipes) if isinstance(recipes, list) else 0,
        schedule_entry_count=len(entries) if isinstance(entries, list) else 0,
        recipe_ingredient_count=len(ingredients) if isinstance(ingredients, list) else 0,
        errors=errors,
    )


def import_data(repo: Repository, content: str, mode: str = "replace",
                filename: Optional[str] = None) -> ImportResult:
    """Restore a backup or import external recipes.

    ``replace`` clears the affected tables first; ``merge`` only adds
    records whose id (or, for external formats, title) is not present.
    """
    if mode not in IMPORT_MODES:
        raise ValueError(f"Unknown import mode {mode!r}; expected one of {IMPORT_MODES}")

    preview = preview_import(content, filename)
    if not preview.valid:
        raise ImportFormatError(
            f"Invalid import: {', '.join(preview.errors)}", errors=preview.errors
        )

    if preview.format in ("paprika", "recipe-keeper"):
        parser = (parse_paprika_recipes if preview.format == "paprika"
                  else parse_recipe_keeper_recipes)
        return _import_external(repo, parser(content), mode, preview.format)

    data = json.loads(content)["data"]
    try:
        recipes = [_recipe_from_json(r) for r in data["recipes"]]
        entries = [_entry_from_json(e) for e in data["scheduleEntries"]]
        ingredients = [
            _ingredient_from_json(i) for i in data.get("recipeIngredients") or []
        ]
    except (KeyError, TypeError) as e:
        raise ImportFormatError(f"Invalid import: malformed record ({e})") from e

    if mode == "replace":
        repo.replace_library(recipes, entries, ingredients)
        result = ImportResult(preview.format, mode, len(recipes), len(entries))
    else:
        added_recipes, added_entries = repo.add_missing(recipes, entries, ingredients)
        result = ImportResult(preview.format, mode, added_recipes, added_entries)

    logger.info(
        "Imported %d recipes and %d schedule entries (%s, %s)",
        result.recipes_imported, result.schedule_entries_imported,
        result.format, mode,
    )
    return result


def _import_external(repo: Repository, recipes: list[Recipe], mode: str,
                     fmt: str) -> ImportResult:
    if mode == "replace":
        repo.replace_recipes(recipes)
        imported = len(recipes)
    else:
        # Generated ids never match, so dedupe by title
        titles = {r.title for r in repo.get_all_recipes()}
        fresh = []
        for recipe in recipes:
            if recipe.title not in titles:
                titles.add(recipe.title)
                fresh.append(recipe)
        imported, _ = repo.add_missing(fresh)
    logger.info("Imported %d %s recipes (%s)", imported, fmt, mode)
    return ImportResult(fmt, mode, imported, 0)


def import_file(repo: Repository, filepath: str | Path,
                mode: str = "replace") -> ImportResult:
    """Import from a file on disk, unpacking Paprika archives."""
    path = Path(filepath)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise ImportFormatError(f"File error: {e}") from e
    if zipfile.is_zipfile(io.BytesIO(raw)):
        try:
            content = read_paprika_archive(raw)
        except (zipfile.BadZipFile, json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ImportFormatError(f"Invalid Paprika archive: {e}") from e
        return import_data(repo, content, mode, filename="import.paprikarecipes")
    try:
        content = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ImportFormatError(f"File is not UTF-8 text: {e}") from e
    return import_data(repo, content, mode, filename=path.name)
