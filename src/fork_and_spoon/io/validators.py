"""Validation rules for import data."""

from datetime import date

MAX_TITLE_LENGTH = 200


def _is_iso_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def validate_recipe_row(row: dict, row_num: int) -> list[str]:
    """Validate a single row of recipe import data. Returns list of error strings."""
    errors = []

    title = row.get("title", "").strip()
    if not title:
        errors.append(f"Row {row_num}: title is required")
    elif len(title) > MAX_TITLE_LENGTH:
        errors.append(f"Row {row_num}: title exceeds {MAX_TITLE_LENGTH} chars")

    cooked = row.get("last_cooked", "").strip()
    if cooked and not _is_iso_date(cooked[:10]):
        errors.append(f"Row {row_num}: last_cooked must be a YYYY-MM-DD date")

    for column in ("source_url", "image_url"):
        url = row.get(column, "").strip()
        if url and not url.startswith(("http://", "https://")):
            errors.append(f"Row {row_num}: {column} must be an http(s) URL")

    return errors
