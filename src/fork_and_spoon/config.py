"""Application configuration: loads .env, then overrides from settings.json."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for session and sync state
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"

# The local store keeps its legacy name so existing installs are never orphaned
LOCAL_STORE_NAME = "MealOrganizerDB"


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file."""
    if _SETTINGS_FILE.exists():
        try:
            return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides."""

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT
    DATA_DIR: Path = Path(
        os.getenv("DATA_DIR", str(_PROJECT_ROOT / "data"))
    )
    DATABASE_PATH: Path = Path(
        os.getenv(
            "DATABASE_PATH",
            str(DATA_DIR / f"{LOCAL_STORE_NAME}.sqlite3"),
        )
    )
    BACKUP_PATH: Path = Path(
        os.getenv("DATABASE_BACKUP_PATH", str(DATA_DIR / "backups"))
    )
    # Migration status and snapshot live outside the SQLite file
    MIGRATION_STATE_DIR: Path = Path(
        os.getenv("MIGRATION_STATE_DIR", str(DATA_DIR / "migration"))
    )

    # Supabase (settings.json overrides .env)
    SUPABASE_URL: str = _runtime.get(
        "supabase_url",
        os.getenv("SUPABASE_URL", ""),
    )
    SUPABASE_ANON_KEY: str = _runtime.get(
        "supabase_anon_key",
        os.getenv("SUPABASE_ANON_KEY", ""),
    )

    # Session: which household this device syncs with
    HOUSEHOLD_ID: str = _runtime.get("household_id", "")
    USER_ID: str = _runtime.get("user_id", "")

    # Sync
    LAST_SYNC_TIMESTAMP: str = _runtime.get("last_sync_timestamp", "")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_TO_FILE: bool = _env_flag("LOG_TO_FILE")

    @classmethod
    def is_supabase_configured(cls) -> bool:
        """True when both the project URL and the anon key are set."""
        return bool(cls.SUPABASE_URL and cls.SUPABASE_ANON_KEY)

    @classmethod
    def update_supabase_settings(cls, url: str, anon_key: str):
        """Update remote credentials at runtime and persist to disk."""
        cls.SUPABASE_URL = url
        cls.SUPABASE_ANON_KEY = anon_key

        settings = _load_settings()
        settings["supabase_url"] = url
        settings["supabase_anon_key"] = anon_key
        _save_settings(settings)

    @classmethod
    def update_session(cls, household_id: str, user_id: str):
        """Remember the signed-in user and their household.

        Pass empty strings to sign out.
        """
        cls.HOUSEHOLD_ID = household_id or ""
        cls.USER_ID = user_id or ""

        settings = _load_settings()
        settings["household_id"] = cls.HOUSEHOLD_ID
        settings["user_id"] = cls.USER_ID
        _save_settings(settings)

    @classmethod
    def update_last_sync(cls, timestamp: str):
        """Record the time of the last successful sync."""
        cls.LAST_SYNC_TIMESTAMP = timestamp

        settings = _load_settings()
        settings["last_sync_timestamp"] = timestamp
        _save_settings(settings)
