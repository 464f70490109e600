"""Timestamped copies of the local store."""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from fork_and_spoon.config import LOCAL_STORE_NAME

from .connection import DatabaseConnection

logger = logging.getLogger(__name__)

KEEP_BACKUPS = 10


def backup_name(when: datetime) -> str:
    return f"{LOCAL_STORE_NAME}_{when.strftime('%Y%m%d_%H%M%S')}.sqlite3"


def list_backups(backup_dir: str | Path) -> list[Path]:
    """Existing backups, newest first."""
    return sorted(Path(backup_dir).glob(f"{LOCAL_STORE_NAME}_*.sqlite3"), reverse=True)


def backup_database(db: DatabaseConnection, backup_dir: str | Path,
                    keep: int = KEEP_BACKUPS,
                    now: Optional[datetime] = None) -> Optional[Path]:
    """Copy the store into ``backup_dir`` and prune to the newest ``keep``.

    Uses SQLite's online backup, so a sync running on another connection
    cannot leave a torn copy. Returns the new file, or None when there is
    no store yet.
    """
    if not db.db_path.exists():
        logger.warning("No local store at %s, nothing to back up", db.db_path)
        return None

    backup_dir = Path(backup_dir)
    backup_dir.mkdir(parents=True, exist_ok=True)
    target = backup_dir / backup_name(now or datetime.now())

    with db.get_connection() as conn:
        dest = sqlite3.connect(str(target))
        try:
            conn.backup(dest)
        finally:
            dest.close()
    logger.info("Backup created: %s", target)

    for old in list_backups(backup_dir)[keep:]:
        old.unlink()
        logger.info("Removed old backup: %s", old.name)
    return target
