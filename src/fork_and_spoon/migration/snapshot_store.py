"""File-backed migration status and snapshot.

Both live as JSON files next to, not inside, the SQLite store so they
survive the store being cleared.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from fork_and_spoon.database.models import MigrationSnapshot, MigrationStatus
from fork_and_spoon.errors import SnapshotError
from fork_and_spoon.utils.constants import (
    MIGRATION_SNAPSHOT_FILE,
    MIGRATION_STATUS_FILE,
)

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Reads and writes migration state under one directory."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    @property
    def snapshot_path(self) -> Path:
        return self.directory / MIGRATION_SNAPSHOT_FILE

    @property
    def status_path(self) -> Path:
        return self.directory / MIGRATION_STATUS_FILE

    def _write_atomic(self, path: Path, data: dict):
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp, path)

    # ── Snapshot ────────────────────────────────────────────────

    def save_snapshot(self, snapshot: MigrationSnapshot):
        try:
            self._write_atomic(self.snapshot_path, snapshot.to_dict())
        except (OSError, TypeError, ValueError) as e:
            raise SnapshotError(
                f"Failed to create snapshot: {e}",
                details={"path": str(self.snapshot_path)},
            ) from e

    def load_snapshot(self) -> Optional[MigrationSnapshot]:
        """The stored snapshot, or None when missing or unreadable."""
        if not self.snapshot_path.exists():
            return None
        try:
            data = json.loads(self.snapshot_path.read_text(encoding="utf-8"))
            return MigrationSnapshot.from_dict(data)
        except (json.JSONDecodeError, OSError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable migration snapshot: %s", e)
            return None

    def clear_snapshot(self):
        self.snapshot_path.unlink(missing_ok=True)

    # ── Status ──────────────────────────────────────────────────

    def get_status(self) -> MigrationStatus:
        if not self.status_path.exists():
            return MigrationStatus.NOT_STARTED
        try:
            data = json.loads(self.status_path.read_text(encoding="utf-8"))
            return MigrationStatus(data.get("status"))
        except (json.JSONDecodeError, OSError, ValueError, AttributeError):
            return MigrationStatus.NOT_STARTED

    def set_status(self, status: MigrationStatus):
        try:
            self._write_atomic(
                self.status_path, {"status": MigrationStatus(status).value}
            )
        except OSError as e:
            raise SnapshotError(
                f"Failed to record migration status: {e}",
                details={"path": str(self.status_path)},
            ) from e
