"""Back up the configured local store into BACKUP_PATH."""

import sys

from fork_and_spoon.config import Config
from fork_and_spoon.database.backup import backup_database
from fork_and_spoon.database.connection import DatabaseConnection


def main() -> int:
    if not Config.DATABASE_PATH.exists():
        print(f"Database not found at {Config.DATABASE_PATH}")
        return 1
    path = backup_database(DatabaseConnection(Config.DATABASE_PATH), Config.BACKUP_PATH)
    print(f"Backup created: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
