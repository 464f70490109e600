"""Standalone meal plan export: write the schedule to an Excel sheet."""

import sys

from fork_and_spoon.config import Config
from fork_and_spoon.database.connection import DatabaseConnection
from fork_and_spoon.database.repository import Repository
from fork_and_spoon.database.schema import initialize_database
from fork_and_spoon.io.excel_handler import export_schedule_excel


def main():
    if len(sys.argv) not in (2, 4):
        print("Usage: python export_schedule.py <output.xlsx> [start_date end_date]")
        sys.exit(1)

    filepath = sys.argv[1]
    start_date, end_date = (sys.argv[2], sys.argv[3]) if len(sys.argv) == 4 else (None, None)

    db = DatabaseConnection(Config.DATABASE_PATH)
    initialize_database(db)
    repo = Repository(db)

    count = export_schedule_excel(repo, filepath, start_date, end_date)
    print(f"Exported {count} schedule entries to {filepath}")


if __name__ == "__main__":
    main()
