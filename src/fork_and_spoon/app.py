"""Application entry point: command-line front end for the sync engine."""

import argparse
import logging
import sys

from fork_and_spoon.config import Config
from fork_and_spoon.database.backup import backup_database
from fork_and_spoon.database.connection import DatabaseConnection
from fork_and_spoon.database.repository import Repository
from fork_and_spoon.database.schema import initialize_database
from fork_and_spoon.errors import ForkAndSpoonError
from fork_and_spoon.io import excel_handler, json_exchange
from fork_and_spoon.migration.migration_service import MigrationService
from fork_and_spoon.migration.snapshot_store import SnapshotStore
from fork_and_spoon.sync.remote import SupabaseRemoteStore
from fork_and_spoon.sync.scheduler import SyncScheduler
from fork_and_spoon.sync.sync_manager import SyncManager
from fork_and_spoon.utils.constants import APP_NAME, APP_VERSION
from fork_and_spoon.utils.log import LogContext, setup_logging

logger = logging.getLogger(__name__)


class App:
    """Wires the local store, remote store and services together."""

    def __init__(self, db_path=None, remote=None, state_dir=None):
        self.db = DatabaseConnection(db_path or Config.DATABASE_PATH)
        initialize_database(self.db)
        self.repo = Repository(self.db)
        self.remote = remote if remote is not None else SupabaseRemoteStore.from_config()
        self.manager = SyncManager(self.repo, self.remote)
        self.scheduler = SyncScheduler(self.manager, Config.HOUSEHOLD_ID or None)
        self.migration = MigrationService(
            self.repo, self.remote,
            SnapshotStore(state_dir or Config.MIGRATION_STATE_DIR),
        )


# ── Commands ────────────────────────────────────────────────────

def cmd_status(app: App, args) -> int:
    display = app.scheduler.get_status_display()
    summary = app.migration.detect_local_data()
    print(f"{APP_NAME} {APP_VERSION}")
    print(f"  Household:  {Config.HOUSEHOLD_ID or '(not signed in)'}")
    print(f"  Remote:     {'configured' if app.remote.is_configured else 'not configured'}")
    print(f"  Sync:       {display['status']} (last: {display['last_sync_human']})")
    print(f"  Queue:      {display['queue_label']}")
    print(f"  Recipes:    {summary.recipes}")
    print(f"  Meal plan:  {summary.schedule_entries} entries")
    print(f"  Migration:  {app.migration.get_migration_status().value}")
    return 0


def cmd_sync(app: App, args) -> int:
    if not app.scheduler.is_available:
        print("Sync unavailable: configure Supabase and sign in to a household")
        return 1
    state = app.scheduler.force_sync()
    app.scheduler.stop()
    if state.error:
        print(f"Sync failed: {state.error}")
        return 1
    print(f"Synced. {app.scheduler.get_status_display()['queue_label']}")
    return 0


def cmd_migrate(app: App, args) -> int:
    household = args.household or Config.HOUSEHOLD_ID
    if not household:
        print("No household: pass --household or sign in first")
        return 1
    with LogContext(logger, f"Migrating local data to household {household}"):
        result = app.migration.migrate_local_to_cloud(household, Config.USER_ID or None)
    print(
        f"Migration {result.status.value}: {result.recipes_migrated} recipes, "
        f"{result.schedule_entries_migrated} schedule entries, "
        f"{result.tags_migrated} tags"
    )
    for error in result.errors:
        print(f"  ! {error}")
    return 0 if result.success else 1


def cmd_rollback(app: App, args) -> int:
    with LogContext(logger, "Rolling back migration"):
        snapshot = app.migration.rollback_migration()
    print(
        f"Restored {len(snapshot.recipes)} recipes and "
        f"{len(snapshot.schedule_entries)} schedule entries "
        f"from {snapshot.timestamp}"
    )
    return 0


def cmd_export(app: App, args) -> int:
    if args.path.lower().endswith(".xlsx"):
        count = excel_handler.export_recipes_excel(app.repo, args.path)
        print(f"Exported {count} recipes to {args.path}")
    else:
        path = json_exchange.export_to_file(app.repo, args.path)
        print(f"Backup written to {path}")
    return 0


def cmd_import(app: App, args) -> int:
    if args.path.lower().endswith(".xlsx"):
        results = excel_handler.import_recipes_excel(
            app.repo, args.path, update_existing=args.merge
        )
        print(
            f"Imported {results['imported']}, updated {results['updated']}, "
            f"skipped {results['skipped']}"
        )
        for error in results["errors"]:
            print(f"  ! {error}")
        return 1 if results["errors"] else 0

    mode = "merge" if args.merge else "replace"
    result = json_exchange.import_file(app.repo, args.path, mode)
    print(
        f"Imported {result.recipes_imported} recipes and "
        f"{result.schedule_entries_imported} schedule entries ({result.format})"
    )
    return 0


def cmd_backup(app: App, args) -> int:
    path = backup_database(app.db, args.dir or Config.BACKUP_PATH)
    print(f"Backup created: {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fork-and-spoon",
        description=f"{APP_NAME} offline-first recipe and meal plan sync",
    )
    parser.add_argument("--db", help="Path to the local database")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show sync and migration status").set_defaults(
        func=cmd_status
    )
    sub.add_parser("sync", help="Push queued changes, then pull").set_defaults(
        func=cmd_sync
    )

    migrate = sub.add_parser("migrate", help="Upload local data to a household")
    migrate.add_argument("--household", help="Household id (default: signed-in)")
    migrate.set_defaults(func=cmd_migrate)

    sub.add_parser("rollback", help="Undo the last migration locally").set_defaults(
        func=cmd_rollback
    )

    export = sub.add_parser("export", help="Write a JSON backup or .xlsx recipe sheet")
    export.add_argument("path")
    export.set_defaults(func=cmd_export)

    imp = sub.add_parser("import", help="Import a backup, Paprika, Recipe Keeper or .xlsx file")
    imp.add_argument("path")
    imp.add_argument("--merge", action="store_true",
                     help="Add missing records instead of replacing")
    imp.set_defaults(func=cmd_import)

    backup = sub.add_parser("backup", help="Copy the local store to the backup folder")
    backup.add_argument("--dir", help="Backup folder (default: DATABASE_BACKUP_PATH)")
    backup.set_defaults(func=cmd_backup)
    return parser


def main(argv=None) -> int:
    """Run the command-line interface."""
    args = build_parser().parse_args(argv)
    setup_logging(Config.LOG_LEVEL, Config.LOG_TO_FILE)

    try:
        app = App(db_path=args.db)
        return args.func(app, args)
    except ForkAndSpoonError as e:
        logger.error("%s", e)
        print(f"Error: {e.message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
