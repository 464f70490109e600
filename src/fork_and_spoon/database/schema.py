"""Database schema definition, initialization, and migrations.

Migrations only ever move forward and only ever add: new columns are
backfilled with defaults for existing rows, and the database file keeps
its name across versions.
"""

import sqlite3

SCHEMA_VERSION = 4

# Each statement is a separate string to avoid executescript issues
_SCHEMA_STATEMENTS = [
    # Version bookkeeping
    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Recipes (list fields are JSON arrays)
    """CREATE TABLE IF NOT EXISTS recipes (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        ingredients TEXT NOT NULL DEFAULT '[]',
        instructions TEXT NOT NULL DEFAULT '[]',
        image_url TEXT,
        source_url TEXT,
        last_cooked_date TEXT,
        tags TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )""",

    # Meal plan: one entry per (date, meal_type)
    """CREATE TABLE IF NOT EXISTS schedule_entries (
        id TEXT PRIMARY KEY,
        recipe_id TEXT NOT NULL DEFAULT '',
        date TEXT NOT NULL,
        meal_type TEXT NOT NULL CHECK (meal_type IN ('lunch', 'dinner')),
        created_at TEXT NOT NULL
    )""",

    # Pending remote mutations
    """CREATE TABLE IF NOT EXISTS sync_queue (
        id TEXT PRIMARY KEY,
        table_name TEXT NOT NULL
            CHECK (table_name IN ('recipes', 'schedule_entries')),
        operation TEXT NOT NULL CHECK (operation IN ('upsert', 'delete')),
        payload TEXT NOT NULL,
        timestamp INTEGER NOT NULL,
        retry_count INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0)
    )""",

    # Structured ingredient lines
    """CREATE TABLE IF NOT EXISTS recipe_ingredients (
        id TEXT PRIMARY KEY,
        recipe_id TEXT NOT NULL,
        quantity REAL,
        quantity_max REAL,
        unit TEXT,
        name TEXT NOT NULL,
        raw_text TEXT NOT NULL DEFAULT '',
        sort_order INTEGER NOT NULL DEFAULT 0
    )""",

    # Indexes
    "CREATE INDEX IF NOT EXISTS idx_recipes_title ON recipes(title)",
    "CREATE INDEX IF NOT EXISTS idx_recipes_last_cooked ON recipes(last_cooked_date)",
    "CREATE INDEX IF NOT EXISTS idx_recipes_created ON recipes(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_schedule_recipe ON schedule_entries(recipe_id)",
    "CREATE INDEX IF NOT EXISTS idx_schedule_date ON schedule_entries(date)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_schedule_slot "
    "ON schedule_entries(date, meal_type)",
    "CREATE INDEX IF NOT EXISTS idx_sync_queue_timestamp ON sync_queue(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_recipe_ingredients_recipe "
    "ON recipe_ingredients(recipe_id, sort_order)",

    "INSERT OR REPLACE INTO schema_version (version) VALUES (4)",
]


# ── v1 (first release: recipes and the meal plan) ───────────────
_V1_STATEMENTS = [
    _SCHEMA_STATEMENTS[0],
    """CREATE TABLE IF NOT EXISTS recipes (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        ingredients TEXT NOT NULL DEFAULT '[]',
        instructions TEXT NOT NULL DEFAULT '[]',
        image_url TEXT,
        source_url TEXT,
        last_cooked_date TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )""",
    _SCHEMA_STATEMENTS[2],
    "CREATE INDEX IF NOT EXISTS idx_recipes_title ON recipes(title)",
    "CREATE INDEX IF NOT EXISTS idx_recipes_last_cooked ON recipes(last_cooked_date)",
    "CREATE INDEX IF NOT EXISTS idx_recipes_created ON recipes(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_schedule_recipe ON schedule_entries(recipe_id)",
    "CREATE INDEX IF NOT EXISTS idx_schedule_date ON schedule_entries(date)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_schedule_slot "
    "ON schedule_entries(date, meal_type)",
    "INSERT OR REPLACE INTO schema_version (version) VALUES (1)",
]


def create_v1_schema(conn):
    """Create the original v1 layout (used to exercise the upgrade path)."""
    for stmt in _V1_STATEMENTS:
        conn.execute(stmt)


def get_schema_version(conn) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) as v FROM schema_version"
        ).fetchone()
        return row["v"] if row and row["v"] else 0
    except sqlite3.OperationalError:
        return 0


# ── Migration from v1 → v2 ──────────────────────────────────────
_MIGRATION_V2_STATEMENTS = [
    # Tags on recipes; existing rows get an empty list
    "ALTER TABLE recipes ADD COLUMN tags TEXT NOT NULL DEFAULT '[]'",
    "UPDATE recipes SET tags = '[]' WHERE tags IS NULL OR tags = ''",

    "INSERT OR REPLACE INTO schema_version (version) VALUES (2)",
]


# ── Migration from v2 → v3 ──────────────────────────────────────
_MIGRATION_V3_STATEMENTS = [
    _SCHEMA_STATEMENTS[3],
    "CREATE INDEX IF NOT EXISTS idx_sync_queue_timestamp ON sync_queue(timestamp)",

    "INSERT OR REPLACE INTO schema_version (version) VALUES (3)",
]


# ── Migration from v3 → v4 ──────────────────────────────────────
_MIGRATION_V4_STATEMENTS = [
    _SCHEMA_STATEMENTS[4],
    "CREATE INDEX IF NOT EXISTS idx_recipe_ingredients_recipe "
    "ON recipe_ingredients(recipe_id, sort_order)",

    "INSERT OR REPLACE INTO schema_version (version) VALUES (4)",
]


def _migrate_v1_to_v2(conn):
    """Upgrade schema from v1 to v2."""
    for stmt in _MIGRATION_V2_STATEMENTS:
        conn.execute(stmt)


def _migrate_v2_to_v3(conn):
    """Upgrade schema from v2 to v3."""
    for stmt in _MIGRATION_V3_STATEMENTS:
        conn.execute(stmt)


def _migrate_v3_to_v4(conn):
    """Upgrade schema from v3 to v4."""
    for stmt in _MIGRATION_V4_STATEMENTS:
        conn.execute(stmt)


def initialize_database(db_connection) -> int:
    """Create all tables and indexes, or bring an older store up to date.

    On a fresh database, creates the full v4 schema directly.
    On an existing database, applies migrations incrementally.
    Returns the schema version after initialization.
    """
    with db_connection.get_connection(immediate=True) as conn:
        version = get_schema_version(conn)

        if version == 0:
            # Fresh database: create full schema
            for stmt in _SCHEMA_STATEMENTS:
                conn.execute(stmt)
        elif version < SCHEMA_VERSION:
            # Existing database: apply migrations
            if version < 2:
                _migrate_v1_to_v2(conn)
            if version < 3:
                _migrate_v2_to_v3(conn)
            if version < 4:
                _migrate_v3_to_v4(conn)

        return get_schema_version(conn)
