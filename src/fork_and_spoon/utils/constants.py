"""Application-wide constants."""

APP_NAME = "Fork and Spoon"
APP_VERSION = "1.6.0"
# Backups written before the rename carry this app name
LEGACY_APP_NAME = "Meal Organizer"

# Meal slots per day
MEAL_TYPES = ["lunch", "dinner"]

# ── Sync queue ───────────────────────────────────────────────────
# A queue item is dropped once it has failed this many replays
MAX_SYNC_RETRIES = 5
BACKOFF_BASE_MS = 1000
BACKOFF_MAX_MS = 60000
BACKOFF_JITTER = 0.25

# ── Migration ────────────────────────────────────────────────────
MIGRATION_BATCH_SIZE = 50
MIGRATION_STATUS_FILE = "meal-org-migration-status.json"
MIGRATION_SNAPSHOT_FILE = "meal-org-migration-snapshot.json"

# ── Backup files ─────────────────────────────────────────────────
EXPORT_VERSION = 2
IMPORT_FORMATS = ["meal-organizer", "paprika", "recipe-keeper", "unknown"]
IMPORT_MODES = ["replace", "merge"]

# Recipe sort orders accepted by list queries
RECIPE_SORT_ORDERS = ["created_at", "title", "last_cooked_date"]

# Remote column lists
RECIPE_CLOUD_COLUMNS = (
    "id, household_id, title, ingredients, instructions, image_url, "
    "source_url, last_cooked_date, tags, created_by, created_at, updated_at"
)
SCHEDULE_CLOUD_COLUMNS = "id, household_id, recipe_id, date, meal_type, created_at"
