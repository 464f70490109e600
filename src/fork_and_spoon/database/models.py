"""Data models for the database layer."""

import re
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional


class MealType(str, Enum):
    LUNCH = "lunch"
    DINNER = "dinner"


class SyncTable(str, Enum):
    """Tables that can be mirrored to the remote store."""

    RECIPES = "recipes"
    SCHEDULE_ENTRIES = "schedule_entries"


class SyncOperation(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"


class MigrationStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncStatus(str, Enum):
    SYNCED = "synced"
    SYNCING = "syncing"
    OFFLINE = "offline"
    ERROR = "error"


# ── Timestamps ──────────────────────────────────────────────────

_FRACTION_RE = re.compile(r"\.(\d+)")
_SHORT_OFFSET_RE = re.compile(r"(T[\d:.]+[+-]\d\d)$")


def new_id() -> str:
    """Client-side identity for recipes, entries and queue items."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def utc_now_iso() -> str:
    return format_timestamp(utc_now())


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as written locally or by PostgreSQL.

    Accepts a trailing "Z" and any number of fractional digits. Naive
    values are taken as UTC. Returns None for empty or invalid input.
    """
    if not value:
        return None
    text = str(value).strip().replace("Z", "+00:00").replace(" ", "T", 1)
    text = _FRACTION_RE.sub(
        lambda m: "." + (m.group(1) + "000000")[:6], text, count=1
    )
    text = _SHORT_OFFSET_RE.sub(r"\1:00", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def next_timestamp(previous: Optional[str] = None,
                   now: Optional[datetime] = None) -> str:
    """Return a timestamp strictly later than ``previous``.

    Uses the current time unless the clock has not moved past
    ``previous``, in which case ``previous`` + 1 µs is used.
    """
    now = now or utc_now()
    last = parse_timestamp(previous)
    if last is not None and now <= last:
        now = last + timedelta(microseconds=1)
    return format_timestamp(now)


def epoch_millis(now: Optional[datetime] = None) -> int:
    """Queue ordering key: milliseconds since the epoch."""
    return int((now or utc_now()).timestamp() * 1000)


# ── Domain records ──────────────────────────────────────────────

@dataclass
class Recipe:
    id: str = ""
    title: str = ""
    ingredients: list[str] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    image_url: Optional[str] = None
    source_url: Optional[str] = None
    last_cooked_date: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Recipe":
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            ingredients=list(data.get("ingredients") or []),
            instructions=list(data.get("instructions") or []),
            image_url=data.get("image_url"),
            source_url=data.get("source_url"),
            last_cooked_date=data.get("last_cooked_date"),
            tags=list(data.get("tags") or []),
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
        )


@dataclass
class ScheduleEntry:
    id: str = ""
    recipe_id: str = ""
    date: str = ""  # YYYY-MM-DD
    meal_type: str = MealType.DINNER.value
    created_at: str = ""

    @property
    def slot(self) -> tuple[str, str]:
        return (self.date, self.meal_type)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduleEntry":
        return cls(
            id=data["id"],
            recipe_id=data.get("recipe_id") or "",
            date=data["date"],
            meal_type=data["meal_type"],
            created_at=data.get("created_at") or "",
        )


@dataclass
class RecipeIngredient:
    """One parsed ingredient line; stored as delivered by the parser."""

    id: str = ""
    recipe_id: str = ""
    quantity: Optional[float] = None
    quantity_max: Optional[float] = None
    unit: Optional[str] = None
    name: str = ""
    raw_text: str = ""
    sort_order: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SyncQueueItem:
    id: str = ""
    table: SyncTable = SyncTable.RECIPES
    operation: SyncOperation = SyncOperation.UPSERT
    payload: dict = field(default_factory=dict)  # remote-shaped row
    timestamp: int = 0  # enqueue time, epoch ms
    retry_count: int = 0

    @property
    def record_id(self) -> Optional[str]:
        return self.payload.get("id")


# ── Migration ───────────────────────────────────────────────────

@dataclass(frozen=True)
class MigrationSnapshot:
    """Point-in-time copy of local recipes and schedule entries."""

    recipes: tuple[Recipe, ...] = ()
    schedule_entries: tuple[ScheduleEntry, ...] = ()
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipes": [r.to_dict() for r in self.recipes],
            "schedule_entries": [e.to_dict() for e in self.schedule_entries],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MigrationSnapshot":
        return cls(
            recipes=tuple(Recipe.from_dict(r) for r in data.get("recipes", [])),
            schedule_entries=tuple(
                ScheduleEntry.from_dict(e)
                for e in data.get("schedule_entries", [])
            ),
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class MigrationSummary:
    recipes: int = 0
    schedule_entries: int = 0
    tags: int = 0

    @property
    def has_data(self) -> bool:
        return self.recipes > 0 or self.schedule_entries > 0


@dataclass
class MigrationResult:
    status: MigrationStatus = MigrationStatus.NOT_STARTED
    recipes_migrated: int = 0
    schedule_entries_migrated: int = 0
    # Distinct tags across the snapshot recipes
    tags_migrated: int = 0
    schedule_entries_skipped: int = 0
    errors: list[str] = field(default_factory=list)
    snapshot: Optional[MigrationSnapshot] = None

    @property
    def success(self) -> bool:
        return self.status == MigrationStatus.COMPLETED

    @property
    def is_partial(self) -> bool:
        return self.success and bool(self.errors)


# ── Sync results ────────────────────────────────────────────────

@dataclass
class PullResult:
    recipes_inserted: int = 0
    recipes_updated: int = 0
    recipes_deleted: int = 0
    schedules_inserted: int = 0
    # Remote entries whose recipe is not in the household
    schedules_skipped: int = 0
    # Remote entries whose slot is already taken locally
    schedules_conflicted: int = 0
    # Remote entries with a meal type this store does not accept
    schedules_invalid: int = 0

    @property
    def recipes_changed(self) -> int:
        return self.recipes_inserted + self.recipes_updated + self.recipes_deleted

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class SyncState:
    status: SyncStatus = SyncStatus.SYNCED
    last_synced_at: Optional[str] = None
    queue_length: int = 0
    error: Optional[str] = None
