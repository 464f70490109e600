"""Pull reconciliation: merge the household's remote tables into the local store.

Recipes use last-write-wins on ``updated_at`` and local recipes missing
from the remote set are treated as deleted elsewhere. Schedule entries are
insert-only: an entry already present locally is never updated or removed
by a pull. The two tables are deliberately reconciled differently.
"""

import logging

from fork_and_spoon.database.models import MealType, PullResult, SyncTable, parse_timestamp
from fork_and_spoon.database.repository import Repository
from fork_and_spoon.utils.constants import RECIPE_CLOUD_COLUMNS, SCHEDULE_CLOUD_COLUMNS

from .mapping import cloud_to_recipe, cloud_to_schedule
from .remote import RemoteStore

logger = logging.getLogger(__name__)

_MEAL_TYPES = {m.value for m in MealType}


def _is_newer(remote_ts: str, local_ts: str) -> bool:
    remote_dt = parse_timestamp(remote_ts)
    local_dt = parse_timestamp(local_ts)
    if remote_dt is None:
        return False
    if local_dt is None:
        return True
    return remote_dt > local_dt


def pull_from_cloud(repo: Repository, remote: RemoteStore,
                    household_id: str) -> PullResult:
    """Fetch every recipe and schedule entry of the household and merge.

    Local recipe timestamps are compared inside the write transaction.
    Raises RemoteStoreError if either fetch fails; recipes are applied
    before the schedule fetch is attempted.
    """
    result = PullResult()

    # ── Recipes ──
    remote_rows = remote.select_by_household(
        SyncTable.RECIPES, household_id, columns=RECIPE_CLOUD_COLUMNS
    )
    remote_ids = {row["id"] for row in remote_rows}
    (result.recipes_inserted, result.recipes_updated,
     result.recipes_deleted) = repo.apply_remote_recipes(
        [cloud_to_recipe(row) for row in remote_rows], _is_newer
    )

    # ── Schedule entries ──
    remote_entries = remote.select_by_household(
        SyncTable.SCHEDULE_ENTRIES, household_id, columns=SCHEDULE_CLOUD_COLUMNS
    )
    candidates = []
    for row in remote_entries:
        entry = cloud_to_schedule(row)
        if entry.meal_type not in _MEAL_TYPES:
            logger.warning("Ignoring remote schedule entry %s with meal type %r",
                           entry.id, entry.meal_type)
            result.schedules_invalid += 1
            continue
        if entry.recipe_id and entry.recipe_id not in remote_ids:
            result.schedules_skipped += 1
            continue
        candidates.append(entry)

    inserted, conflicts = repo.insert_schedule_entries(candidates)
    result.schedules_inserted = inserted
    result.schedules_conflicted = conflicts

    if result.schedules_skipped:
        logger.warning(
            "Skipped %d remote schedule entries referencing missing recipes",
            result.schedules_skipped,
        )
    if conflicts:
        logger.info(
            "Kept %d local schedule entries over remote entries for the same slot",
            conflicts,
        )
    logger.info(
        "Pulled household %s: recipes +%d ~%d -%d, schedule +%d",
        household_id, result.recipes_inserted, result.recipes_updated,
        result.recipes_deleted, result.schedules_inserted,
    )
    return result
