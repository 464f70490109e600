"""Replay of queued remote mutations.

A pass walks the queue oldest first and replays each item once. Items
that keep failing are retried on later passes and dropped once they have
failed MAX_SYNC_RETRIES times. The processor never sleeps: how long to
wait between passes is decided by the caller using ``backoff_delay``.
"""

import logging
import random
from typing import Callable, Optional

from fork_and_spoon.database.models import SyncQueueItem
from fork_and_spoon.database.repository import Repository
from fork_and_spoon.errors import RemoteStoreError, SyncError
from fork_and_spoon.utils.constants import (
    BACKOFF_BASE_MS,
    BACKOFF_JITTER,
    BACKOFF_MAX_MS,
    MAX_SYNC_RETRIES,
)

from .remote import RemoteStore, build_adapters

logger = logging.getLogger(__name__)


def backoff_delay(retry_count: int, *,
                  base_ms: int = BACKOFF_BASE_MS,
                  max_ms: int = BACKOFF_MAX_MS,
                  jitter: float = BACKOFF_JITTER,
                  rng: Callable[[], float] = random.random) -> float:
    """Delay in milliseconds before the next attempt.

    ``min(base_ms * 2**retry_count, max_ms)`` with uniform +/- ``jitter``
    applied, never negative.
    """
    retry_count = max(0, int(retry_count))
    # Cap the exponent so huge retry counts cannot overflow to inf
    delay = min(base_ms * (2 ** min(retry_count, 32)), max_ms)
    spread = delay * jitter * (rng() * 2 - 1)
    return max(0.0, delay + spread)


class SyncQueueProcessor:
    """Drains the sync queue against the remote store."""

    def __init__(self, repo: Repository, remote: RemoteStore,
                 max_retries: int = MAX_SYNC_RETRIES):
        self.repo = repo
        self.remote = remote
        self.max_retries = max_retries
        self._adapters = build_adapters(remote)

    def process_sync_queue(self, household_id: Optional[str] = None) -> int:
        """Replay every queued item once; returns how many were flushed."""
        items = self.repo.get_queue_items()
        if not items:
            return 0

        flushed = dropped = failed = 0
        for item in items:
            if item.retry_count >= self.max_retries:
                self.repo.delete_queue_item(item.id)
                dropped += 1
                logger.warning(
                    "Dropping %s %s for %s after %d failed attempts",
                    item.table.value, item.operation.value,
                    item.record_id, item.retry_count,
                )
                continue

            if self._replay(item, household_id):
                self.repo.delete_queue_item(item.id)
                flushed += 1
            else:
                failed += 1

        logger.info(
            "Sync queue pass: %d flushed, %d failed, %d dropped",
            flushed, failed, dropped,
        )
        return flushed

    def _replay(self, item: SyncQueueItem, household_id: Optional[str]) -> bool:
        adapter = self._adapters[item.table]
        try:
            adapter.apply(item.operation, item.payload, household_id)
        except (RemoteStoreError, SyncError) as e:
            retries = self.repo.increment_retry_count(item.id)
            logger.warning(
                "Replay of %s %s for %s failed (attempt %d): %s",
                item.table.value, item.operation.value,
                item.record_id, retries, e.message,
            )
            return False
        return True
