"""SyncScheduler: decides when a full sync runs.

A full sync drains the outbound queue and then pulls the household's
remote data. It runs when the device comes back online, when forced, and
after a failure on a backoff timer (up to MAX_AUTO_RETRIES times in a
row). Listeners are told about every state change.
"""

import logging
import random
import threading
from dataclasses import replace
from typing import Callable, Optional

from fork_and_spoon.config import Config
from fork_and_spoon.database.models import SyncState, SyncStatus, utc_now_iso
from fork_and_spoon.errors import RemoteStoreError
from fork_and_spoon.utils.constants import MAX_SYNC_RETRIES
from fork_and_spoon.utils.formatters import format_queue_length, format_time_ago

from .queue_processor import backoff_delay
from .sync_manager import SyncManager

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Owns the sync state and the retry timer for one device."""

    MAX_AUTO_RETRIES = MAX_SYNC_RETRIES

    def __init__(self, manager: SyncManager,
                 household_id: Optional[str] = None,
                 online: bool = True,
                 timer_factory: Callable[..., threading.Timer] = threading.Timer,
                 rng: Callable[[], float] = random.random):
        self.manager = manager
        self.household_id = household_id
        self.online = online
        self._timer_factory = timer_factory
        self._rng = rng
        self._lock = threading.RLock()
        self._timer = None
        self._failures = 0
        self._callbacks: list[Callable[[SyncState], None]] = []
        self._state = SyncState(
            status=SyncStatus.SYNCED if online else SyncStatus.OFFLINE,
            last_synced_at=Config.LAST_SYNC_TIMESTAMP or None,
            queue_length=manager.get_sync_queue_length(),
        )

    @property
    def state(self) -> SyncState:
        """A copy of the current state."""
        with self._lock:
            return replace(self._state)

    @property
    def is_available(self) -> bool:
        return self.online and self.manager.is_sync_enabled(self.household_id)

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def retry_pending(self) -> bool:
        return self._timer is not None

    # ── Listeners ───────────────────────────────────────────────

    def register_callback(self, callback: Callable[[SyncState], None]):
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncState], None]):
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _update(self, **changes):
        with self._lock:
            self._state = replace(self._state, **changes)
            snapshot = replace(self._state)
        for callback in list(self._callbacks):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Sync state callback failed")

    # ── Sync ────────────────────────────────────────────────────

    def perform_sync(self) -> SyncState:
        """Drain the queue, then pull; returns the resulting state.

        Pushing first keeps recipes created offline from being treated as
        deleted elsewhere by the pull.
        """
        with self._lock:
            if not self.is_available or self._state.status == SyncStatus.SYNCING:
                return replace(self._state)
            self._cancel_retry()
            self._state = replace(self._state, status=SyncStatus.SYNCING, error=None)
        self._update()

        try:
            flushed = self.manager.process_sync_queue(self.household_id)
            pulled = self.manager.pull_from_cloud(self.household_id)
        except RemoteStoreError as e:
            with self._lock:
                self._failures += 1
                failures = self._failures
            logger.error("Sync failed (%d in a row): %s", failures, e.message)
            self._update(
                status=SyncStatus.ERROR,
                error=e.message,
                queue_length=self.manager.get_sync_queue_length(),
            )
            if failures <= self.MAX_AUTO_RETRIES:
                self._schedule_retry(failures)
            return self.state
        except Exception as e:
            # Local store failures are not retried
            self._update(status=SyncStatus.ERROR, error=str(e))
            raise

        self._reset_failures()
        now = utc_now_iso()
        Config.update_last_sync(now)
        logger.info(
            "Sync complete: %d queued changes pushed, %d recipes changed, "
            "%d schedule entries added",
            flushed, pulled.recipes_changed, pulled.schedules_inserted,
        )
        self._update(
            status=SyncStatus.SYNCED,
            error=None,
            last_synced_at=now,
            queue_length=self.manager.get_sync_queue_length(),
        )
        return self.state

    def force_sync(self) -> SyncState:
        """User-initiated sync; resets the failure streak first."""
        self._reset_failures()
        return self.perform_sync()

    def _schedule_retry(self, failures: int):
        delay_ms = backoff_delay(failures, rng=self._rng)
        logger.info("Retrying sync in %.1fs", delay_ms / 1000)
        with self._lock:
            self._cancel_retry()
            timer = self._timer_factory(delay_ms / 1000, self._retry)
            timer.daemon = True
            self._timer = timer
        timer.start()

    def _reset_failures(self):
        with self._lock:
            self._failures = 0

    def _retry(self):
        with self._lock:
            self._timer = None
        self.perform_sync()

    def _cancel_retry(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ── Events ──────────────────────────────────────────────────

    def on_connectivity_change(self, online: bool) -> SyncState:
        """React to the device going online or offline."""
        self.online = online
        if online:
            logger.info("Back online, syncing")
            if self._state.status == SyncStatus.OFFLINE:
                self._update(status=SyncStatus.SYNCED)
            return self.perform_sync()
        with self._lock:
            self._cancel_retry()
        self._update(status=SyncStatus.OFFLINE, error=None)
        return self.state

    def set_household(self, household_id: Optional[str]) -> SyncState:
        """Switch household (sign-in / sign-out) and sync the new one."""
        self.household_id = household_id
        self._reset_failures()
        if not household_id:
            self.stop()
            return self.state
        return self.perform_sync()

    def refresh_queue_length(self) -> int:
        length = self.manager.get_sync_queue_length()
        self._update(queue_length=length)
        return length

    def stop(self):
        """Cancel any pending retry."""
        with self._lock:
            self._cancel_retry()

    def get_status_display(self) -> dict:
        state = self.state
        return {
            "status": state.status.value,
            "last_sync": state.last_synced_at or "",
            "last_sync_human": format_time_ago(state.last_synced_at),
            "queue_length": state.queue_length,
            "queue_label": format_queue_length(state.queue_length),
            "error": state.error,
            "retry_pending": self.retry_pending,
        }
