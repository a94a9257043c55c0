"""
Persistence Sync - Debounced Save of Comparables Selections

State machine per subject-property context:

    UNLOADED -> LOADING -> LOADED <-> DIRTY -> SAVING -> LOADED
                                              SAVING -> DIRTY

- load() performs exactly one read and seeds the SelectionStore without
  counting as a user edit, so a load can never trigger a save.
- Every user mutation after LOADED restarts the debounce window.
- The save payload is read when the debounce fires, not when the first
  mutation happened. Only one save is in flight at a time; a mutation
  during a save starts a fresh debounce cycle.
- Failures are logged and never raised to the caller. A failed save
  leaves the state DIRTY and is retried after the debounce delay, up to
  max_retries consecutive failures.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Final, Optional, Protocol

from core.comp_engine.models import SelectionState
from core.comp_engine.selection import SelectionStore
from core.persistence.schema import ComparablesPayload, PersistedComparablesRecord
from core.persistence.store import ComparablesStore


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Constants
# =============================================================================

# Long enough to cover a burst of clicks
DEFAULT_DEBOUNCE_SECONDS: Final[float] = 1.0
DEFAULT_MAX_RETRIES: Final[int] = 3
FLUSH_WAIT_SECONDS: Final[float] = 30.0

ValuationFn = Callable[[SelectionState], Optional[float]]


class SyncState(Enum):
    """PersistenceSync lifecycle state."""
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    DIRTY = "dirty"
    SAVING = "saving"


# =============================================================================
# Scheduling
# =============================================================================


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a callback after a delay; the returned handle can cancel it."""

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledCall: ...


class ThreadingScheduler:
    """Scheduler backed by daemon threading.Timer instances."""

    def schedule(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


# =============================================================================
# Persistence Sync
# =============================================================================


class PersistenceSync:
    """
    Keeps one user's comparables for one subject property in sync with
    a ComparablesStore.
    """

    def __init__(
        self,
        store: ComparablesStore,
        user_id: str,
        subject_property_id: str,
        selection: SelectionStore,
        valuation_fn: Optional[ValuationFn] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        scheduler: Optional[Scheduler] = None,
    ):
        """
        Initialise sync and subscribe to selection mutations.

        Args:
            store: Remote store to read from and upsert into
            user_id: Owner of the selection
            subject_property_id: Subject property (UPRN)
            selection: SelectionStore to seed and watch
            valuation_fn: Computes the cached valuation for a snapshot
            debounce_seconds: Quiet period before a save fires
            max_retries: Consecutive failed saves retried automatically
            scheduler: Timer source (default: ThreadingScheduler)
        """
        self._store = store
        self._user_id = user_id
        self._subject_property_id = subject_property_id
        self._selection = selection
        self._valuation_fn = valuation_fn or (lambda snapshot: None)
        self._debounce_seconds = debounce_seconds
        self._max_retries = max_retries
        self._scheduler = scheduler or ThreadingScheduler()

        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._state = SyncState.UNLOADED
        self._timer: Optional[ScheduledCall] = None
        self._save_in_flight = False
        self._resave_pending = False
        self._consecutive_failures = 0
        self._closed = False
        self._last_record: Optional[PersistedComparablesRecord] = None

        selection.subscribe(self._on_user_mutation)

    # =========================================================================
    # Read Access
    # =========================================================================

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._state not in (SyncState.UNLOADED, SyncState.LOADING)

    @property
    def save_pending(self) -> bool:
        """Whether local changes have not yet been persisted."""
        return self._state in (SyncState.DIRTY, SyncState.SAVING)

    @property
    def last_record(self) -> Optional[PersistedComparablesRecord]:
        """Record returned by the last successful load or save."""
        return self._last_record

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    # =========================================================================
    # Load
    # =========================================================================

    def load(self) -> Optional[PersistedComparablesRecord]:
        """
        Read the stored record once and seed the selection from it.

        A missing record or a failed read leaves the selection at its
        defaults. Never raises for store failures.

        Raises:
            RuntimeError: If called more than once
        """
        with self._lock:
            if self._state is not SyncState.UNLOADED:
                raise RuntimeError("Comparables have already been loaded for this context")
            self._state = SyncState.LOADING

        record = None
        try:
            record = self._store.load(self._user_id, self._subject_property_id)
        except Exception:
            logger.warning(
                "Failed to load comparables for %s; starting with an empty selection",
                self._subject_property_id,
                exc_info=True,
            )

        with self._lock:
            if record is not None:
                self._selection.seed(record.selected_ids, record.strategy)
                self._last_record = record
            self._selection.mark_clean()
            self._state = SyncState.LOADED
            logger.debug(
                "Loaded comparables for %s (%s)",
                self._subject_property_id,
                "stored" if record is not None else "defaults",
            )
        return record

    # =========================================================================
    # Save
    # =========================================================================

    def _on_user_mutation(self, selection: SelectionStore) -> None:
        with self._lock:
            if self._closed:
                return
            if not self.is_loaded:
                # Load has not finished; the seed will replace this state
                logger.debug("Ignoring mutation before comparables were loaded")
                return
            self._consecutive_failures = 0
            self._state = SyncState.DIRTY
            self._restart_timer(self._debounce_seconds)

    def _restart_timer(self, delay: float) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._scheduler.schedule(delay, self._on_timer)

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
        self._save()

    def _save(self) -> bool:
        """
        Save the current state if dirty.

        Returns:
            True if a save was issued and succeeded
        """
        with self._lock:
            if self._closed:
                return False
            if self._state is not SyncState.DIRTY:
                return False
            if self._save_in_flight:
                self._resave_pending = True
                return False

            snapshot, version = self._selection.versioned_snapshot()
            payload = ComparablesPayload(
                selected_ids=snapshot.selected_ids,
                strategy=snapshot.strategy,
                cached_valuation=self._valuation_fn(snapshot),
            )
            self._state = SyncState.SAVING
            self._save_in_flight = True
            self._resave_pending = False

        logger.debug(
            "Saving %d comparables for %s",
            len(payload.selected_ids),
            self._subject_property_id,
        )
        try:
            record = self._store.save(self._user_id, self._subject_property_id, payload)
        except Exception:
            logger.warning(
                "Failed to save comparables for %s",
                self._subject_property_id,
                exc_info=True,
            )
            self._finish_failed_save()
            return False

        self._finish_successful_save(record, version)
        return True

    def _finish_successful_save(self, record: PersistedComparablesRecord, version: int) -> None:
        with self._lock:
            self._save_in_flight = False
            self._consecutive_failures = 0
            self._last_record = record
            self._selection.mark_clean(version)

            if self._state is SyncState.SAVING:
                self._state = SyncState.LOADED
            elif self._resave_pending and not self._closed:
                # The debounce fired mid-save; start a fresh cycle
                self._restart_timer(self._debounce_seconds)
            self._resave_pending = False
            self._idle.notify_all()

    def _finish_failed_save(self) -> None:
        with self._lock:
            self._save_in_flight = False
            self._consecutive_failures += 1
            self._state = SyncState.DIRTY

            if not self._closed and self._timer is None:
                if self._resave_pending or self._consecutive_failures <= self._max_retries:
                    self._restart_timer(self._debounce_seconds)
                else:
                    logger.warning(
                        "Giving up on saving comparables for %s after %d failures; "
                        "the next change will retry",
                        self._subject_property_id,
                        self._consecutive_failures,
                    )
            self._resave_pending = False
            self._idle.notify_all()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def flush(self, timeout: float = FLUSH_WAIT_SECONDS) -> bool:
        """
        Save pending changes now instead of waiting for the debounce.

        Waits for an in-flight save to finish first.

        Returns:
            True if a save was issued and succeeded
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if not self._idle.wait_for(lambda: not self._save_in_flight, timeout):
                logger.warning(
                    "Timed out waiting for in-flight save of %s",
                    self._subject_property_id,
                )
                return False
        return self._save()

    def close(self, flush: bool = True) -> None:
        """
        Stop syncing. Pending changes are flushed first unless flush=False.
        """
        if flush and self.is_loaded and self._state is not SyncState.LOADED:
            self.flush()
        with self._lock:
            self._closed = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self._selection.unsubscribe(self._on_user_mutation)
