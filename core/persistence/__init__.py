"""
Comparables Persistence

Durable storage of each user's selected comparables per subject
property, and the debounced sync that keeps it current.
"""

from core.persistence.schema import (
    ComparablesPayload,
    PersistedComparablesRecord,
    PersistenceError,
    parse_strategy,
)
from core.persistence.store import ComparablesStore, HttpComparablesStore
from core.persistence.repository import (
    ComparablesRepository,
    get_comparables_repository,
    reset_comparables_repository,
)
from core.persistence.sync import (
    PersistenceSync,
    Scheduler,
    SyncState,
    ThreadingScheduler,
)

__all__ = [
    # Schema
    "ComparablesPayload",
    "PersistedComparablesRecord",
    "PersistenceError",
    "parse_strategy",
    # Stores
    "ComparablesStore",
    "HttpComparablesStore",
    "ComparablesRepository",
    "get_comparables_repository",
    "reset_comparables_repository",
    # Sync
    "PersistenceSync",
    "Scheduler",
    "SyncState",
    "ThreadingScheduler",
]
