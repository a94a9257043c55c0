"""
Comparables Repository - In-Process Storage for Comparables Selections

Upserting store keyed by (user_id, subject_property_id) with optional
JSON file persistence. Backs the comparables API and can be handed to
PersistenceSync directly.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from core.persistence.schema import (
    ComparablesPayload,
    PersistedComparablesRecord,
    PersistenceError,
)
from core.persistence.store import ComparablesStore


logger = logging.getLogger(__name__)

RecordKey = tuple[str, str]


# =============================================================================
# Repository
# =============================================================================


class ComparablesRepository(ComparablesStore):
    """
    Repository for storing and retrieving comparables records.

    Uses in-memory storage with optional file persistence.
    """

    def __init__(self, persist_path: Optional[str] = None):
        """
        Initialise repository.

        Args:
            persist_path: Optional path to persist data to JSON file
        """
        self._records: dict[RecordKey, PersistedComparablesRecord] = {}
        self._persist_path = Path(persist_path) if persist_path else None
        self._lock = threading.Lock()

        # Load existing data if persist path exists
        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self) -> None:
        """Persist data to file."""
        if not self._persist_path:
            return

        data = {
            "records": [record.to_dict() for record in self._records.values()],
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            self._persist_path.parent.mkdir(parents=True, exist_ok=True)
            self._persist_path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            raise PersistenceError(f"Could not write {self._persist_path}: {e}") from e

    def _load_from_file(self) -> None:
        """Load data from file."""
        try:
            data = json.loads(self._persist_path.read_text())
            for item in data.get("records", []):
                record = PersistedComparablesRecord.from_dict(item)
                self._records[(record.user_id, record.subject_property_id)] = record
        except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
            # Start fresh rather than refuse to serve
            logger.warning("Could not load comparables repository data: %s", e)

    # =========================================================================
    # ComparablesStore
    # =========================================================================

    def load(
        self,
        user_id: str,
        subject_property_id: str,
    ) -> Optional[PersistedComparablesRecord]:
        """
        Get the stored record.

        Returns:
            PersistedComparablesRecord if found, None otherwise
        """
        with self._lock:
            return self._records.get((user_id, subject_property_id))

    def save(
        self,
        user_id: str,
        subject_property_id: str,
        payload: ComparablesPayload,
    ) -> PersistedComparablesRecord:
        """
        Insert or replace the record for (user_id, subject_property_id).

        Raises:
            ValueError: If user_id or subject_property_id is empty
            PersistenceError: If file persistence fails
        """
        if not user_id:
            raise ValueError("user_id is required")
        if not subject_property_id:
            raise ValueError("subject_property_id is required")

        record = PersistedComparablesRecord.create(user_id, subject_property_id, payload)
        with self._lock:
            self._records[(user_id, subject_property_id)] = record
            self._save_to_file()
        return record

    # =========================================================================
    # Query Operations
    # =========================================================================

    def delete(self, user_id: str, subject_property_id: str) -> bool:
        """
        Delete a stored record.

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            if (user_id, subject_property_id) not in self._records:
                return False
            del self._records[(user_id, subject_property_id)]
            self._save_to_file()
            return True

    def list_by_user(self, user_id: str) -> list[PersistedComparablesRecord]:
        """Get all records for a user, most recently updated first."""
        with self._lock:
            records = [r for r in self._records.values() if r.user_id == user_id]
        return sorted(records, key=lambda r: r.updated_at, reverse=True)

    def count(self) -> int:
        """Get total number of stored records."""
        return len(self._records)


# =============================================================================
# Singleton Instance
# =============================================================================

_repository_instance: Optional[ComparablesRepository] = None


def get_comparables_repository(persist_path: Optional[str] = None) -> ComparablesRepository:
    """
    Get the comparables repository singleton.

    Args:
        persist_path: Optional path for persistence (only used on first call)

    Returns:
        ComparablesRepository instance
    """
    global _repository_instance
    if _repository_instance is None:
        _repository_instance = ComparablesRepository(persist_path)
    return _repository_instance


def reset_comparables_repository() -> None:
    """Drop the singleton (tests and app shutdown)."""
    global _repository_instance
    _repository_instance = None
