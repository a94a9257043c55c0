"""
Persisted Comparables Schema

Records stored per (user, subject property) by the comparables store,
and the payload PersistenceSync writes.

Wire format (API JSON):
    uprn, selected_comparable_ids, valuation_strategy,
    calculated_valuation, last_updated
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from core.comp_engine.models import ValuationStrategy


class PersistenceError(Exception):
    """Raised by a comparables store when a read or write fails."""


def parse_strategy(value: Any) -> ValuationStrategy:
    """
    Parse a stored strategy value; missing means average.

    Raises:
        ValueError: If the value is not a known strategy
    """
    if value is None or value == "":
        return ValuationStrategy.AVERAGE
    if isinstance(value, ValuationStrategy):
        return value
    strategy = ValuationStrategy.from_string(str(value))
    if strategy is None:
        raise ValueError(f"Invalid valuation strategy: {value!r}")
    return strategy


def _parse_valuation(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid calculated valuation: {value!r}") from None


@dataclass(frozen=True)
class ComparablesPayload:
    """
    What a save writes: selection, strategy and the cached valuation.

    The cached valuation is for display only; it is always recomputed
    from the selection on load.
    """
    selected_ids: tuple[str, ...]
    strategy: ValuationStrategy
    cached_valuation: Optional[float] = None

    def to_api_dict(self, subject_property_id: str) -> dict:
        """Request body for POST /api/db/comparables."""
        return {
            "uprn": subject_property_id,
            "selected_comparable_ids": list(self.selected_ids),
            "valuation_strategy": self.strategy.value,
            "calculated_valuation": self.cached_valuation,
        }


@dataclass(frozen=True)
class PersistedComparablesRecord:
    """Stored comparables for one user and subject property."""
    user_id: str
    subject_property_id: str
    selected_ids: tuple[str, ...]
    strategy: ValuationStrategy
    cached_valuation: Optional[float]
    updated_at: datetime

    @classmethod
    def create(
        cls,
        user_id: str,
        subject_property_id: str,
        payload: ComparablesPayload,
    ) -> "PersistedComparablesRecord":
        """Create a record stamped with the current UTC time."""
        return cls(
            user_id=user_id,
            subject_property_id=subject_property_id,
            selected_ids=tuple(payload.selected_ids),
            strategy=payload.strategy,
            cached_valuation=payload.cached_valuation,
            updated_at=datetime.now(timezone.utc),
        )

    @property
    def payload(self) -> ComparablesPayload:
        return ComparablesPayload(
            selected_ids=self.selected_ids,
            strategy=self.strategy,
            cached_valuation=self.cached_valuation,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for file storage and API responses."""
        return {
            "user_id": self.user_id,
            "uprn": self.subject_property_id,
            "selected_comparable_ids": list(self.selected_ids),
            "valuation_strategy": self.strategy.value,
            "calculated_valuation": self.cached_valuation,
            "last_updated": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict, user_id: Optional[str] = None) -> "PersistedComparablesRecord":
        """
        Create record from dictionary.

        Raises:
            ValueError: If the data is malformed
        """
        try:
            subject_property_id = str(data["uprn"])
        except (KeyError, TypeError):
            raise ValueError("Comparables record is missing uprn") from None

        ids = data.get("selected_comparable_ids") or []
        if not isinstance(ids, (list, tuple)):
            raise ValueError(f"Invalid selected_comparable_ids: {ids!r}")

        updated_at = data.get("last_updated")
        return cls(
            user_id=str(data.get("user_id") or user_id or ""),
            subject_property_id=subject_property_id,
            selected_ids=tuple(str(i) for i in ids),
            strategy=parse_strategy(data.get("valuation_strategy")),
            cached_valuation=_parse_valuation(data.get("calculated_valuation")),
            updated_at=(
                datetime.fromisoformat(updated_at)
                if isinstance(updated_at, str) and updated_at
                else datetime.now(timezone.utc)
            ),
        )

    @staticmethod
    def default_dict(subject_property_id: str) -> dict:
        """Response body when nothing has been stored yet."""
        return {
            "uprn": subject_property_id,
            "selected_comparable_ids": [],
            "valuation_strategy": ValuationStrategy.AVERAGE.value,
            "calculated_valuation": None,
        }
