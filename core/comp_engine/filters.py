"""
Filter and Sort Pipeline for the Comp Engine

Implements the user-facing filters over normalized transactions:
- Bedrooms (exact, or N+ open upper bound)
- Bathrooms (exact, or N+; 0/absent always passes)
- Transaction date window (days back from today, future dates excluded)
- Property type (exact, case-sensitive)
- Distance (same street, or within a metres threshold)

All filters are AND-combined. Sorting is stable.
"""

from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Union
from zoneinfo import ZoneInfo

from .models import (
    DistanceMode,
    FilterCriteria,
    NormalizedTransactionSet,
    SortKey,
    TransactionRecord,
)


# =============================================================================
# Configuration Constants
# =============================================================================

DEFAULT_SORT = SortKey.NEWEST
DEFAULT_TIMEZONE = "UTC"
UNKNOWN_PROPERTY_TYPE = "Unknown"


def reference_today(tz_name: str = DEFAULT_TIMEZONE) -> date:
    """Today's calendar date in the reference timezone."""
    if tz_name.upper() == "UTC":
        return datetime.now(timezone.utc).date()
    return datetime.now(ZoneInfo(tz_name)).date()


class FilterSortPipeline:
    """
    Applies FilterCriteria and a SortKey to a normalized transaction set.

    A pure view: the input set is never modified and an empty result is
    a valid answer.
    """

    def __init__(
        self,
        reference_date: Optional[date] = None,
        subject_street: str = "",
        tz_name: str = DEFAULT_TIMEZONE,
    ):
        """
        Initialize pipeline.

        Args:
            reference_date: "Today" for the date window (default: today
                in tz_name)
            subject_street: Subject property's street for "same street"
            tz_name: Reference timezone used when reference_date is omitted
        """
        self._reference_date = reference_date
        self._tz_name = tz_name
        self.subject_street = subject_street or ""

    @property
    def reference_date(self) -> date:
        return self._reference_date or reference_today(self._tz_name)

    def apply(
        self,
        transactions: Union[NormalizedTransactionSet, Iterable[TransactionRecord]],
        criteria: Optional[FilterCriteria] = None,
        sort_key: Union[SortKey, str] = DEFAULT_SORT,
    ) -> List[TransactionRecord]:
        """
        Filter then sort transactions.

        Args:
            transactions: Normalized set (or any iterable of records)
            criteria: Filters to apply (default: none)
            sort_key: Sort order

        Returns:
            New list of matching records in sort order
        """
        records = self._records(transactions)
        filtered = self.filter(records, criteria or FilterCriteria())
        return self.sort(filtered, sort_key)

    def filter(
        self,
        records: Iterable[TransactionRecord],
        criteria: FilterCriteria,
    ) -> List[TransactionRecord]:
        """Keep records that pass every active criterion."""
        today = self.reference_date
        return [r for r in records if self.matches(r, criteria, today)]

    def matches(
        self,
        record: TransactionRecord,
        criteria: FilterCriteria,
        today: Optional[date] = None,
    ) -> bool:
        """Check a single record against all criteria."""
        if criteria.bedrooms is not None:
            if not criteria.bedrooms.matches(record.bedrooms or 0):
                return False

        if criteria.bathrooms is not None:
            # Missing bathroom data is not evidence of a mismatch
            if record.bathrooms and not criteria.bathrooms.matches(record.bathrooms):
                return False

        if criteria.transaction_date_window_days is not None:
            if not self._is_within_date_window(
                record.transaction_date,
                criteria.transaction_date_window_days,
                today or self.reference_date,
            ):
                return False

        if criteria.property_type is not None:
            if (record.property_type or UNKNOWN_PROPERTY_TYPE) != criteria.property_type:
                return False

        distance = criteria.distance
        if distance.mode is DistanceMode.SAME_STREET:
            if not record.street_name or record.street_name != self.subject_street:
                return False
        elif distance.mode is DistanceMode.WITHIN:
            if (record.distance_metres or 0.0) > distance.max_metres:
                return False

        return True

    def sort(
        self,
        records: Iterable[TransactionRecord],
        sort_key: Union[SortKey, str] = DEFAULT_SORT,
    ) -> List[TransactionRecord]:
        """
        Stable sort; ties keep their input order.

        Raises:
            ValueError: If sort_key is not a known sort order
        """
        key = self._resolve_sort_key(sort_key)

        if key is SortKey.PRICE_HIGH:
            return sorted(records, key=lambda r: r.price, reverse=True)
        if key is SortKey.PRICE_LOW:
            return sorted(records, key=lambda r: r.price)
        if key is SortKey.NEWEST:
            return sorted(records, key=lambda r: r.transaction_date, reverse=True)
        if key is SortKey.OLDEST:
            return sorted(records, key=lambda r: r.transaction_date)
        return sorted(records, key=lambda r: r.distance_metres or 0.0)

    @staticmethod
    def _is_within_date_window(transaction_date: date, window_days: int, today: date) -> bool:
        """Calendar-day window; future-dated sales never qualify."""
        age_days = (today - transaction_date).days
        if age_days < 0:
            return False
        return age_days <= window_days

    @staticmethod
    def _resolve_sort_key(sort_key: Union[SortKey, str]) -> SortKey:
        if isinstance(sort_key, SortKey):
            return sort_key
        resolved = SortKey.from_string(sort_key)
        if resolved is None:
            raise ValueError(f"Unknown sort order: {sort_key!r}")
        return resolved

    @staticmethod
    def _records(transactions) -> List[TransactionRecord]:
        if isinstance(transactions, NormalizedTransactionSet):
            return transactions.records()
        return list(transactions)


def property_type_options(
    transactions: Union[NormalizedTransactionSet, Iterable[TransactionRecord]],
) -> List[str]:
    """Distinct property types present, sorted, for the type drop-down."""
    if isinstance(transactions, NormalizedTransactionSet):
        transactions = transactions.values()
    return sorted({t.property_type or UNKNOWN_PROPERTY_TYPE for t in transactions})
