"""
Comparables Context - One User's Comparables for One Subject Property

Owns the normalized transactions, the selection, the browsing filters
and the persistence sync for a single (user, subject property) pair,
and tears them down together on close().

Pipeline:
1. NORMALIZE - deduplicate raw nearby transactions
2. LOAD      - seed the selection from the remote store (no save)
3. BROWSE    - filter and sort the unselected transactions
4. SELECT    - user selects/deselects comparables, switches strategy
5. VALUE     - recompute valuation from the selection
6. SYNC      - debounced save of selection, strategy and valuation
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, List, Optional, Union

from .comp_engine import (
    FilterCriteria,
    FilterSortPipeline,
    NormalizedTransactionSet,
    SelectionState,
    SelectionStore,
    SortKey,
    SubjectProperty,
    TransactionNormalizer,
    TransactionRecord,
    ValuationCalculator,
    ValuationResult,
    ValuationStrategy,
    property_type_options,
)
from .comp_engine.filters import DEFAULT_SORT, DEFAULT_TIMEZONE
from .persistence import ComparablesStore, PersistenceSync, Scheduler, SyncState
from .persistence.sync import DEFAULT_DEBOUNCE_SECONDS, DEFAULT_MAX_RETRIES


class ViewStatus(Enum):
    """What the comparables list should render."""
    NOT_LOADED = "not_loaded"
    NO_MATCHES = "no_matches"
    READY = "ready"


@dataclass
class ComparablesView:
    """
    Browsable state of the context.

    available: filtered and sorted transactions not yet selected
    selected: selected transactions, most recent sale first
    """
    status: ViewStatus
    available: List[TransactionRecord] = field(default_factory=list)
    selected: List[TransactionRecord] = field(default_factory=list)
    filtered_count: int = 0

    @property
    def has_matches(self) -> bool:
        return self.status is ViewStatus.READY


@dataclass
class ComparablesSummary:
    """Counts describing the current context, for display and logging."""
    total_transactions: int
    normalized_count: int
    duplicates_removed: int
    filtered_count: int
    selected_count: int
    basis_count: int

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "total_transactions": self.total_transactions,
            "normalized_count": self.normalized_count,
            "duplicates_removed": self.duplicates_removed,
            "filtered_count": self.filtered_count,
            "selected_count": self.selected_count,
            "basis_count": self.basis_count,
        }


class ComparablesContext:
    """
    Comparable selection and valuation for one subject property.

    All mutations go through this object so the selection, valuation and
    persisted record stay consistent.
    """

    def __init__(
        self,
        user_id: str,
        subject: SubjectProperty,
        store: ComparablesStore,
        reference_date: Optional[date] = None,
        tz_name: str = DEFAULT_TIMEZONE,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        scheduler: Optional[Scheduler] = None,
    ):
        """
        Initialise context. Call open() before use.

        Args:
            user_id: Owner of the selection
            subject: Subject property (area and street feed the engine)
            store: Remote comparables store
            reference_date: "Today" for date filters (default: today in tz_name)
            tz_name: Reference timezone for date filters
            debounce_seconds: Save debounce window
            max_retries: Automatic retries after a failed save
            scheduler: Timer source for the debounce
        """
        self.user_id = user_id
        self.subject = subject

        self._normalizer = TransactionNormalizer()
        self._pipeline = FilterSortPipeline(
            reference_date=reference_date,
            subject_street=subject.street_name,
            tz_name=tz_name,
        )
        self._calculator = ValuationCalculator()

        self._transactions: Optional[NormalizedTransactionSet] = None
        self._selection = SelectionStore()
        self._sync = PersistenceSync(
            store=store,
            user_id=user_id,
            subject_property_id=subject.property_id,
            selection=self._selection,
            valuation_fn=self._cached_valuation,
            debounce_seconds=debounce_seconds,
            max_retries=max_retries,
            scheduler=scheduler,
        )

        self.filters = FilterCriteria()
        self.sort_key: SortKey = DEFAULT_SORT
        self._closed = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def open(self, raw_transactions: Optional[Iterable] = None) -> "ComparablesContext":
        """
        Normalize the transactions (if given) and load the stored selection.

        Returns:
            self, for chaining
        """
        if raw_transactions is not None:
            self.set_transactions(raw_transactions)
        self._sync.load()
        return self

    def close(self) -> None:
        """Flush any unsaved change and discard state."""
        if self._closed:
            return
        self._sync.close(flush=True)
        self._transactions = None
        self._selection = SelectionStore()
        self._closed = True

    def __enter__(self) -> "ComparablesContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def sync(self) -> PersistenceSync:
        return self._sync

    @property
    def sync_state(self) -> SyncState:
        return self._sync.state

    # =========================================================================
    # Transactions
    # =========================================================================

    def set_transactions(self, raw_transactions: Iterable) -> NormalizedTransactionSet:
        """
        Replace the transaction set after a new fetch.

        Selected ids that no longer appear are pruned silently; pruning
        is not a user edit and does not trigger a save.
        """
        self._transactions = self._normalizer.normalize(raw_transactions)
        self._selection.rebind(self._transactions)
        return self._transactions

    @property
    def transactions(self) -> Optional[NormalizedTransactionSet]:
        """Current normalized set, or None before any fetch."""
        return self._transactions

    def property_types(self) -> List[str]:
        if self._transactions is None:
            return []
        return property_type_options(self._transactions)

    # =========================================================================
    # Browsing
    # =========================================================================

    def set_filters(self, filters: Union[FilterCriteria, dict, None]) -> None:
        """Set filters from FilterCriteria or the UI's string dict."""
        if not isinstance(filters, FilterCriteria):
            filters = FilterCriteria.from_dict(filters)
        self.filters = filters

    def set_sort(self, sort_key: Union[SortKey, str]) -> None:
        """
        Raises:
            ValueError: If sort_key is not a known sort order
        """
        if not isinstance(sort_key, SortKey):
            resolved = SortKey.from_string(sort_key)
            if resolved is None:
                raise ValueError(f"Unknown sort order: {sort_key!r}")
            sort_key = resolved
        self.sort_key = sort_key

    def filtered(self) -> List[TransactionRecord]:
        """All transactions passing the filters, in sort order."""
        if self._transactions is None:
            return []
        return self._pipeline.apply(self._transactions, self.filters, self.sort_key)

    def view(self) -> ComparablesView:
        """Current list state for rendering."""
        if self._transactions is None:
            return ComparablesView(status=ViewStatus.NOT_LOADED)

        filtered = self.filtered()
        available = [t for t in filtered if not self._selection.is_selected(t.property_id)]
        selected = self._pipeline.sort(self.selected_transactions(), SortKey.NEWEST)

        return ComparablesView(
            status=ViewStatus.READY if filtered else ViewStatus.NO_MATCHES,
            available=available,
            selected=selected,
            filtered_count=len(filtered),
        )

    # =========================================================================
    # Selection
    # =========================================================================

    def select(self, property_id: str) -> None:
        self._selection.select(property_id)

    def deselect(self, property_id: str) -> None:
        self._selection.deselect(property_id)

    def toggle(self, property_id: str) -> bool:
        return self._selection.toggle(property_id)

    def clear_selection(self) -> None:
        self._selection.clear()

    def set_strategy(self, strategy: Union[ValuationStrategy, str]) -> None:
        self._selection.set_strategy(strategy)

    @property
    def selection(self) -> SelectionState:
        return self._selection.snapshot()

    def selected_transactions(self) -> List[TransactionRecord]:
        """Selected records still present, in selection order."""
        if self._transactions is None:
            return []
        return self._calculator.resolve(self._selection.snapshot(), self._transactions)

    # =========================================================================
    # Valuation
    # =========================================================================

    def valuation(self) -> ValuationResult:
        """Valuation of the subject from the current selection."""
        return self._value(self._selection.snapshot())

    def summary(self) -> ComparablesSummary:
        transactions = self._transactions
        return ComparablesSummary(
            total_transactions=transactions.raw_count if transactions is not None else 0,
            normalized_count=len(transactions) if transactions is not None else 0,
            duplicates_removed=transactions.duplicates_removed if transactions is not None else 0,
            filtered_count=len(self.filtered()),
            selected_count=len(self._selection),
            basis_count=self.valuation().basis_count,
        )

    def _value(self, snapshot: SelectionState) -> ValuationResult:
        return self._calculator.compute(
            snapshot,
            self._transactions if self._transactions is not None else {},
            self.subject.area_sqm,
        )

    def _cached_valuation(self, snapshot: SelectionState) -> Optional[float]:
        return self._value(snapshot).amount
