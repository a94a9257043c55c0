"""
Selection Store for the Comp Engine

Holds the comparables a user has picked for one subject property and
the active valuation strategy.

User mutations (select, deselect, clear, set_strategy) mark the store
dirty, bump its version and notify listeners. Seeding from a loaded
remote record and pruning ids that vanished from a refreshed
transaction set do neither.
"""

import logging
import threading
from typing import Callable, Iterable, List, Mapping, Optional, Union

from .models import SelectionState, TransactionRecord, ValuationStrategy


logger = logging.getLogger(__name__)

MutationListener = Callable[["SelectionStore"], None]


class UnknownComparableError(ValueError):
    """Raised when selecting an id that is not in the current transaction set."""

    def __init__(self, property_id: str):
        super().__init__(f"Property {property_id} is not among the current transactions")
        self.property_id = property_id


class SelectionStore:
    """
    Ordered, duplicate-free set of selected property ids plus strategy.

    The store validates selections against the transaction set it is
    bound to; bind a new set with rebind() after every fetch. Safe to
    read from a background save thread while the owner mutates it.
    """

    def __init__(
        self,
        transactions: Optional[Mapping[str, TransactionRecord]] = None,
        strategy: ValuationStrategy = ValuationStrategy.AVERAGE,
    ):
        # None until a transaction set is bound
        self._transactions: Optional[Mapping[str, TransactionRecord]] = transactions
        # dict keys give insertion order with O(1) membership
        self._selected: dict[str, None] = {}
        self._strategy = strategy
        self._version = 0
        self._clean_version = 0
        self._listeners: List[MutationListener] = []
        self._lock = threading.RLock()

    # =========================================================================
    # Read Access
    # =========================================================================

    @property
    def selected_ids(self) -> List[str]:
        with self._lock:
            return list(self._selected)

    @property
    def strategy(self) -> ValuationStrategy:
        return self._strategy

    @property
    def version(self) -> int:
        """Count of user mutations so far."""
        return self._version

    @property
    def is_dirty(self) -> bool:
        """Changed by the user since the last mark_clean()."""
        return self._version != self._clean_version

    @property
    def user_interacted(self) -> bool:
        """Whether any user mutation has happened."""
        return self._version > 0

    def is_selected(self, property_id: str) -> bool:
        return property_id in self._selected

    def __len__(self) -> int:
        return len(self._selected)

    def snapshot(self) -> SelectionState:
        """Immutable copy of the current selection."""
        with self._lock:
            return SelectionState(selected_ids=tuple(self._selected), strategy=self._strategy)

    def versioned_snapshot(self) -> tuple[SelectionState, int]:
        """Snapshot together with the version it reflects."""
        with self._lock:
            return self.snapshot(), self._version

    # =========================================================================
    # User Mutations
    # =========================================================================

    def select(self, property_id: str) -> None:
        """
        Add a comparable. Selecting an already-selected id is a no-op.

        Raises:
            UnknownComparableError: If the id is not in the bound set
        """
        with self._lock:
            if self._transactions is None or property_id not in self._transactions:
                raise UnknownComparableError(property_id)
            if property_id in self._selected:
                return
            self._selected[property_id] = None
            self._version += 1
        self._notify()

    def deselect(self, property_id: str) -> None:
        """Remove a comparable. Deselecting an absent id is a no-op."""
        with self._lock:
            if property_id not in self._selected:
                return
            del self._selected[property_id]
            self._version += 1
        self._notify()

    def toggle(self, property_id: str) -> bool:
        """
        Select if unselected, otherwise deselect.

        Returns:
            True if the id is selected afterwards
        """
        if self.is_selected(property_id):
            self.deselect(property_id)
            return False
        self.select(property_id)
        return True

    def clear(self) -> None:
        """Remove every comparable."""
        with self._lock:
            if not self._selected:
                return
            self._selected.clear()
            self._version += 1
        self._notify()

    def set_strategy(self, strategy: Union[ValuationStrategy, str]) -> None:
        """
        Switch valuation strategy.

        Raises:
            ValueError: If a string strategy is not recognised
        """
        if not isinstance(strategy, ValuationStrategy):
            resolved = ValuationStrategy.from_string(str(strategy))
            if resolved is None:
                raise ValueError(f"Unknown valuation strategy: {strategy!r}")
            strategy = resolved
        with self._lock:
            if strategy is self._strategy:
                return
            self._strategy = strategy
            self._version += 1
        self._notify()

    # =========================================================================
    # Non-user Mutations
    # =========================================================================

    def seed(
        self,
        selected_ids: Iterable[str],
        strategy: Optional[ValuationStrategy] = None,
    ) -> None:
        """
        Replace state from a loaded remote record.

        Does not mark the store dirty or notify listeners. Ids missing
        from the bound set are dropped silently; with no set bound yet
        they are kept until rebind() checks them.
        """
        with self._lock:
            self._selected = {}
            for property_id in selected_ids:
                if self._transactions is None or property_id in self._transactions:
                    self._selected[property_id] = None
                else:
                    logger.debug("Dropping stale comparable %s from loaded selection", property_id)
            if strategy is not None:
                self._strategy = strategy

    def rebind(self, transactions: Mapping[str, TransactionRecord]) -> List[str]:
        """
        Bind a freshly normalized transaction set and prune stale ids.

        Returns:
            Ids that were pruned
        """
        with self._lock:
            self._transactions = transactions
            pruned = [pid for pid in self._selected if pid not in transactions]
            for property_id in pruned:
                del self._selected[property_id]
        if pruned:
            logger.debug("Pruned %d stale comparables: %s", len(pruned), pruned)
        return pruned

    def mark_clean(self, version: Optional[int] = None) -> None:
        """
        Record that state up to `version` has been persisted.

        A later version (a mutation made while saving) stays dirty.
        """
        with self._lock:
            target = self._version if version is None else version
            self._clean_version = max(self._clean_version, target)

    # =========================================================================
    # Listeners
    # =========================================================================

    def subscribe(self, listener: MutationListener) -> None:
        """Register a callback invoked after every user mutation."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: MutationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        # Called outside the lock so listeners may take their own locks
        for listener in list(self._listeners):
            listener(self)
