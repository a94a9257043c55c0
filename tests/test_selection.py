"""
Tests for the Selection Store

Verifies:
- Select/deselect/clear/strategy are idempotent where a no-op is expected
- Unknown ids are rejected
- Seeding and pruning are not user edits
- Dirty tracking follows versions
"""

import pytest
from datetime import date
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.comp_engine import (
    NormalizedTransactionSet,
    SelectionStore,
    TransactionRecord,
    UnknownComparableError,
    ValuationStrategy,
)


@pytest.fixture
def transactions():
    return NormalizedTransactionSet({
        pid: TransactionRecord(property_id=pid, transaction_date=date(2023, 1, 1), price=100000)
        for pid in ("A", "B", "C")
    })


@pytest.fixture
def store(transactions):
    return SelectionStore(transactions)


@pytest.fixture
def mutations(store):
    """Records every listener notification."""
    seen = []
    store.subscribe(lambda s: seen.append(s.snapshot()))
    return seen


class TestUserMutations:
    """Tests for user-driven changes."""

    def test_select_keeps_order_without_duplicates(self, store, mutations):
        store.select("B")
        store.select("A")
        store.select("B")

        assert store.selected_ids == ["B", "A"]
        assert len(mutations) == 2
        assert store.version == 2

    def test_select_unknown_id_rejected(self, store, mutations):
        with pytest.raises(UnknownComparableError) as exc_info:
            store.select("Z")

        assert exc_info.value.property_id == "Z"
        assert isinstance(exc_info.value, ValueError)
        assert store.selected_ids == []
        assert mutations == []

    def test_deselect_absent_is_noop(self, store, mutations):
        store.deselect("A")

        assert mutations == []
        assert not store.is_dirty

    def test_toggle(self, store):
        assert store.toggle("A") is True
        assert store.toggle("A") is False
        assert store.selected_ids == []

    def test_clear(self, store, mutations):
        store.clear()
        assert mutations == []

        store.select("A")
        store.select("C")
        store.clear()

        assert len(store) == 0
        assert len(mutations) == 3

    def test_set_strategy_accepts_strings(self, store, mutations):
        store.set_strategy("price_per_sqm")
        store.set_strategy(ValuationStrategy.PRICE_PER_SQM)

        assert store.strategy is ValuationStrategy.PRICE_PER_SQM
        assert len(mutations) == 1

    def test_set_strategy_rejects_unknown(self, store):
        with pytest.raises(ValueError):
            store.set_strategy("median")

    def test_snapshot_is_immutable_copy(self, store):
        store.select("A")
        snapshot = store.snapshot()
        store.select("B")

        assert snapshot.selected_ids == ("A",)
        assert "A" in snapshot
        assert snapshot.selected_count == 1


class TestNonUserMutations:
    """Tests for seeding and pruning."""

    def test_seed_is_not_a_user_edit(self, store, mutations):
        store.seed(["C", "A", "GONE"], ValuationStrategy.PRICE_PER_SQM)

        assert store.selected_ids == ["C", "A"]
        assert store.strategy is ValuationStrategy.PRICE_PER_SQM
        assert mutations == []
        assert not store.is_dirty
        assert not store.user_interacted

    def test_rebind_prunes_stale_ids(self, store, transactions, mutations):
        store.select("A")
        store.select("B")
        refreshed = NormalizedTransactionSet({"B": transactions["B"]})

        pruned = store.rebind(refreshed)

        assert pruned == ["A"]
        assert store.selected_ids == ["B"]
        assert len(mutations) == 2

    def test_rebind_changes_what_can_be_selected(self, store):
        store.rebind(NormalizedTransactionSet())

        with pytest.raises(UnknownComparableError):
            store.select("A")


class TestDirtyTracking:
    """Tests for version-based dirty tracking."""

    def test_mark_clean(self, store):
        store.select("A")
        assert store.is_dirty

        store.mark_clean()

        assert not store.is_dirty
        assert store.user_interacted

    def test_later_mutation_stays_dirty(self, store):
        store.select("A")
        _, saved_version = store.versioned_snapshot()
        store.select("B")

        store.mark_clean(saved_version)

        assert store.is_dirty

    def test_unsubscribe(self, store):
        seen = []
        listener = seen.append
        store.subscribe(listener)
        store.unsubscribe(listener)
        store.select("A")

        assert seen == []


class TestUnboundStore:
    """Tests for a store that has not been given a transaction set yet."""

    def test_seed_keeps_ids_until_bound(self):
        store = SelectionStore()

        store.seed(["A", "B"])

        assert store.selected_ids == ["A", "B"]
        assert not store.is_dirty

    def test_rebind_checks_seeded_ids(self, transactions):
        store = SelectionStore()
        store.seed(["A", "GONE"])

        assert store.rebind(transactions) == ["GONE"]
        assert store.selected_ids == ["A"]

    def test_select_rejected_before_bind(self):
        with pytest.raises(UnknownComparableError):
            SelectionStore().select("A")
