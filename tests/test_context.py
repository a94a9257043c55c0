"""
Tests for ComparablesContext

End-to-end flow for one user and one subject property:
open -> browse -> select -> value -> save -> close.
"""

import pytest
from datetime import date
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core import (
    ComparablesContext,
    ComparablesPayload,
    ComparablesRepository,
    SortKey,
    SubjectProperty,
    SyncState,
    UnknownComparableError,
    ValuationStrategy,
    ViewStatus,
)


USER = "user-1"


@pytest.fixture
def raw_transactions():
    return [
        {"property_id": "A", "price": 200000, "transaction_date": "2024-03-01",
         "bedrooms": 3, "price_per_sqm": 2500, "street_name": "Mill Lane", "distance_metres": 50},
        {"property_id": "B", "price": 220000, "transaction_date": "2024-05-01",
         "bedrooms": 3, "price_per_sqm": 2700, "street_name": "Elm Road", "distance_metres": 600},
        {"property_id": "C", "price": 210000, "transaction_date": "2023-11-20",
         "bedrooms": 4, "property_type": "Detached", "distance_metres": 1200},
        {"property_id": "A", "price": 150000, "transaction_date": "2015-07-01"},
    ]


@pytest.fixture
def subject():
    return SubjectProperty(property_id="100023336956", area_sqm=80, street_name="Mill Lane")


@pytest.fixture
def repo():
    return ComparablesRepository()


@pytest.fixture
def context(subject, repo, scheduler, raw_transactions):
    ctx = ComparablesContext(
        user_id=USER,
        subject=subject,
        store=repo,
        reference_date=date(2024, 6, 1),
        scheduler=scheduler,
    )
    return ctx.open(raw_transactions)


class TestBrowsing:
    """Tests for filtering and the view."""

    def test_not_loaded_before_transactions(self, subject, repo, scheduler):
        ctx = ComparablesContext(USER, subject, repo, scheduler=scheduler)

        assert ctx.view().status is ViewStatus.NOT_LOADED
        assert ctx.filtered() == []

    def test_default_view_newest_first(self, context):
        view = context.view()

        assert view.status is ViewStatus.READY
        assert [t.property_id for t in view.available] == ["B", "A", "C"]
        assert context.transactions["A"].price == 200000

    def test_no_matches_state(self, context):
        context.set_filters({"propertyType": "Castle"})

        view = context.view()

        assert view.status is ViewStatus.NO_MATCHES
        assert not view.has_matches

    def test_same_street_uses_subject_street(self, context):
        context.set_filters({"distance": "same_street"})

        assert [t.property_id for t in context.filtered()] == ["A"]

    def test_selected_move_out_of_available(self, context):
        context.select("C")
        context.select("B")
        context.set_sort(SortKey.PRICE_HIGH)

        view = context.view()

        assert [t.property_id for t in view.available] == ["A"]
        assert [t.property_id for t in view.selected] == ["B", "C"]

    def test_property_types(self, context):
        assert context.property_types() == ["Detached", "Unknown"]

    def test_unknown_sort(self, context):
        with pytest.raises(ValueError):
            context.set_sort("cheapest")


class TestValuationFlow:
    """Tests for selection and valuation through the context."""

    def test_average(self, context):
        for pid in ("A", "B", "C"):
            context.select(pid)

        result = context.valuation()

        assert result.amount == 210000
        assert result.basis_count == 3

    def test_price_per_sqm(self, context):
        for pid in ("A", "B", "C"):
            context.select(pid)
        context.set_strategy("price_per_sqm")

        result = context.valuation()

        assert result.amount == pytest.approx(208000)
        assert result.basis_count == 2

    def test_unknown_id_rejected(self, context):
        with pytest.raises(UnknownComparableError):
            context.select("Z")

    def test_refresh_prunes_stale_selection(self, context, raw_transactions, scheduler):
        context.select("A")
        context.select("B")
        scheduler.fire_pending()

        refreshed = context.set_transactions([t for t in raw_transactions if t["property_id"] != "B"])

        assert context.selection.selected_ids == ("A",)
        assert context.valuation().basis_count == 1
        assert refreshed.duplicates_removed == 1
        assert scheduler.pending == []

    def test_summary(self, context):
        context.select("A")
        context.set_filters({"bedrooms": "3"})

        summary = context.summary()

        assert summary.total_transactions == 4
        assert summary.normalized_count == 3
        assert summary.duplicates_removed == 1
        assert summary.filtered_count == 2
        assert summary.selected_count == 1
        assert summary.basis_count == 1


class TestPersistence:
    """Tests for load/save through the context."""

    def test_open_restores_saved_selection_without_saving(
        self, subject, repo, scheduler, raw_transactions
    ):
        repo.save(USER, subject.property_id, ComparablesPayload(("B",), ValuationStrategy.PRICE_PER_SQM))
        before = repo.load(USER, subject.property_id)

        ctx = ComparablesContext(USER, subject, repo, scheduler=scheduler).open(raw_transactions)

        assert ctx.selection.selected_ids == ("B",)
        assert ctx.selection.strategy is ValuationStrategy.PRICE_PER_SQM
        assert ctx.sync_state is SyncState.LOADED
        assert scheduler.pending == []
        assert repo.load(USER, subject.property_id) is before

    def test_save_carries_cached_valuation(self, context, repo, subject, scheduler):
        context.select("A")
        context.select("B")
        scheduler.fire_pending()

        record = repo.load(USER, subject.property_id)

        assert record.selected_ids == ("A", "B")
        assert record.cached_valuation == 210000

    def test_close_flushes_and_discards(self, context, repo, subject):
        context.select("C")

        with context:
            pass

        assert repo.load(USER, subject.property_id).selected_ids == ("C",)
        assert context.transactions is None
        assert context.selection.selected_ids == ()
        context.close()

    def test_saved_selection_survives_open_before_fetch(self, subject, repo, scheduler, raw_transactions):
        repo.save(USER, subject.property_id, ComparablesPayload(("A", "B"), ValuationStrategy.AVERAGE))
        ctx = ComparablesContext(USER, subject, repo, scheduler=scheduler).open()

        assert ctx.view().status is ViewStatus.NOT_LOADED
        assert ctx.selection.selected_ids == ("A", "B")

        ctx.set_transactions(raw_transactions + [
            {"property_id": "D", "price": 190000, "transaction_date": "2024-01-10"},
        ])
        assert ctx.selection.selected_ids == ("A", "B")
        assert scheduler.pending == []

        ctx.select("D")
        scheduler.fire_pending()

        assert repo.load(USER, subject.property_id).selected_ids == ("A", "B", "D")

    def test_fetch_prunes_saved_ids_missing_from_first_set(self, subject, repo, scheduler, raw_transactions):
        repo.save(USER, subject.property_id, ComparablesPayload(("A", "GONE"), ValuationStrategy.AVERAGE))
        ctx = ComparablesContext(USER, subject, repo, scheduler=scheduler).open()

        ctx.set_transactions(raw_transactions)

        assert ctx.selection.selected_ids == ("A",)
        assert scheduler.pending == []
