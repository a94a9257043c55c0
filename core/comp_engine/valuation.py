"""
Valuation Calculator for the Comp Engine

Derives a single estimate from the user's selected comparables:
- average: mean sale price of the selected records
- price_per_sqm: mean price per square metre x subject floor area

Selected ids that no longer resolve to a record are skipped, not
counted as zero. basis_count always reports the records actually used.
"""

from typing import List, Mapping, Optional

from .models import (
    SelectionState,
    TransactionRecord,
    ValuationResult,
    ValuationStrategy,
)


class ValuationCalculator:
    """
    Pure valuation over a selection and a normalized transaction set.

    Recomputed on every state change; nothing is cached.
    """

    def compute(
        self,
        selection: SelectionState,
        transactions: Mapping[str, TransactionRecord],
        subject_area_sqm: Optional[float],
    ) -> ValuationResult:
        """
        Compute the valuation for a selection.

        Args:
            selection: Selected ids and strategy
            transactions: Current normalized set (property_id -> record)
            subject_area_sqm: Subject floor area; 0/None disables
                price_per_sqm

        Returns:
            ValuationResult (amount None when no valuation is possible)
        """
        selected = self.resolve(selection, transactions)

        if selection.strategy is ValuationStrategy.PRICE_PER_SQM:
            amount, basis = self._price_per_sqm(selected, subject_area_sqm)
        else:
            amount, basis = self._average(selected)

        return ValuationResult(
            amount=amount,
            basis_count=basis,
            strategy=selection.strategy,
            selected_count=selection.selected_count,
        )

    @staticmethod
    def resolve(
        selection: SelectionState,
        transactions: Mapping[str, TransactionRecord],
    ) -> List[TransactionRecord]:
        """Selected records still present in the set, in selection order."""
        return [transactions[pid] for pid in selection.selected_ids if pid in transactions]

    def _average(self, selected: List[TransactionRecord]) -> tuple[Optional[float], int]:
        """
        Mean sale price.

        Returns:
            Tuple of (amount or None, records used)
        """
        if not selected:
            return None, 0
        total = sum(r.price for r in selected)
        return total / len(selected), len(selected)

    def _price_per_sqm(
        self,
        selected: List[TransactionRecord],
        subject_area_sqm: Optional[float],
    ) -> tuple[Optional[float], int]:
        """
        Mean price per sqm applied to the subject area.

        Only records with a positive price_per_sqm qualify. Amount is
        None when none qualify or the subject area is unknown.
        """
        qualifying = [r for r in selected if r.has_price_per_sqm]
        if not qualifying:
            return None, 0
        if not subject_area_sqm or subject_area_sqm <= 0:
            return None, 0

        mean_per_sqm = sum(r.price_per_sqm for r in qualifying) / len(qualifying)
        return mean_per_sqm * subject_area_sqm, len(qualifying)
