"""
Plain-text comparables report.

Renders the filtered comparables table, the selected comparables and
the valuation (with how many comparables it is based on).
"""

from typing import List

from core.comp_engine import TransactionRecord, ValuationResult, ValuationStrategy
from core.context import ComparablesSummary
from utils.formatting import format_currency, format_date, format_distance


STRATEGY_LABELS = {
    ValuationStrategy.AVERAGE: "simple average",
    ValuationStrategy.PRICE_PER_SQM: "price per square metre",
}


def format_transaction_row(record: TransactionRecord, selected: bool = False) -> str:
    """One table row: marker, date, price, beds/baths, distance, address."""
    marker = "*" if selected else " "
    return (
        f"{marker} {record.property_id:<14} "
        f"{format_date(record.transaction_date):<12} "
        f"{format_currency(record.price):>12} "
        f"{record.bedrooms or 0} bed {record.bathrooms or 0} bath  "
        f"{format_distance(record.distance_metres):>7}  "
        f"{record.display_address}"
    )


def format_valuation(valuation: ValuationResult) -> str:
    """Valuation line, e.g. '£210,000 (based on 3 comparables using simple average)'."""
    if not valuation.is_available:
        if valuation.selected_count == 0:
            return "No valuation available - select comparables to calculate valuation"
        return (
            f"No valuation available - none of the {valuation.selected_count} selected "
            f"comparables can be used with {STRATEGY_LABELS[valuation.strategy]}"
        )

    plural = "" if valuation.basis_count == 1 else "s"
    line = (
        f"{format_currency(valuation.amount)} (based on {valuation.basis_count} "
        f"comparable{plural} using {STRATEGY_LABELS[valuation.strategy]})"
    )
    if valuation.excluded_count:
        line += f"; {valuation.excluded_count} selected comparable(s) not used"
    return line


def build_report(
    transactions: List[TransactionRecord],
    selected_ids: List[str],
    valuation: ValuationResult,
) -> List[str]:
    """Full report as a list of lines."""
    selected = set(selected_ids)
    lines = [f"Comparables ({len(transactions)} matching)"]
    if not transactions:
        lines.append("  No comparables match the current filters")
    for record in transactions:
        lines.append(format_transaction_row(record, record.property_id in selected))
    lines.append("")
    lines.append(f"Valuation: {format_valuation(valuation)}")
    return lines


def build_summary(summary: ComparablesSummary) -> List[str]:
    """Normalization and selection counts as a list of lines."""
    return [
        f"Total transactions:  {summary.total_transactions}",
        f"Unique properties:   {summary.normalized_count}",
        f"Duplicates removed:  {summary.duplicates_removed}",
        f"Matching filters:    {summary.filtered_count}",
        f"Selected:            {summary.selected_count}",
        f"Used in valuation:   {summary.basis_count}",
    ]
