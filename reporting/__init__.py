"""
Reporting module for the Comparables Engine.

Renders plain-text comparables reports and the command line interface.

Usage:
    from reporting import build_report

    lines = build_report(context.filtered(), selected_ids, context.valuation())
    print("\n".join(lines))
"""

from .summary import (
    STRATEGY_LABELS,
    build_report,
    build_summary,
    format_transaction_row,
    format_valuation,
)

__all__ = [
    "STRATEGY_LABELS",
    "build_report",
    "build_summary",
    "format_transaction_row",
    "format_valuation",
]
