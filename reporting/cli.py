#!/usr/bin/env python3
"""
CLI for valuing a subject property from comparable sales.

Usage:
    python -m reporting.cli value <transactions_json> --area 80 --select ID [ID ...]
    python -m reporting.cli summary <transactions_json>

Examples:
    # Average of three selected comparables
    python -m reporting.cli value property.json --select P1 P2 P3

    # Price per sqm for an 80 sqm subject, 3-bed comparables within 1/2 mile
    python -m reporting.cli value property.json --area 80 --strategy price_per_sqm \\
        --bedrooms 3 --distance half_mile --select P1 P2

    # Keep the selection between runs
    python -m reporting.cli value property.json --uprn 100023336956 \\
        --data-file data/comparables.json --select P1
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from core.comp_engine import (
    SortKey,
    SubjectProperty,
    UnknownComparableError,
    ValuationStrategy,
    extract_nearby_transactions,
)
from core.context import ComparablesContext
from core.persistence import ComparablesRepository, HttpComparablesStore
from utils.config import Config

from .summary import build_report, build_summary


CLI_USER_ID = "cli"


def load_transactions(path: Path) -> list:
    """
    Read a provider property response or a bare transaction list.

    Raises:
        OSError: If the file cannot be read
        ValueError: If the file is not valid JSON
    """
    with open(path, "r") as f:
        data = json.load(f)
    return extract_nearby_transactions(data)


def build_context(args) -> ComparablesContext:
    """Open a context for the CLI arguments."""
    config = Config.load()
    subject = SubjectProperty(
        property_id=args.uprn,
        area_sqm=args.area,
        street_name=args.street,
    )
    if args.remote:
        store = HttpComparablesStore(config.comparables_api_url, timeout=config.request_timeout)
    else:
        store = ComparablesRepository(args.data_file)
    context = ComparablesContext(
        user_id=args.user,
        subject=subject,
        store=store,
        tz_name=config.reference_timezone,
        # One-shot runs; pending changes are flushed on close
        debounce_seconds=config.save_debounce_seconds,
        max_retries=config.max_retries,
    )
    return context.open(load_transactions(Path(args.transactions_file)))


def cmd_value(args):
    """Filter, select and value comparables."""
    try:
        context = build_context(args)
    except (OSError, ValueError) as e:
        print(f"Error: Could not read transactions: {e}", file=sys.stderr)
        return 1

    with context:
        try:
            context.set_filters({
                "bedrooms": args.bedrooms,
                "bathrooms": args.bathrooms,
                "transactionDate": args.days,
                "propertyType": args.property_type,
                "distance": args.distance,
            })
        except ValueError as e:
            print(f"Error: Invalid filter: {e}", file=sys.stderr)
            return 1
        context.set_sort(args.sort)

        # Reject the whole run before touching the stored selection
        for property_id in args.select or []:
            if property_id not in context.transactions:
                print(f"Error: {UnknownComparableError(property_id)}", file=sys.stderr)
                return 1

        if args.strategy:
            context.set_strategy(args.strategy)
        if args.select:
            context.clear_selection()
            for property_id in args.select:
                context.select(property_id)

        lines = build_report(
            context.filtered(),
            list(context.selection.selected_ids),
            context.valuation(),
        )

    print("\n".join(lines))
    return 0


def cmd_summary(args):
    """Print normalization and selection counts."""
    try:
        context = build_context(args)
    except (OSError, ValueError) as e:
        print(f"Error: Could not read transactions: {e}", file=sys.stderr)
        return 1

    with context:
        lines = build_summary(context.summary())

    print("\n".join(lines))
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Comparables Engine - value a property from selected comparable sales",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m reporting.cli value property.json --area 80 --select P1 P2
    python -m reporting.cli summary property.json
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("transactions_file", help="Path to provider JSON or transaction list")
    common.add_argument("--uprn", default="subject", help="Subject property id")
    common.add_argument("--area", type=float, default=0.0, help="Subject floor area (sqm)")
    common.add_argument("--street", default="", help="Subject street (for same-street filter)")
    common.add_argument("--data-file", default=None, help="JSON file to keep selections in")
    common.add_argument(
        "--remote",
        action="store_true",
        help="Keep selections in the comparables API (COMPARABLES_API_URL)",
    )
    common.add_argument("--user", default=CLI_USER_ID, help="User id for saved selections")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Value command
    value_parser = subparsers.add_parser(
        "value",
        parents=[common],
        help="Filter comparables and value the subject",
    )
    value_parser.add_argument("--select", nargs="+", default=None, help="Comparable ids")
    value_parser.add_argument(
        "--strategy",
        choices=[s.value for s in ValuationStrategy],
        default=None,
    )
    value_parser.add_argument("--bedrooms", default="any", help="e.g. 3 or 5+")
    value_parser.add_argument("--bathrooms", default="any", help="e.g. 2 or 4+")
    value_parser.add_argument("--days", default="any", help="Sold within N days")
    value_parser.add_argument("--property-type", default="any")
    value_parser.add_argument(
        "--distance",
        default="any",
        help="same_street, quarter_mile, half_mile, one_mile or metres",
    )
    value_parser.add_argument(
        "--sort",
        choices=[k.value for k in SortKey],
        default=SortKey.NEWEST.value,
    )
    value_parser.set_defaults(func=cmd_value)

    # Summary command
    summary_parser = subparsers.add_parser(
        "summary",
        parents=[common],
        help="Show normalization counts",
    )
    summary_parser.set_defaults(func=cmd_summary)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
