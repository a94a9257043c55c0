"""
Comp Engine

Comparable sales selection and valuation: normalizes nearby
transactions for a subject property, filters and sorts them, tracks the
user's selected comparables and values the subject from that selection.
"""

from .models import (
    TransactionRecord,
    NormalizedTransactionSet,
    FilterCriteria,
    RoomFilter,
    DistanceFilter,
    DistanceMode,
    SortKey,
    SubjectProperty,
    SelectionState,
    ValuationStrategy,
    ValuationResult,
)
from .normalizer import TransactionNormalizer, normalize, extract_nearby_transactions
from .filters import FilterSortPipeline, property_type_options, reference_today
from .selection import SelectionStore, UnknownComparableError
from .valuation import ValuationCalculator

__all__ = [
    # Models
    "TransactionRecord",
    "NormalizedTransactionSet",
    "FilterCriteria",
    "RoomFilter",
    "DistanceFilter",
    "DistanceMode",
    "SortKey",
    "SubjectProperty",
    "SelectionState",
    "ValuationStrategy",
    "ValuationResult",
    # Engine
    "TransactionNormalizer",
    "normalize",
    "extract_nearby_transactions",
    "FilterSortPipeline",
    "property_type_options",
    "reference_today",
    "SelectionStore",
    "UnknownComparableError",
    "ValuationCalculator",
]

__version__ = "1.0"
