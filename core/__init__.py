"""
Comparables Engine - Core Business Logic

Comparable selection and valuation for a subject property:
1. Normalization (one record per sold property, latest sale wins)
2. Filtering & Sorting (bedrooms, bathrooms, date window, type, distance)
3. Selection (user-chosen comparables and valuation strategy)
4. Valuation (average price or price per sqm x subject area)
5. Persistence (debounced, idempotent sync per user and property)
"""

from .comp_engine import (
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
    TransactionNormalizer,
    normalize,
    FilterSortPipeline,
    property_type_options,
    SelectionStore,
    UnknownComparableError,
    ValuationCalculator,
)

from .persistence import (
    ComparablesPayload,
    PersistedComparablesRecord,
    PersistenceError,
    ComparablesStore,
    HttpComparablesStore,
    ComparablesRepository,
    get_comparables_repository,
    PersistenceSync,
    SyncState,
    ThreadingScheduler,
)

from .context import (
    ComparablesContext,
    ComparablesView,
    ComparablesSummary,
    ViewStatus,
)

__all__ = [
    # Comp Engine
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
    "TransactionNormalizer",
    "normalize",
    "FilterSortPipeline",
    "property_type_options",
    "SelectionStore",
    "UnknownComparableError",
    "ValuationCalculator",
    # Persistence
    "ComparablesPayload",
    "PersistedComparablesRecord",
    "PersistenceError",
    "ComparablesStore",
    "HttpComparablesStore",
    "ComparablesRepository",
    "get_comparables_repository",
    "PersistenceSync",
    "SyncState",
    "ThreadingScheduler",
    # Context
    "ComparablesContext",
    "ComparablesView",
    "ComparablesSummary",
    "ViewStatus",
]
