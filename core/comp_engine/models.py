"""
Data models for the Comp Engine

Defines the nearby-transaction records supplied by the property data
provider, the filter and sort vocabulary used to browse them, and the
selection and valuation results built from them.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterator, List, Optional, Tuple


# =============================================================================
# Enumerations
# =============================================================================


class ValuationStrategy(Enum):
    """
    Arithmetic method used to turn a selection into a single valuation.

    AVERAGE: mean sale price of the selected comparables
    PRICE_PER_SQM: mean price per square metre x subject floor area
    """
    AVERAGE = "average"
    PRICE_PER_SQM = "price_per_sqm"

    @classmethod
    def from_string(cls, value: str) -> Optional["ValuationStrategy"]:
        """Convert string to ValuationStrategy, case-insensitive."""
        normalised = value.lower().strip()
        for member in cls:
            if member.value == normalised:
                return member
        return None


class SortKey(Enum):
    """Sort orders offered for the comparables list."""
    PRICE_HIGH = "price-high"
    PRICE_LOW = "price-low"
    NEWEST = "newest"
    OLDEST = "oldest"
    CLOSEST = "closest"

    @classmethod
    def from_string(cls, value: str) -> Optional["SortKey"]:
        """Convert string to SortKey, case-insensitive."""
        normalised = value.lower().strip().replace("_", "-")
        for member in cls:
            if member.value == normalised:
                return member
        return None


class DistanceMode(Enum):
    """How the distance criterion restricts records."""
    ANY = "any"
    SAME_STREET = "same_street"
    WITHIN = "within"


# Named distance buckets (metres)
QUARTER_MILE_METRES = 402
HALF_MILE_METRES = 805
ONE_MILE_METRES = 1609

DISTANCE_PRESETS = {
    "quarter_mile": QUARTER_MILE_METRES,
    "half_mile": HALF_MILE_METRES,
    "one_mile": ONE_MILE_METRES,
}

_ANY_VALUES = ("", "any")
_ROOM_PATTERN = re.compile(r"^(\d+)(\+?)$")


def _is_any(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip().lower() in _ANY_VALUES)


# =============================================================================
# Transaction Records
# =============================================================================


def _coerce_date(value: Any) -> date:
    """
    Reduce a provider date value to its calendar date.

    Accepts date, datetime or ISO strings with or without a time part.
    Time of day and timezone are discarded.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Invalid transaction_date: {value!r}")


def _coerce_price(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Invalid price: {value!r}")
    try:
        price = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"Invalid price: {value!r}") from None
    if price < 0:
        raise ValueError(f"Price must be non-negative: {value!r}")
    return price


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number >= 0 else None


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number < 0:  # NaN
        return None
    return number


def _optional_coordinate(value: Any) -> Optional[float]:
    # Coordinates may be negative
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first_present(*values: Any) -> Any:
    """First value that is not None (0 and 0.0 count as present)."""
    for value in values:
        if value is not None:
            return value
    return None


def _dig(data: Any, *keys: str) -> Any:
    """Walk nested dicts, returning None when any level is missing."""
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


@dataclass(frozen=True)
class TransactionRecord:
    """
    One historical sale near the subject property.

    property_id identifies the sold property, not the sale event: the
    same property may appear once per sale in the raw provider list.

    Optional fields fall back as follows:
        - bedrooms absent: treated as 0 by the bedroom filter
        - bathrooms absent or 0: passes every bathroom filter
        - price_per_sqm absent: excluded from price-per-sqm valuations
        - distance_metres absent: treated as 0 for filtering and sorting
        - street_name absent: fails the "same street" filter
    """
    # Required fields
    property_id: str
    transaction_date: date
    price: int  # Sale price in whole GBP

    # Optional attributes
    property_type: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    internal_area_sqm: Optional[float] = None
    price_per_sqm: Optional[float] = None
    distance_metres: Optional[float] = None

    # Address components
    street_name: Optional[str] = None
    address_lines: Optional[str] = None
    postcode: Optional[str] = None

    # Location
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @classmethod
    def from_provider(cls, raw: dict) -> "TransactionRecord":
        """
        Build a record from a provider nearby-transaction element.

        Understands the provider's nested shape as well as the flat
        snake_case form produced by to_dict().

        Raises:
            ValueError: If property id, price or transaction date is
                missing or malformed
        """
        if not isinstance(raw, dict):
            raise ValueError(f"Transaction must be a mapping, got {type(raw).__name__}")

        property_id = _optional_str(
            raw.get("street_group_property_id", raw.get("property_id"))
        )
        if property_id is None:
            raise ValueError("property_id is required")

        return cls(
            property_id=property_id,
            transaction_date=_coerce_date(raw.get("transaction_date")),
            price=_coerce_price(raw.get("price")),
            property_type=_optional_str(raw.get("property_type")),
            bedrooms=_optional_int(raw.get("number_of_bedrooms", raw.get("bedrooms"))),
            bathrooms=_optional_int(raw.get("number_of_bathrooms", raw.get("bathrooms"))),
            internal_area_sqm=_optional_float(
                raw.get("internal_area_square_metres", raw.get("internal_area_sqm"))
            ),
            price_per_sqm=_optional_float(
                raw.get("price_per_square_metre", raw.get("price_per_sqm"))
            ),
            distance_metres=_optional_float(
                raw.get("distance_in_metres", raw.get("distance_metres"))
            ),
            street_name=_optional_str(
                _dig(raw, "address", "simplified_format", "street") or raw.get("street_name")
            ),
            address_lines=_optional_str(
                _dig(raw, "address", "street_group_format", "address_lines")
                or raw.get("address_lines")
            ),
            postcode=_optional_str(
                _dig(raw, "address", "street_group_format", "postcode") or raw.get("postcode")
            ),
            latitude=_optional_coordinate(
                _first_present(_dig(raw, "location", "coordinates", "latitude"), raw.get("latitude"))
            ),
            longitude=_optional_coordinate(
                _first_present(_dig(raw, "location", "coordinates", "longitude"), raw.get("longitude"))
            ),
        )

    @property
    def has_price_per_sqm(self) -> bool:
        """Whether this record can contribute to a price-per-sqm valuation."""
        return self.price_per_sqm is not None and self.price_per_sqm > 0

    @property
    def display_address(self) -> str:
        """Address lines and postcode for display."""
        parts = [p for p in (self.address_lines, self.postcode) if p]
        return ", ".join(parts) if parts else "Address not available"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "property_id": self.property_id,
            "transaction_date": self.transaction_date.isoformat(),
            "price": self.price,
            "property_type": self.property_type,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "internal_area_sqm": self.internal_area_sqm,
            "price_per_sqm": self.price_per_sqm,
            "distance_metres": self.distance_metres,
            "street_name": self.street_name,
            "address_lines": self.address_lines,
            "postcode": self.postcode,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


class NormalizedTransactionSet(Mapping):
    """
    Read-only mapping of property_id to the single retained record.

    Iteration follows the order in which each property_id was first
    seen in the raw input. Built by TransactionNormalizer; a new set is
    produced on every fetch rather than mutating an existing one.
    """

    def __init__(self, records: Optional[dict] = None, raw_count: int = 0):
        self._records: dict[str, TransactionRecord] = dict(records or {})
        self._raw_count = raw_count

    def __getitem__(self, property_id: str) -> TransactionRecord:
        return self._records[property_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"NormalizedTransactionSet({len(self)} records)"

    @property
    def raw_count(self) -> int:
        """Number of raw records this set was built from."""
        return self._raw_count

    @property
    def duplicates_removed(self) -> int:
        """Raw records that did not survive normalization."""
        return max(self._raw_count - len(self), 0)

    def records(self) -> List[TransactionRecord]:
        """Retained records in first-seen order."""
        return list(self._records.values())


# =============================================================================
# Filter Criteria
# =============================================================================


@dataclass(frozen=True)
class RoomFilter:
    """
    Bedroom or bathroom criterion.

    Exact match on `count`, or `count` and above when `open_ended`
    (the "5+" / "4+" drop-down options).
    """
    count: int
    open_ended: bool = False

    @classmethod
    def parse(cls, value: Any) -> Optional["RoomFilter"]:
        """Parse "Any", "3", "4+" or an int. Returns None for "any"."""
        if _is_any(value):
            return None
        if isinstance(value, bool):
            raise ValueError(f"Invalid room filter: {value!r}")
        if isinstance(value, int):
            if value < 0:
                raise ValueError(f"Invalid room filter: {value!r}")
            return cls(count=value)
        match = _ROOM_PATTERN.match(str(value).strip())
        if not match:
            raise ValueError(f"Invalid room filter: {value!r}")
        return cls(count=int(match.group(1)), open_ended=bool(match.group(2)))

    def matches(self, rooms: int) -> bool:
        if self.open_ended:
            return rooms >= self.count
        return rooms == self.count

    def __str__(self) -> str:
        return f"{self.count}+" if self.open_ended else str(self.count)


@dataclass(frozen=True)
class DistanceFilter:
    """Distance criterion: unrestricted, same street, or within N metres."""
    mode: DistanceMode = DistanceMode.ANY
    max_metres: Optional[float] = None

    @classmethod
    def parse(cls, value: Any) -> "DistanceFilter":
        """Parse "any", "same_street", a preset name or a metres number."""
        if _is_any(value):
            return cls()
        if isinstance(value, bool):
            raise ValueError(f"Invalid distance filter: {value!r}")
        if isinstance(value, (int, float)):
            return cls.within(float(value))

        text = str(value).strip().lower()
        if text in ("same_street", "same street"):
            return cls(mode=DistanceMode.SAME_STREET)
        if text in DISTANCE_PRESETS:
            return cls.within(DISTANCE_PRESETS[text])
        try:
            return cls.within(float(text))
        except ValueError:
            raise ValueError(f"Invalid distance filter: {value!r}") from None

    @classmethod
    def within(cls, metres: float) -> "DistanceFilter":
        metres = float(metres)
        if not math.isfinite(metres) or metres < 0:
            raise ValueError(f"Distance threshold must be a non-negative number: {metres}")
        return cls(mode=DistanceMode.WITHIN, max_metres=metres)


@dataclass(frozen=True)
class FilterCriteria:
    """
    Filter set applied to the normalized transactions.

    None means "any" for every optional criterion. Owned by the browsing
    session; never persisted.
    """
    bedrooms: Optional[RoomFilter] = None
    bathrooms: Optional[RoomFilter] = None
    transaction_date_window_days: Optional[int] = None
    property_type: Optional[str] = None
    distance: DistanceFilter = field(default_factory=DistanceFilter)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "FilterCriteria":
        """
        Build criteria from the UI's string vocabulary.

        Keys: bedrooms, bathrooms, transactionDate (or
        transaction_date_window_days), propertyType (or property_type),
        distance. Missing keys mean "any".

        Raises:
            ValueError: If a value cannot be parsed
        """
        data = data or {}

        window = data.get("transactionDate", data.get("transaction_date_window_days"))
        window_days = None
        if not _is_any(window):
            try:
                window_days = int(window)
            except (TypeError, ValueError):
                raise ValueError(f"Invalid date window: {window!r}") from None
            if window_days < 0:
                raise ValueError(f"Invalid date window: {window!r}")

        property_type = data.get("propertyType", data.get("property_type"))
        if _is_any(property_type):
            property_type = None

        return cls(
            bedrooms=RoomFilter.parse(data.get("bedrooms")),
            bathrooms=RoomFilter.parse(data.get("bathrooms")),
            transaction_date_window_days=window_days,
            property_type=property_type,
            distance=DistanceFilter.parse(data.get("distance")),
        )

    @property
    def active_count(self) -> int:
        """Number of criteria that restrict the result."""
        return sum([
            self.bedrooms is not None,
            self.bathrooms is not None,
            self.transaction_date_window_days is not None,
            self.property_type is not None,
            self.distance.mode is not DistanceMode.ANY,
        ])


# =============================================================================
# Subject Property
# =============================================================================


@dataclass
class SubjectProperty:
    """
    The property being valued.

    Only area and street feed the engine; the rest is carried for display.
    """
    property_id: str  # UPRN
    area_sqm: float = 0.0
    street_name: str = ""

    # Optional display details
    address: str = ""
    postcode: str = ""
    property_type: str = ""
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None


# =============================================================================
# Selection and Valuation
# =============================================================================


@dataclass(frozen=True)
class SelectionState:
    """
    Snapshot of the user's comparables for one subject property.

    selected_ids keeps selection order; it never contains duplicates.
    """
    selected_ids: Tuple[str, ...] = ()
    strategy: ValuationStrategy = ValuationStrategy.AVERAGE

    @property
    def selected_count(self) -> int:
        return len(self.selected_ids)

    def __contains__(self, property_id: object) -> bool:
        return property_id in self.selected_ids


@dataclass(frozen=True)
class ValuationResult:
    """
    Valuation derived from the current selection.

    basis_count is the number of records actually used, which can be
    lower than the number selected (stale ids, missing price per sqm).
    """
    amount: Optional[float]
    basis_count: int
    strategy: ValuationStrategy
    selected_count: int = 0

    @property
    def is_available(self) -> bool:
        return self.amount is not None

    @property
    def excluded_count(self) -> int:
        """Selected comparables that did not contribute."""
        return max(self.selected_count - self.basis_count, 0)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "amount": self.amount,
            "basis_count": self.basis_count,
            "strategy": self.strategy.value,
            "selected_count": self.selected_count,
        }
