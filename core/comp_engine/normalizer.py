"""
Transaction Normalizer for the Comp Engine

The provider returns one element per sale, so a property that sold
more than once appears several times. Normalization keeps exactly one
record per property_id:

- The record with the latest transaction date wins
- Same-day duplicates keep the first record encountered
- Malformed records are dropped with a warning
"""

import logging
from typing import Any, Iterable, List, Union

from .models import NormalizedTransactionSet, TransactionRecord


logger = logging.getLogger(__name__)

RawTransaction = Union[TransactionRecord, dict]

# Keys the provider (and our own exports) use for the nearby sales list
NEARBY_TRANSACTION_KEYS = ("nearby_completed_transactions", "nearby_transactions", "transactions")


class TransactionNormalizer:
    """
    Deduplicates raw nearby transactions for one subject property.

    Stateless; safe to call on every fetch.
    """

    def normalize(self, raw: Iterable[RawTransaction]) -> NormalizedTransactionSet:
        """
        Reduce raw transactions to one record per property.

        Args:
            raw: Provider dicts and/or TransactionRecord instances

        Returns:
            NormalizedTransactionSet in first-seen property order
        """
        retained: dict[str, TransactionRecord] = {}
        raw_count = 0
        dropped = 0

        for position, item in enumerate(raw):
            raw_count += 1
            record = self._coerce(item, position)
            if record is None:
                dropped += 1
                continue

            existing = retained.get(record.property_id)
            # Strictly later only: same calendar day keeps the first seen
            if existing is None or record.transaction_date > existing.transaction_date:
                retained[record.property_id] = record

        if dropped:
            logger.warning(
                "Dropped %d of %d nearby transactions with missing id, price or date",
                dropped,
                raw_count,
            )
        logger.debug(
            "Normalized %d raw transactions to %d properties",
            raw_count,
            len(retained),
        )

        return NormalizedTransactionSet(retained, raw_count=raw_count)

    @staticmethod
    def _coerce(item: RawTransaction, position: int):
        if isinstance(item, TransactionRecord):
            return item
        try:
            return TransactionRecord.from_provider(item)
        except ValueError as e:
            logger.warning("Skipping nearby transaction at position %d: %s", position, e)
            return None


def normalize(raw: Iterable[RawTransaction]) -> NormalizedTransactionSet:
    """Convenience wrapper around TransactionNormalizer.normalize."""
    return TransactionNormalizer().normalize(raw)


def extract_nearby_transactions(payload: Any) -> List[dict]:
    """
    Pull the nearby-transaction list out of a provider property response.

    Accepts the full response (data.attributes.nearby_completed_transactions),
    the attributes object, or a bare list. Anything else yields [].
    """
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []

    data = payload.get("data")
    attributes = data.get("attributes") if isinstance(data, dict) else None
    if isinstance(attributes, dict):
        # attributes.transactions is the subject's own sale history
        for key in NEARBY_TRANSACTION_KEYS[:2]:
            if isinstance(attributes.get(key), list):
                return attributes[key]

    for key in NEARBY_TRANSACTION_KEYS:
        if isinstance(payload.get(key), list):
            return payload[key]
    return []
