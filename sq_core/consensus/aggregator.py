# sq_core/consensus/aggregator.py
"""
Majority vote over equality classes.

Results are bucketed by a key derived from each value. Classes are ranked by
member count, strongest agreement first; equal counts are ordered by the key
itself, larger key first. The same rule applies to every round so that the
winner never depends on the order endpoints answered or were listed in.
"""
import logging
from typing import Callable, Dict, Generic, Iterable, List, TypeVar

from .datatypes import BlockRecord, EqualityClass, QueryResult

logger = logging.getLogger(__name__)

K = TypeVar("K")
T = TypeVar("T")


def rank_classes(classes: Iterable[EqualityClass[K, T]]) -> List[EqualityClass[K, T]]:
    """Order classes by descending N, then descending key."""
    return sorted(classes, key=lambda c: (c.n, c.key), reverse=True)


class QuorumAggregator(Generic[K, T]):
    """
    Groups query results into ranked equality classes.

    Args:
        key_func: Derives the equality key from a value (the slot number
            itself, a block's hash, ...). Keys must be hashable and mutually
            comparable.
        name: Label used in log lines.
    """

    def __init__(self, key_func: Callable[[T], K], name: str = "quorum"):
        self.key_func = key_func
        self.name = name

    def aggregate(
        self, results: Iterable[QueryResult[T]], total: int
    ) -> List[EqualityClass[K, T]]:
        """
        Bucket ``results`` and rank the buckets.

        Args:
            results: Successful results of a round, in endpoint order.
            total: Size of the endpoint set at round start, failures included.

        Returns:
            Equality classes ranked strongest first. Empty if nothing answered.
        """
        buckets: Dict[K, EqualityClass[K, T]] = {}
        for result in results:
            key = self.key_func(result.value)
            bucket = buckets.get(key)
            if bucket is None:
                bucket = EqualityClass(key=key, total=total)
                buckets[key] = bucket
            bucket.add(result)

        responded = sum(b.n for b in buckets.values())
        if responded > total:
            raise ValueError(
                f"{self.name}: {responded} results for only {total} endpoints"
            )

        ranked = rank_classes(buckets.values())
        logger.debug(
            f"{self.name}: {responded}/{total} responses in {len(ranked)} class(es)"
        )
        return ranked


def slot_aggregator() -> QuorumAggregator[int, int]:
    """Aggregator for slot numbers, keyed by the slot itself."""
    return QuorumAggregator(key_func=lambda slot: slot, name="slot")


def block_aggregator() -> QuorumAggregator[str, BlockRecord]:
    """Aggregator for block records, keyed by block hash."""
    return QuorumAggregator(key_func=lambda block: block.blockhash, name="block")
