# sq_core/consensus/comparator.py
"""
Deep structural comparison of block records.

Two blocks are content-equal when blockhash, block time, block height,
previous blockhash, parent slot, every transaction (metadata and serialized
payload bytes) and every reward (pairwise, in order) agree.
"""
import logging
from typing import List, Sequence

from .consensus_errors import SerializationError
from .datatypes import BlockRecord, BlockReward, BlockTransaction, ContentMatch, EqualityClass

logger = logging.getLogger(__name__)

SCALAR_FIELDS = (
    "blockhash",
    "block_time",
    "block_height",
    "previous_blockhash",
    "parent_slot",
)


def compare_transactions(j: Sequence[BlockTransaction], k: Sequence[BlockTransaction]) -> bool:
    """True if both sequences hold the same transactions in the same order.

    A transaction that cannot be serialized makes the comparison a mismatch.
    """
    if len(j) != len(k):
        return False

    for i, (jt, kt) in enumerate(zip(j, k)):
        if jt.meta != kt.meta:
            return False
        try:
            if jt.serialize() != kt.serialize():
                return False
        except SerializationError as e:
            logger.warning(f"Transaction {i} could not be serialized, counting as mismatch: {e}")
            return False

    return True


def compare_rewards(j: Sequence[BlockReward], k: Sequence[BlockReward]) -> bool:
    if len(j) != len(k):
        return False
    return all(a == b for a, b in zip(j, k))


def block_content_differences(j: BlockRecord, k: BlockRecord) -> List[str]:
    """Names of the fields on which ``j`` and ``k`` disagree. Empty if content-equal."""
    if j is k:
        return []

    differences = [name for name in SCALAR_FIELDS if getattr(j, name) != getattr(k, name)]
    if not compare_transactions(j.transactions, k.transactions):
        differences.append("transactions")
    if not compare_rewards(j.rewards, k.rewards):
        differences.append("rewards")
    return differences


def compare_block_content(j: BlockRecord, k: BlockRecord) -> bool:
    return not block_content_differences(j, k)


class ContentComparator:
    """Checks every member of an equality class against the class reference.

    The reference is the first member encountered. Verdicts are diagnostic;
    they never change quorum counts.
    """

    def compare_class(self, cls: EqualityClass[str, BlockRecord]) -> List[ContentMatch]:
        if not cls.members:
            return []

        reference = cls.representative
        table = []
        for member in cls.members:
            differences = block_content_differences(member.value, reference)
            table.append(
                ContentMatch(
                    endpoint=member.endpoint,
                    blockhash=member.value.blockhash,
                    matches=not differences,
                    differences=differences,
                )
            )

        mismatches = sum(1 for m in table if not m.matches)
        if mismatches:
            logger.warning(
                f"Blockhash {cls.key}: {mismatches}/{cls.n} endpoint(s) diverge from "
                f"reference {cls.members[0].endpoint}"
            )
        return table
