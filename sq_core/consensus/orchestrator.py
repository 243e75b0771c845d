# sq_core/consensus/orchestrator.py
"""
Single-pass slot quorum: SlotRound, then BlockRound.

SlotRound asks every endpoint for its current slot and ranks the answers.
The chosen slot is the top-ranked one unless an operator override was given,
in which case the override always wins. BlockRound fetches the block at the
chosen slot from every endpoint, ranks the variants by block hash and checks
the content of every member against its class reference.
"""
import enum
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from ..monitoring.metrics import MetricsManager
from .aggregator import QuorumAggregator, block_aggregator, slot_aggregator
from .comparator import ContentComparator
from .consensus_errors import round_error_handler
from .datatypes import (
    SLOT_SOURCE_OVERRIDE,
    SLOT_SOURCE_QUORUM,
    BlockRoundOutcome,
    NodeClient,
    QuorumReport,
    RoundOutcome,
    SlotRoundOutcome,
)
from .fanout import FanOutExecutor, split_outcomes

logger = logging.getLogger(__name__)


class RoundState(enum.Enum):
    SLOT_ROUND = "slot_round"
    BLOCK_ROUND = "block_round"


def format_classes(classes) -> str:
    return "[" + ", ".join(f"{{{c.key}: N={c.n} T={c.total}}}" for c in classes) + "]"


def format_block_time(block_time: Optional[int]) -> str:
    if block_time is None:
        return "unknown"
    try:
        return datetime.fromtimestamp(block_time, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return f"{block_time} (out of range)"


class RoundOrchestrator:
    """
    Runs one SlotRound followed by one BlockRound.

    Args:
        endpoints: Endpoint set, never mutated.
        client: Node client used for every query.
        slot_override: Slot to inspect regardless of the slot quorum.
            ``None`` or ``0`` means use the quorum slot.
        executor: Fan-out executor; a default one is built if omitted.
        metrics: Optional metrics manager.
    """

    def __init__(
        self,
        endpoints: Sequence[str],
        client: NodeClient,
        slot_override: Optional[int] = None,
        executor: Optional[FanOutExecutor] = None,
        metrics: Optional[MetricsManager] = None,
    ):
        self.endpoints: List[str] = list(endpoints)
        self.client = client
        self.slot_override = slot_override or None
        self.metrics = metrics
        self.executor = executor or FanOutExecutor(metrics=metrics)
        self.comparator = ContentComparator()
        self.state = RoundState.SLOT_ROUND

    def _record_round(self, round_name: str, outcome) -> None:
        if self.metrics is None:
            return
        winner = outcome.winner
        self.metrics.record_round(
            round_name, len(outcome.classes), winner.fraction if winner else 0.0
        )

    async def slot_round(self) -> SlotRoundOutcome:
        """Poll the current slot of every endpoint and rank the answers."""
        total = len(self.endpoints)
        with round_error_handler("slot round"):
            outcomes = await self.executor.run(
                self.endpoints, self.client.current_slot, method="getSlot"
            )
            results, failed = split_outcomes(outcomes)
            for result in results:
                logger.info(f"Endpoint {result.endpoint} reports slot {result.value}")
            classes = slot_aggregator().aggregate(results, total)

        outcome = SlotRoundOutcome(classes=classes, total=total, failed=failed)
        self._record_round("slot", outcome)
        logger.info(f"Current slots: {format_classes(classes)}")
        return outcome

    async def block_round(self, slot: int) -> BlockRoundOutcome:
        """Fetch the block at ``slot`` from every endpoint, rank and compare it."""
        total = len(self.endpoints)

        async def fetch(endpoint: str):
            return await self.client.block_at(endpoint, slot)

        with round_error_handler("block round"):
            outcomes = await self.executor.run(self.endpoints, fetch, method="getBlock")
            results, failed = split_outcomes(outcomes)
            classes = block_aggregator().aggregate(results, total)
            content_matches = {c.key: self.comparator.compare_class(c) for c in classes}

        outcome = BlockRoundOutcome(
            classes=classes,
            total=total,
            failed=failed,
            slot=slot,
            content_matches=content_matches,
        )
        self._record_round("block", outcome)
        if self.metrics is not None:
            self.metrics.update_content_mismatches(
                sum(1 for table in content_matches.values() for m in table if not m.matches)
            )

        logger.info(f"{outcome.variants} data version(s) for slot {slot}")
        for cls in classes:
            for member, match in zip(cls.members, content_matches[cls.key]):
                block = member.value
                logger.info(
                    f"Endpoint {match.endpoint} had blockhash {match.blockhash} "
                    f"(blockTime {format_block_time(block.block_time)}) for slot {slot}, "
                    f"content match: {match.matches}"
                )
                if match.differences:
                    logger.warning(
                        f"Endpoint {match.endpoint} differs from its class reference on: "
                        f"{', '.join(match.differences)}"
                    )
        return outcome

    async def height_round(self) -> RoundOutcome:
        """Poll the block height of every endpoint. Not part of ``run``."""
        total = len(self.endpoints)
        with round_error_handler("height round"):
            outcomes = await self.executor.run(
                self.endpoints, self.client.block_height, method="getBlockHeight"
            )
            results, failed = split_outcomes(outcomes)
            classes = QuorumAggregator(key_func=lambda height: height, name="height").aggregate(
                results, total
            )

        outcome = RoundOutcome(classes=classes, total=total, failed=failed)
        self._record_round("height", outcome)
        logger.info(f"Block heights: {format_classes(classes)}")
        return outcome

    def choose_slot(self, slot_outcome: SlotRoundOutcome):
        """Return ``(slot, source)``; ``(None, None)`` when there is no quorum and no override."""
        if self.slot_override:
            logger.info(f"Using specified slot: {self.slot_override}")
            return self.slot_override, SLOT_SOURCE_OVERRIDE

        winner = slot_outcome.winner
        if winner is None:
            return None, None

        if not winner.has_majority:
            logger.warning(
                f"Quorum slot {winner.key} is backed by only {winner.n}/{winner.total} endpoints"
            )
        logger.info(f"Using quorum slot: {winner.key}")
        return winner.key, SLOT_SOURCE_QUORUM

    async def run(self) -> QuorumReport:
        """Run the full pass and return everything it found."""
        start = time.monotonic()
        logger.info(f"Starting up with {len(self.endpoints)} endpoint(s)")

        self.state = RoundState.SLOT_ROUND
        slot_outcome = await self.slot_round()
        report = QuorumReport(slot_round=slot_outcome)

        chosen, source = self.choose_slot(slot_outcome)
        if chosen is None:
            logger.warning(
                f"No quorum: none of the {slot_outcome.total} endpoint(s) reported a slot"
            )
            return report

        report.chosen_slot = chosen
        report.slot_source = source
        if self.metrics is not None:
            self.metrics.update_chosen_slot(chosen)

        self.state = RoundState.BLOCK_ROUND
        report.block_round = await self.block_round(chosen)

        logger.info(f"Pass finished in {time.monotonic() - start:.2f}s")
        return report
