"""
SlotQuorum consensus module.

Fan-out over the endpoint set, quorum aggregation, block content comparison
and the two-round orchestrator.
"""

from .aggregator import QuorumAggregator, block_aggregator, rank_classes, slot_aggregator
from .comparator import ContentComparator, compare_block_content
from .consensus_errors import (
    ConfigError,
    EndpointQueryError,
    QuorumError,
    RoundError,
    SerializationError,
)
from .datatypes import (
    BlockRecord,
    BlockRoundOutcome,
    EqualityClass,
    NodeClient,
    QueryOutcome,
    QueryResult,
    QuorumReport,
    SlotRoundOutcome,
)
from .fanout import FanOutExecutor
from .orchestrator import RoundOrchestrator, RoundState

__all__ = [
    "QuorumAggregator",
    "block_aggregator",
    "rank_classes",
    "slot_aggregator",
    "ContentComparator",
    "compare_block_content",
    "ConfigError",
    "EndpointQueryError",
    "QuorumError",
    "RoundError",
    "SerializationError",
    "BlockRecord",
    "BlockRoundOutcome",
    "EqualityClass",
    "NodeClient",
    "QueryOutcome",
    "QueryResult",
    "QuorumReport",
    "SlotRoundOutcome",
    "FanOutExecutor",
    "RoundOrchestrator",
    "RoundState",
]
