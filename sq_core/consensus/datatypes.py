# sq_core/consensus/datatypes.py
"""
Data structures shared by the quorum rounds.

Wire payloads coming back from the nodes (blocks, transactions, rewards) are
pydantic models so they validate on the way in; everything produced by the
rounds themselves is a plain dataclass.
"""
import base64
import binascii
import dataclasses
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Protocol, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .consensus_errors import SerializationError

K = TypeVar("K")
T = TypeVar("T")

SLOT_SOURCE_QUORUM = "quorum"
SLOT_SOURCE_OVERRIDE = "override"


def canonical_json_serialize(data: Any) -> str:
    """Serialize data to a stable JSON string (sorted keys, compact separators)."""

    def convert_to_dict(obj):
        if isinstance(obj, BaseModel):
            return convert_to_dict(obj.model_dump(by_alias=True))
        elif dataclasses.is_dataclass(obj):
            return {
                f.name: convert_to_dict(getattr(obj, f.name))
                for f in dataclasses.fields(obj)
            }
        elif isinstance(obj, list):
            return [convert_to_dict(item) for item in obj]
        elif isinstance(obj, dict):
            return {k: convert_to_dict(v) for k, v in obj.items()}
        elif isinstance(obj, bytes):
            return obj.hex()
        else:
            return obj

    return json.dumps(convert_to_dict(data), sort_keys=True, separators=(",", ":"))


# --- Wire payloads ---


class BlockReward(BaseModel):
    """One entry of a block's reward list."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    pubkey: str
    lamports: int
    post_balance: int = Field(alias="postBalance")
    reward_type: Optional[str] = Field(default=None, alias="rewardType")
    commission: Optional[int] = None


class BlockTransaction(BaseModel):
    """
    A transaction as returned inside a block.

    ``transaction`` is either a ``[data, encoding]`` pair (binary encodings)
    or a JSON object (``json`` encoding).
    """

    model_config = ConfigDict(populate_by_name=True)

    transaction: Union[List[str], Dict[str, Any]]
    meta: Optional[Dict[str, Any]] = None
    version: Optional[Union[int, str]] = None

    def serialize(self) -> bytes:
        """Return the transaction payload as bytes.

        Raises:
            SerializationError: if the payload is malformed or uses an
                encoding that cannot be turned back into bytes.
        """
        if isinstance(self.transaction, dict):
            return canonical_json_serialize(self.transaction).encode("utf-8")

        if len(self.transaction) != 2:
            raise SerializationError(
                f"Expected [data, encoding] transaction pair, got {len(self.transaction)} items"
            )
        data, encoding = self.transaction
        if encoding != "base64":
            raise SerializationError(f"Unsupported transaction encoding '{encoding}'")
        try:
            return base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SerializationError(f"Invalid base64 transaction payload: {e}") from e


class BlockRecord(BaseModel):
    """A block as reported by one endpoint for one slot."""

    model_config = ConfigDict(populate_by_name=True)

    blockhash: str
    block_time: Optional[int] = Field(default=None, alias="blockTime")
    block_height: Optional[int] = Field(default=None, alias="blockHeight")
    previous_blockhash: str = Field(alias="previousBlockhash")
    parent_slot: int = Field(alias="parentSlot")
    transactions: List[BlockTransaction] = Field(default_factory=list)
    rewards: List[BlockReward] = Field(default_factory=list)

    @field_validator("transactions", "rewards", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        # Nodes send null when transaction details or rewards are omitted
        return [] if value is None else value


class NodeClient(Protocol):
    """What the rounds need from a node client. Failures raise EndpointQueryError."""

    async def current_slot(self, endpoint: str) -> int: ...

    async def block_at(self, endpoint: str, slot: int) -> BlockRecord: ...

    async def block_height(self, endpoint: str) -> int: ...


# --- Round results ---


@dataclass(frozen=True)
class QueryResult(Generic[T]):
    """A value returned by one endpoint for one query."""

    endpoint: str
    value: T


@dataclass
class QueryOutcome(Generic[T]):
    """What happened to one fan-out task: a value or an error, never both."""

    endpoint: str
    value: Optional[T] = None
    error: Optional[BaseException] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_result(self) -> QueryResult[T]:
        if not self.ok:
            raise ValueError(f"Outcome for {self.endpoint} is a failure: {self.error}")
        return QueryResult(endpoint=self.endpoint, value=self.value)


@dataclass
class EqualityClass(Generic[K, T]):
    """
    Responses sharing one equality key.

    ``total`` is the size of the endpoint set at round start, so ``n / total``
    already accounts for endpoints that failed.
    """

    key: K
    total: int
    members: List[QueryResult[T]] = field(default_factory=list)

    def add(self, result: QueryResult[T]) -> None:
        self.members.append(result)

    @property
    def n(self) -> int:
        return len(self.members)

    @property
    def representative(self) -> T:
        return self.members[0].value

    @property
    def endpoints(self) -> List[str]:
        return [m.endpoint for m in self.members]

    @property
    def fraction(self) -> float:
        return self.n / self.total if self.total else 0.0

    @property
    def has_majority(self) -> bool:
        return 2 * self.n > self.total

    def as_row(self) -> Dict[str, Any]:
        return {"key": self.key, "n": self.n, "t": self.total}


@dataclass
class ContentMatch:
    """Verdict for one endpoint's block against its class reference."""

    endpoint: str
    blockhash: str
    matches: bool
    differences: List[str] = field(default_factory=list)


@dataclass
class RoundOutcome(Generic[K, T]):
    """Ranked equality classes of one round, strongest agreement first."""

    classes: List[EqualityClass[K, T]]
    total: int
    failed: List[str] = field(default_factory=list)

    @property
    def winner(self) -> Optional[EqualityClass[K, T]]:
        return self.classes[0] if self.classes else None

    @property
    def responded(self) -> int:
        return sum(c.n for c in self.classes)


@dataclass
class SlotRoundOutcome(RoundOutcome[int, int]):
    pass


@dataclass
class BlockRoundOutcome(RoundOutcome[str, BlockRecord]):
    slot: int = 0
    content_matches: Dict[str, List[ContentMatch]] = field(default_factory=dict)

    @property
    def variants(self) -> int:
        return len(self.classes)

    @property
    def blocks(self) -> Dict[str, BlockRecord]:
        return {m.endpoint: m.value for c in self.classes for m in c.members}

    @property
    def winning_matches(self) -> List[ContentMatch]:
        if self.winner is None:
            return []
        return self.content_matches.get(self.winner.key, [])


@dataclass
class QuorumReport:
    """Everything a single pass produced."""

    slot_round: SlotRoundOutcome
    chosen_slot: Optional[int] = None
    slot_source: Optional[str] = None
    block_round: Optional[BlockRoundOutcome] = None

    @property
    def has_quorum(self) -> bool:
        return self.chosen_slot is not None
