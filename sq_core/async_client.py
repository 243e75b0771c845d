"""
Ledger node async client implementation for SlotQuorum
Provides the JSON-RPC calls the quorum rounds need against a single node
"""

import itertools
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from .consensus.consensus_errors import EndpointQueryError
from .consensus.datatypes import BlockRecord

logger = logging.getLogger(__name__)

COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")
TRANSACTION_ENCODINGS = ("base64", "json")


class LedgerAsyncClient:
    """Async JSON-RPC client shared by every endpoint of a run.

    A single ``httpx.AsyncClient`` connection pool is used; the endpoint is
    chosen per call.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        commitment: Optional[str] = None,
        encoding: str = "base64",
        session: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self.commitment = commitment
        self.encoding = encoding
        self.session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    @classmethod
    def from_config(cls, rpc_config) -> "LedgerAsyncClient":
        """Build a client from a resolved ``RpcConfig``."""
        return cls(
            timeout=rpc_config.timeout,
            commitment=rpc_config.commitment,
            encoding=rpc_config.encoding,
        )

    async def __aenter__(self):
        """Async context manager entry"""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()

    async def connect(self):
        """Initialize the HTTP connection pool"""
        if self.session is None:
            self.session = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
            self._owns_session = True
            logger.debug(f"Opened RPC session (timeout {self.timeout}s)")

    async def close(self):
        """Close the HTTP connection pool if this client opened it"""
        if self.session is not None and self._owns_session:
            await self.session.aclose()
            self.session = None
            logger.debug("RPC session closed")

    def _commitment_config(self) -> Dict[str, Any]:
        return {"commitment": self.commitment} if self.commitment else {}

    async def _call(self, endpoint: str, method: str, params: List[Any]) -> Any:
        """POST one JSON-RPC request and return its ``result`` member."""
        if self.session is None:
            await self.connect()

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = await self.session.post(endpoint, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise EndpointQueryError(endpoint, method, f"request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise EndpointQueryError(
                endpoint, method, f"HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise EndpointQueryError(
                endpoint, method, f"{type(e).__name__}: {e}"
            ) from e

        try:
            body = response.json()
        except ValueError as e:
            raise EndpointQueryError(endpoint, method, "response is not JSON") from e

        if not isinstance(body, dict):
            raise EndpointQueryError(endpoint, method, "response is not a JSON object")

        error = body.get("error")
        if error:
            if isinstance(error, dict):
                raise EndpointQueryError(
                    endpoint,
                    method,
                    str(error.get("message", error)),
                    code=error.get("code"),
                )
            raise EndpointQueryError(endpoint, method, str(error))

        if "result" not in body:
            raise EndpointQueryError(endpoint, method, "response has no result")
        return body["result"]

    async def _call_uint(self, endpoint: str, method: str) -> int:
        params = [self._commitment_config()] if self.commitment else []
        result = await self._call(endpoint, method, params)
        if isinstance(result, bool) or not isinstance(result, int) or result < 0:
            raise EndpointQueryError(endpoint, method, f"malformed result {result!r}")
        logger.debug(f"{method}({endpoint}): {result}")
        return result

    async def current_slot(self, endpoint: str) -> int:
        """Slot the node currently considers current"""
        return await self._call_uint(endpoint, "getSlot")

    async def block_height(self, endpoint: str) -> int:
        """Current block height of the node"""
        return await self._call_uint(endpoint, "getBlockHeight")

    async def block_at(self, endpoint: str, slot: int) -> BlockRecord:
        """Block produced in ``slot`` as the node sees it"""
        config: Dict[str, Any] = {
            "encoding": self.encoding,
            "transactionDetails": "full",
            "rewards": True,
            "maxSupportedTransactionVersion": 0,
        }
        config.update(self._commitment_config())

        result = await self._call(endpoint, "getBlock", [slot, config])
        if result is None:
            raise EndpointQueryError(endpoint, "getBlock", f"no block for slot {slot}")
        try:
            block = BlockRecord.model_validate(result)
        except ValidationError as e:
            raise EndpointQueryError(
                endpoint, "getBlock", f"malformed block for slot {slot}: {e}"
            ) from e

        logger.debug(
            f"getBlock({endpoint}): slot {slot} blockhash {block.blockhash} "
            f"({len(block.transactions)} txs)"
        )
        return block
