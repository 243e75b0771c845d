# sq_core/consensus/fanout.py
"""
Concurrent fan-out of one query across every endpoint of a round.

Every endpoint gets exactly one attempt. The round waits for all of them;
an endpoint that errors (or exceeds the optional per-query timeout) is
reported as a failed outcome and simply takes no part in aggregation.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from ..monitoring.metrics import MetricsManager
from .consensus_errors import EndpointQueryError
from .datatypes import QueryOutcome, QueryResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

QueryFunc = Callable[[str], Awaitable[T]]


class FanOutExecutor:
    """
    Runs ``query(endpoint)`` for every endpoint concurrently and joins on all.

    Args:
        query_timeout: Seconds before a single query counts as failed.
            ``None`` or ``0`` waits indefinitely.
        max_concurrency: Upper bound on in-flight queries. ``0`` runs one
            task per endpoint.
        metrics: Optional metrics manager to record each query.
    """

    def __init__(
        self,
        query_timeout: Optional[float] = None,
        max_concurrency: int = 0,
        metrics: Optional[MetricsManager] = None,
    ):
        self.query_timeout = query_timeout or None
        self.max_concurrency = max_concurrency
        self.metrics = metrics

    def _concurrency_for(self, total: int) -> int:
        if self.max_concurrency <= 0:
            return max(total, 1)
        return max(min(self.max_concurrency, total), 1)

    async def run(
        self,
        endpoints: Sequence[str],
        query: QueryFunc,
        method: str = "query",
    ) -> List[QueryOutcome]:
        """Query every endpoint once; outcomes come back in endpoint order."""
        if not endpoints:
            return []

        semaphore = asyncio.Semaphore(self._concurrency_for(len(endpoints)))

        async def invoke(endpoint: str) -> QueryOutcome:
            async with semaphore:
                start = time.monotonic()
                try:
                    if self.query_timeout:
                        value = await asyncio.wait_for(query(endpoint), self.query_timeout)
                    else:
                        value = await query(endpoint)
                except asyncio.TimeoutError:
                    outcome = QueryOutcome(
                        endpoint=endpoint,
                        error=EndpointQueryError(
                            endpoint, method, f"no answer within {self.query_timeout}s"
                        ),
                        elapsed=time.monotonic() - start,
                    )
                except Exception as e:
                    outcome = QueryOutcome(
                        endpoint=endpoint, error=e, elapsed=time.monotonic() - start
                    )
                else:
                    outcome = QueryOutcome(
                        endpoint=endpoint, value=value, elapsed=time.monotonic() - start
                    )

            self._log_outcome(method, outcome)
            return outcome

        logger.info(f"{method}: querying {len(endpoints)} endpoint(s) concurrently")
        return list(await asyncio.gather(*(invoke(e) for e in endpoints)))

    def _log_outcome(self, method: str, outcome: QueryOutcome):
        if self.metrics is not None:
            self.metrics.record_query(method, outcome.ok, outcome.elapsed)

        if outcome.ok:
            logger.info(
                f"{method}({outcome.endpoint}): ok in {outcome.elapsed:.3f}s"
            )
        else:
            logger.warning(
                f"{method}({outcome.endpoint}): failed after {outcome.elapsed:.3f}s, "
                f"err: {outcome.error}"
            )


def split_outcomes(
    outcomes: Sequence[QueryOutcome],
) -> Tuple[List[QueryResult], List[str]]:
    """Separate successful results from the endpoints that failed."""
    results = [o.to_result() for o in outcomes if o.ok]
    failed = [o.endpoint for o in outcomes if not o.ok]
    return results, failed
