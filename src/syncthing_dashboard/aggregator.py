"""Fan out the per-instance collector over the registry under one batch deadline."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Sequence
from datetime import datetime
from typing import TypeVar

import httpx

from syncthing_dashboard.client import Deadline, SyncthingClient
from syncthing_dashboard.collector import collect_node
from syncthing_dashboard.errors import BatchTimeout
from syncthing_dashboard.filters import NodeFilter
from syncthing_dashboard.models import Node, NodesResult
from syncthing_dashboard.registry import Instance, Settings

logger = logging.getLogger(__name__)

TIMED_OUT = "Request timed out"

T = TypeVar("T")


async def aggregate(
    instances: Sequence[Instance],
    node_filter: NodeFilter | None = None,
    settings: Settings | None = None,
    *,
    now: datetime | None = None,
) -> NodesResult:
    """Collect every admitted instance concurrently; nodes keep registry order.

    All collectors share one HTTP client, one deadline and one limiter on
    in-flight daemon calls.  If any collector is still running when the
    deadline passes the whole batch raises ``BatchTimeout``, unless
    ``settings.partial_results`` is set, in which case late nodes are
    replaced by failed ones and the result carries an error.
    """
    node_filter = node_filter or NodeFilter()
    settings = settings or Settings()

    selected = node_filter.select(instances)
    if not node_filter.selects_all_hosts:
        logger.info(
            "Host filtering (%s): %d total instances, %d selected",
            ",".join(sorted(c.value for c in node_filter.host_classes)) or "none",
            len(instances),
            len(selected),
        )
    if not selected:
        return NodesResult(nodes=[])

    deadline = Deadline(settings.timeout_s)
    limiter = asyncio.Semaphore(settings.max_concurrency)

    async with httpx.AsyncClient(timeout=settings.timeout_s) as http:

        async def run(instance: Instance) -> tuple[Node, bool]:
            client = SyncthingClient(instance, http, deadline=deadline, limiter=limiter)
            node = await collect_node(client, settings, now=now)
            return node, not deadline.expired

        results = await asyncio.gather(*(run(i) for i in selected))

    late = [node.instance for node, in_time in results if not in_time]
    error = None
    if late:
        if not settings.partial_results:
            logger.error(
                "Batch deadline of %.1fs exceeded; unfinished: %s", settings.timeout_s, late
            )
            raise BatchTimeout(settings.timeout_s)
        logger.warning(
            "Batch deadline of %.1fs exceeded; returning partial results without %s",
            settings.timeout_s,
            late,
        )
        error = TIMED_OUT

    nodes = [
        node if in_time else Node.failed(node.instance, node.base_url, TIMED_OUT)
        for node, in_time in results
    ]
    nodes = [
        n for n in nodes if node_filter.keeps_name(n.name) or node_filter.keeps_name(n.instance)
    ]
    return NodesResult(nodes=nodes, error=error)


class SingleFlight:
    """Coalesce overlapping calls with an equal key into one in-flight task.

    A finished task is forgotten immediately; nothing is cached.
    """

    def __init__(self) -> None:
        self._inflight: dict[Hashable, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._inflight)

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        fut = self._inflight.get(key)
        if fut is None:
            fut = asyncio.ensure_future(factory())
            self._inflight[key] = fut

            def _forget(done: asyncio.Future) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            fut.add_done_callback(_forget)
        return await asyncio.shield(fut)


class Aggregator:
    """Entry point for the command surface: one de-duplicated batch per query."""

    def __init__(self) -> None:
        self._flights = SingleFlight()

    async def query(
        self,
        instances: Sequence[Instance],
        node_filter: NodeFilter | None = None,
        settings: Settings | None = None,
    ) -> NodesResult:
        node_filter = node_filter or NodeFilter()
        settings = settings or Settings()
        key = (tuple(instances), node_filter, settings)
        return await self._flights.run(
            key, lambda: aggregate(instances, node_filter, settings)
        )
