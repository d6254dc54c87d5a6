"""
Chunk Generator for Incremental Campaign Plans

Simulates a campaign planner that refines its output over time. Each request
gets one producer task (its timer) that emits K partial chunks at a fixed
cadence, then a single end marker, then releases itself.

Every partial is a complete JSON document describing the campaign so far,
not a diff: later partials supersede earlier ones.

Usage:
    generator = ChunkGenerator(chunk_count=3, interval=0.8)

    async with generator.open(request) as stream:
        async for chunk in stream:
            await response.write(chunk.to_sse())
"""

import asyncio
import json
import logging
import random
from typing import Any, Optional

from services.streaming.protocol import Chunk

from .models import CampaignRequest

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_COUNT = 3
DEFAULT_INTERVAL = 0.8
CAMPAIGN_ID_SPACE = 10000


def build_payload(request: CampaignRequest, campaign_id: str, ordinal: int) -> dict[str, Any]:
    """Build the campaign-so-far document for the given chunk ordinal."""
    per_channel = [
        {
            "channel": channel,
            "message": {
                "text": f'Sample {channel} message part {ordinal} for "{request.campaign_name}"',
            },
        }
        for channel in request.channels
    ]

    return {
        "campaign_id": campaign_id,
        "campaign_name": request.campaign_name,
        "objective": request.objective.value,
        "strategy": {
            "sources": list(request.sources),
            "per_channel": per_channel,
        },
    }


class ChunkStream:
    """
    Handle on one request's chunk production.

    Iterating yields chunks in generation order and stops after the end
    marker. Closing the handle cancels any pending production.
    """

    def __init__(self, generator: "ChunkGenerator", request: CampaignRequest, campaign_id: str):
        self.request = request
        self.campaign_id = campaign_id
        self._generator = generator
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._finished

    def __aiter__(self):
        return self

    async def __anext__(self) -> Chunk:
        if self._finished:
            raise StopAsyncIteration

        item = await self._queue.get()
        if isinstance(item, Exception):
            await self.aclose()
            raise item

        if item.is_end:
            await self.aclose()
        return item

    async def __aenter__(self) -> "ChunkStream":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        """Stop production and release the producer task."""
        self._finished = True
        task = self._task
        if task is None:
            return

        if not task.done():
            task.cancel()
            logger.debug(f"Cancelled pending production for {self.campaign_id}")
        try:
            await task
        except asyncio.CancelledError:
            pass
        finally:
            self._generator._release(task)


class ChunkGenerator:
    """
    Produces a bounded sequence of partial campaign plans per request.

    Args:
        chunk_count: Number of partial chunks before the end marker
        interval: Seconds between chunks
        rng: Random source for campaign IDs (seed it for reproducible IDs)
    """

    def __init__(
        self,
        chunk_count: int = DEFAULT_CHUNK_COUNT,
        interval: float = DEFAULT_INTERVAL,
        rng: Optional[random.Random] = None,
        campaign_id_space: int = CAMPAIGN_ID_SPACE,
    ):
        if chunk_count < 1:
            raise ValueError("chunk_count must be at least 1")

        self.chunk_count = chunk_count
        self.interval = interval
        self.campaign_id_space = campaign_id_space
        self._rng = rng or random.Random()

        self._timers: set[asyncio.Task] = set()

    @property
    def active_timers(self) -> int:
        """Number of live producer tasks."""
        return len(self._timers)

    def new_campaign_id(self) -> str:
        return f"CMP-{self._rng.randrange(self.campaign_id_space)}"

    def open(self, request: CampaignRequest) -> ChunkStream:
        """Start producing chunks for a request."""
        stream = ChunkStream(self, request, self.new_campaign_id())

        task = asyncio.create_task(self._produce(stream))
        stream._task = task
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)

        if not request.channels:
            logger.info(f"Stream {stream.campaign_id} has no channels selected")

        logger.info(
            f"Generating {self.chunk_count} chunks for {stream.campaign_id} "
            f"({request.campaign_name!r}, channels={list(request.channels)})"
        )
        return stream

    async def _produce(self, stream: ChunkStream):
        """Emit partial chunks on a fixed cadence, then the end marker."""
        try:
            for ordinal in range(1, self.chunk_count + 1):
                await asyncio.sleep(self.interval)

                payload = build_payload(stream.request, stream.campaign_id, ordinal)
                stream._queue.put_nowait(Chunk.partial(ordinal, json.dumps(payload)))
                logger.debug(f"Chunk {ordinal}/{self.chunk_count} ready for {stream.campaign_id}")

            stream._queue.put_nowait(Chunk.end(self.chunk_count + 1))
            logger.info(f"Generation complete for {stream.campaign_id}")

        except asyncio.CancelledError:
            logger.info(f"Generation cancelled for {stream.campaign_id}")
            raise
        except Exception as e:
            logger.exception(f"Generation failed for {stream.campaign_id}: {e}")
            stream._queue.put_nowait(e)

    def _release(self, task: asyncio.Task):
        self._timers.discard(task)

    async def shutdown(self):
        """Cancel every live producer."""
        tasks = list(self._timers)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()
