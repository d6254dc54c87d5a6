"""
SSE Client for Incremental Campaign Plans

Opens one /stream-campaign connection per request and yields the frame
payloads in arrival order. Delivery is attempted at most once: a dropped
connection surfaces as TransportError and is never retried.

Usage:
    client = CampaignStreamClient("http://localhost:4000")
    stream = await client.open(request)
    try:
        async for payload in stream:
            print(payload)
    finally:
        await stream.close()
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

import aiohttp

from services.campaign.models import CampaignRequest

from .protocol import END_SENTINEL, STREAM_PATH, FrameDecoder, MalformedFrame

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when the stream connection fails, drops or carries garbage."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class CampaignStream:
    """
    One live stream connection.

    Iterating yields payload strings (partial JSON documents and the final
    `[END]` sentinel) and stops after the sentinel. `close()` may be called
    at any time, from any task, and immediately stops further delivery.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: str,
        request: CampaignRequest,
        owns_session: bool = False,
    ):
        self.url = url
        self.request = request
        self._session = session
        self._owns_session = owns_session
        self._response: Optional[aiohttp.ClientResponse] = None
        self._closed = False
        self._ended = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def ended(self) -> bool:
        """True once the terminal marker has been received."""
        return self._ended

    async def connect(self):
        """Send the request and validate the response headers."""
        try:
            self._response = await self._session.get(
                self.url,
                params=self.request.to_query(),
                headers={"Accept": "text/event-stream"},
            )
        except aiohttp.ClientError as e:
            await self.close()
            raise TransportError(f"Cannot connect to {self.url}: {e}") from e

        if self._response.status != 200:
            status = self._response.status
            await self.close()
            raise TransportError(f"Server returned {status}", status=status)

        if self._response.content_type != "text/event-stream":
            content_type = self._response.content_type
            await self.close()
            raise TransportError(f"Unexpected content type: {content_type}")

        logger.info(f"Connected to {self.url} for {self.request.campaign_name!r}")

    def __aiter__(self) -> AsyncIterator[str]:
        return self._payloads()

    async def _payloads(self) -> AsyncIterator[str]:
        if self._response is None:
            raise TransportError("Stream is not connected")

        decoder = FrameDecoder()
        try:
            async for raw_line in self._response.content:
                if self._closed:
                    return

                try:
                    payload = decoder.feed(raw_line.decode("utf-8"))
                except (MalformedFrame, UnicodeDecodeError) as e:
                    raise TransportError(f"Malformed frame: {e}") from e

                if payload is None:
                    continue

                logger.debug(f"Frame received ({len(payload)} chars)")
                if payload == END_SENTINEL:
                    self._ended = True
                    yield payload
                    return
                yield payload

        except aiohttp.ClientError as e:
            if self._closed:
                return
            raise TransportError(f"Connection lost: {e}") from e

        if not self._closed:
            raise TransportError("Stream ended before the terminal marker")

    async def close(self):
        """Cancel delivery and release the connection."""
        if self._closed:
            return
        self._closed = True

        if self._response is not None:
            self._response.close()
        if self._owns_session:
            await self._session.close()

        logger.debug(f"Stream to {self.url} closed")


class CampaignStreamClient:
    """
    Opens campaign streams against one server.

    Args:
        base_url: Server root, e.g. http://localhost:4000
        session: Optional shared aiohttp session (not closed by the client)
        connect_timeout: Seconds to wait for the connection to open
    """

    def __init__(
        self,
        base_url: str = "http://localhost:4000",
        session: Optional[aiohttp.ClientSession] = None,
        connect_timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.stream_url = f"{self.base_url}{STREAM_PATH}"
        self.connect_timeout = connect_timeout
        self._session = session

    async def open(self, request: CampaignRequest) -> CampaignStream:
        """Open a stream for the request. Raises TransportError on failure."""
        if self._session is not None:
            stream = CampaignStream(self._session, self.stream_url, request)
        else:
            timeout = aiohttp.ClientTimeout(total=None, sock_connect=self.connect_timeout)
            session = aiohttp.ClientSession(timeout=timeout)
            stream = CampaignStream(session, self.stream_url, request, owns_session=True)

        try:
            await stream.connect()
        except asyncio.CancelledError:
            await stream.close()
            raise
        return stream
