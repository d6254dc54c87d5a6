"""
SSE Server for Incremental Campaign Plans

Streams a campaign plan to the client as it is generated, one Server-Sent
Events frame per partial result, terminated by a `[END]` frame.

Features:
- One stream per request, at-most-once delivery (no replay, no reconnect)
- Generation is cancelled as soon as the client disconnects
- Connection is closed right after the end marker
- Health and status endpoints for operators

Usage:
    # Start server
    server = CampaignStreamServer(host="0.0.0.0", port=4000)
    await server.start()

    # From CLI
    curl -N "http://localhost:4000/stream-campaign?campaignName=Fall%20Sale&channels=email"
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import uuid4

from aiohttp import web
from pydantic import ValidationError

from services.campaign.generator import ChunkGenerator
from services.campaign.models import CampaignRequest

from .protocol import STREAM_PATH

logger = logging.getLogger(__name__)


@dataclass
class StreamClient:
    """Represents one connected stream."""

    client_id: str = field(default_factory=lambda: str(uuid4()))
    campaign_id: str = ""
    connected_at: datetime = field(default_factory=datetime.utcnow)
    frames_sent: int = 0
    user_agent: str = ""


class CampaignStreamServer:
    """
    Server-Sent Events server for incremental campaign generation.

    Each GET /stream-campaign opens a dedicated generation whose chunks are
    written to that connection only.

    Usage:
        server = CampaignStreamServer(generator=ChunkGenerator(interval=0.8))
        await server.start()
        ...
        await server.stop()
    """

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 4000,
        generator: Optional[ChunkGenerator] = None,
        cors_origin: str = "*",
    ):
        self.host = host
        self.port = port
        self.cors_origin = cors_origin
        self.generator = generator or ChunkGenerator()

        self._clients: dict[str, StreamClient] = {}
        self._started_at: Optional[datetime] = None

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        """Create the aiohttp application (also used by tests)."""
        app = web.Application()
        app.router.add_get("/", self._handle_index)
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/status", self._handle_status)
        app.router.add_get(STREAM_PATH, self._handle_stream)
        app.on_shutdown.append(self._on_shutdown)
        return app

    async def start(self):
        """Start the SSE server."""
        self._app = self.build_app()

        # Cancel the handler when the peer goes away so generation stops with it
        self._runner = web.AppRunner(self._app, handler_cancellation=True)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()

        self._started_at = datetime.utcnow()
        logger.info(f"SSE backend running at http://{self.host}:{self.port}")

    async def stop(self):
        """Stop the SSE server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        await self.generator.shutdown()
        logger.info("SSE server stopped")

    async def _on_shutdown(self, app: web.Application):
        await self.generator.shutdown()

    async def _handle_index(self, request: web.Request) -> web.Response:
        """Handle index route - show usage info."""
        return web.Response(
            text=f"""
Campaign Stream SSE Server

Endpoints:
  GET {STREAM_PATH}   - SSE stream of an incrementally generated campaign plan
  GET /status            - Active streams and generator timers
  GET /health            - Health check

Stream a campaign:
  curl -N "http://localhost:{self.port}{STREAM_PATH}?campaignName=Fall%20Sale&objective=conversion&sources=website&channels=email,sms"

Frames:
  data: {{"campaign_id": "CMP-1234", "campaign_name": "...", "objective": "...",
         "strategy": {{"sources": [...], "per_channel": [{{"channel": "...", "message": {{"text": "..."}}}}]}}}}

  data: [END]
            """,
            content_type="text/plain",
        )

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({
            "status": "healthy",
            "active_streams": len(self._clients),
        })

    async def _handle_status(self, request: web.Request) -> web.Response:
        """Server status endpoint."""
        uptime = 0.0
        if self._started_at:
            uptime = (datetime.utcnow() - self._started_at).total_seconds()

        return web.json_response({
            "server": {
                "host": self.host,
                "port": self.port,
                "uptime_seconds": round(uptime, 1),
            },
            "generator": {
                "chunk_count": self.generator.chunk_count,
                "interval_seconds": self.generator.interval,
                "active_timers": self.generator.active_timers,
            },
            "streams": {
                client.client_id: {
                    "campaign_id": client.campaign_id,
                    "frames_sent": client.frames_sent,
                    "user_agent": client.user_agent,
                    "connected_at": client.connected_at.isoformat(),
                }
                for client in self._clients.values()
            },
        })

    async def _handle_stream(self, request: web.Request) -> web.StreamResponse:
        """Handle SSE stream connection."""
        try:
            campaign_request = CampaignRequest.from_query(request.query)
        except ValidationError as e:
            logger.warning(f"Rejected stream request: {e.error_count()} validation error(s)")
            return web.json_response(
                {
                    "error": "Invalid campaign request",
                    "details": [
                        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                        for err in e.errors()
                    ],
                },
                status=400,
                headers={"Access-Control-Allow-Origin": self.cors_origin},
            )

        response = web.StreamResponse(
            status=200,
            reason="OK",
            headers={
                "Content-Type": "text/event-stream",
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering
                "Access-Control-Allow-Origin": self.cors_origin,
            },
        )
        await response.prepare(request)

        stream = self.generator.open(campaign_request)
        client = StreamClient(
            campaign_id=stream.campaign_id,
            user_agent=request.headers.get("User-Agent", ""),
        )
        self._clients[client.client_id] = client
        logger.info(f"Client {client.client_id} connected for campaign {stream.campaign_id}")

        try:
            async for chunk in stream:
                await response.write(chunk.to_sse())
                client.frames_sent += 1

            await response.write_eof()
            logger.info(f"Stream {stream.campaign_id} complete after {client.frames_sent} frames")

        except ConnectionResetError:
            logger.info(f"Client {client.client_id} went away during {stream.campaign_id}")
        except asyncio.CancelledError:
            logger.info(f"Client {client.client_id} disconnected from {stream.campaign_id}")
            raise
        finally:
            await stream.aclose()
            self._clients.pop(client.client_id, None)

        return response

    def get_stream_count(self) -> int:
        """Get number of open streams."""
        return len(self._clients)
