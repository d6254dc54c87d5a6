"""
End-to-end tests for the SSE transport (server and client halves).

Runs a real aiohttp server in-process.

Run with:
    python -m pytest tests/test_sse_stream.py -v
"""

import asyncio
import json
import os
import random
import sys
from contextlib import asynccontextmanager

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.campaign.generator import ChunkGenerator
from services.campaign.models import CampaignRequest
from services.streaming.protocol import END_SENTINEL
from services.streaming.sse_client import CampaignStreamClient, TransportError
from services.streaming.sse_server import CampaignStreamServer


@asynccontextmanager
async def running_server(chunk_count: int = 3, interval: float = 0.01):
    generator = ChunkGenerator(chunk_count=chunk_count, interval=interval, rng=random.Random(5))
    server = CampaignStreamServer(generator=generator)
    async with TestServer(server.build_app()) as test_server:
        yield server, str(test_server.make_url("/"))


@asynccontextmanager
async def raw_server(body: bytes, status: int = 200):
    """Server that answers /stream-campaign with a canned event-stream body."""

    async def handler(request: web.Request) -> web.StreamResponse:
        if status != 200:
            return web.json_response({"error": "unavailable"}, status=status)
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        await response.write(body)
        await response.write_eof()
        return response

    app = web.Application()
    app.router.add_get("/stream-campaign", handler)
    async with TestServer(app) as test_server:
        yield str(test_server.make_url("/"))


async def wait_for(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


FALL_SALE = CampaignRequest(
    campaign_name="Fall Sale",
    objective="conversion",
    sources=["website"],
    channels=["email"],
)


class TestServerWire:
    """What the server puts on the wire."""

    @pytest.mark.asyncio
    async def test_headers_and_frames(self):
        """Test SSE headers and the frames written by the server."""
        async with running_server() as (server, base_url):
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    f"{base_url}stream-campaign",
                    params=FALL_SALE.to_query(),
                ) as resp:
                    assert resp.status == 200
                    assert resp.headers["Content-Type"] == "text/event-stream"
                    assert resp.headers["Cache-Control"] == "no-cache"
                    body = await resp.text()

        frames = body.split("\n\n")
        assert frames[-1] == ""
        frames = frames[:-1]

        assert len(frames) == 4
        assert all(frame.startswith("data: ") for frame in frames)
        assert frames[-1] == f"data: {END_SENTINEL}"

        documents = [json.loads(frame[len("data: "):]) for frame in frames[:-1]]
        assert {doc["campaign_id"] for doc in documents} == {documents[0]["campaign_id"]}
        assert documents[0]["strategy"]["per_channel"][0]["channel"] == "email"

    @pytest.mark.asyncio
    async def test_server_releases_timer_after_end(self):
        """Test that the server frees the producer after the end marker."""
        async with running_server() as (server, base_url):
            async with aiohttp.ClientSession() as session:
                async with session.get(f"{base_url}stream-campaign", params=FALL_SALE.to_query()) as resp:
                    await resp.read()

            await wait_for(lambda: server.get_stream_count() == 0)
            assert server.generator.active_timers == 0

    @pytest.mark.asyncio
    async def test_invalid_request_is_rejected(self):
        """Test that an invalid request gets a 400 JSON error."""
        async with running_server() as (server, base_url):
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    f"{base_url}stream-campaign",
                    params={"campaignName": "Fall Sale", "objective": "virality"},
                ) as resp:
                    assert resp.status == 400
                    data = await resp.json()

        assert data["error"] == "Invalid campaign request"
        assert server.generator.active_timers == 0

    @pytest.mark.asyncio
    async def test_health_and_status(self):
        """Test the health and status endpoints."""
        async with running_server() as (server, base_url):
            async with aiohttp.ClientSession() as session:
                async with session.get(f"{base_url}health") as resp:
                    health = await resp.json()
                async with session.get(f"{base_url}status") as resp:
                    status = await resp.json()

        assert health["status"] == "healthy"
        assert status["generator"]["chunk_count"] == 3
        assert status["generator"]["active_timers"] == 0
        assert status["streams"] == {}

    @pytest.mark.asyncio
    async def test_status_lists_live_streams(self):
        """Test that status reports each live stream with its user agent."""
        async with running_server(chunk_count=100, interval=0.02) as (server, base_url):
            async with aiohttp.ClientSession(headers={"User-Agent": "campaign-preview/0.1"}) as session:
                stream = await CampaignStreamClient(base_url, session=session).open(FALL_SALE)
                try:
                    async for _ in stream:
                        break
                    async with session.get(f"{base_url}status") as resp:
                        status = await resp.json()
                finally:
                    await stream.close()

        (entry,) = status["streams"].values()
        assert entry["user_agent"] == "campaign-preview/0.1"
        assert entry["campaign_id"].startswith("CMP-")
        assert entry["frames_sent"] >= 1


class TestClientTransport:
    """The client half: ordering, termination and failures."""

    @pytest.mark.asyncio
    async def test_payloads_arrive_in_order_and_stop_at_end(self):
        """Test that the client yields payloads in order and stops at the end."""
        async with running_server() as (server, base_url):
            stream = await CampaignStreamClient(base_url).open(FALL_SALE)
            try:
                payloads = [payload async for payload in stream]
            finally:
                await stream.close()

        assert len(payloads) == 4
        assert payloads[-1] == END_SENTINEL
        assert stream.ended
        texts = [
            json.loads(payload)["strategy"]["per_channel"][0]["message"]["text"]
            for payload in payloads[:-1]
        ]
        assert texts == [f'Sample email message part {n} for "Fall Sale"' for n in (1, 2, 3)]

    @pytest.mark.asyncio
    async def test_client_cancel_stops_server_production(self):
        """Test that closing the client stream stops server generation."""
        async with running_server(chunk_count=100, interval=0.02) as (server, base_url):
            stream = await CampaignStreamClient(base_url).open(FALL_SALE)
            async for payload in stream:
                assert payload != END_SENTINEL
                break
            assert server.generator.active_timers == 1

            await stream.close()
            assert stream.closed

            # Well before the 100 chunks would have been produced
            await wait_for(lambda: server.generator.active_timers == 0, timeout=1.0)
            await wait_for(lambda: server.get_stream_count() == 0, timeout=1.0)

    @pytest.mark.asyncio
    async def test_http_error_raises_transport_error(self):
        """Test that a non-200 response raises TransportError with the status."""
        async with raw_server(b"", status=503) as base_url:
            with pytest.raises(TransportError) as exc_info:
                await CampaignStreamClient(base_url).open(FALL_SALE)

        assert exc_info.value.status == 503

    @pytest.mark.asyncio
    async def test_empty_campaign_name_streams_normally(self):
        """Test that an empty campaign name streams three partials and the end."""
        async with running_server() as (server, base_url):
            request = CampaignRequest(campaign_name="", channels=["email"])
            stream = await CampaignStreamClient(base_url).open(request)
            try:
                payloads = [payload async for payload in stream]
            finally:
                await stream.close()

        assert len(payloads) == 4
        assert payloads[-1] == END_SENTINEL
        assert json.loads(payloads[0])["campaign_name"] == ""
        assert json.loads(payloads[2])["strategy"]["per_channel"][0]["message"]["text"] == (
            'Sample email message part 3 for ""'
        )

    @pytest.mark.asyncio
    async def test_connection_refused_raises_transport_error(self):
        """Test that a refused connection raises TransportError."""
        client = CampaignStreamClient("http://127.0.0.1:1", connect_timeout=1.0)
        with pytest.raises(TransportError):
            await client.open(FALL_SALE)

    @pytest.mark.asyncio
    async def test_malformed_frame_raises_transport_error(self):
        """Test that a malformed frame raises TransportError."""
        async with raw_server(b"data: {}\n\nthis is not sse\n\n") as base_url:
            stream = await CampaignStreamClient(base_url).open(FALL_SALE)
            received = []
            try:
                with pytest.raises(TransportError):
                    async for payload in stream:
                        received.append(payload)
            finally:
                await stream.close()

        assert received == ["{}"]

    @pytest.mark.asyncio
    async def test_eof_before_end_marker_raises_transport_error(self):
        """Test that EOF before the end marker raises TransportError."""
        async with raw_server(b"data: {}\n\n") as base_url:
            stream = await CampaignStreamClient(base_url).open(FALL_SALE)
            try:
                with pytest.raises(TransportError):
                    async for _ in stream:
                        pass
            finally:
                await stream.close()

        assert not stream.ended
