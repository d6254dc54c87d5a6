"""
Tests for campaign request parsing and the incremental chunk generator.

Run with:
    python -m pytest tests/test_generator.py -v
"""

import asyncio
import json
import os
import random
import sys

import pytest
from pydantic import ValidationError

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.campaign.generator import ChunkGenerator, build_payload
from services.campaign.models import CampaignPlan, CampaignRequest, Objective
from services.streaming.protocol import ChunkKind


async def collect(generator: ChunkGenerator, request: CampaignRequest) -> list:
    chunks = []
    async with generator.open(request) as stream:
        async for chunk in stream:
            chunks.append(chunk)
    return chunks


class TestCampaignRequest:
    """Query parsing and set semantics of the request."""

    def test_from_query(self):
        """Test building a request from query parameters."""
        request = CampaignRequest.from_query({
            "campaignName": "Fall Sale",
            "objective": "engagement",
            "sources": "website,shopify",
            "channels": "email,sms",
        })
        assert request.campaign_name == "Fall Sale"
        assert request.objective is Objective.ENGAGEMENT
        assert request.sources == ("website", "shopify")
        assert request.channels == ("email", "sms")

    def test_blank_and_duplicate_entries_are_dropped(self):
        """Test that blank and repeated list entries are dropped in order."""
        request = CampaignRequest.from_query({
            "campaignName": "Fall Sale",
            "sources": "",
            "channels": "email,,sms,email, ",
        })
        assert request.sources == ()
        assert request.channels == ("email", "sms")

    def test_objective_defaults_to_conversion(self):
        """Test that a missing objective means conversion."""
        request = CampaignRequest.from_query({"campaignName": "Fall Sale"})
        assert request.objective is Objective.CONVERSION

    def test_unknown_objective_rejected(self):
        """Test that an unknown objective fails validation."""
        with pytest.raises(ValidationError):
            CampaignRequest.from_query({"campaignName": "Fall Sale", "objective": "virality"})

    def test_missing_name_is_empty_string(self):
        """Test that a missing campaignName becomes an empty string."""
        request = CampaignRequest.from_query({"channels": "email"})
        assert request.campaign_name == ""
        assert request.channels == ("email",)

    def test_empty_name_is_accepted(self):
        """Test that an empty campaign name is a valid request."""
        request = CampaignRequest(campaign_name="", channels=["email"])
        assert request.to_query()["campaignName"] == ""

    def test_request_is_frozen(self):
        """Test that requests cannot be mutated."""
        request = CampaignRequest(campaign_name="Fall Sale", channels=["email"])
        with pytest.raises(ValidationError):
            request.campaign_name = "Winter Sale"

    def test_query_round_trip(self):
        """Test that to_query and from_query are inverse."""
        request = CampaignRequest(
            campaign_name="Fall Sale",
            objective=Objective.RETENTION,
            sources=["website"],
            channels=["email", "whatsapp"],
        )
        assert CampaignRequest.from_query(request.to_query()) == request


class TestBuildPayload:
    """Shape of a single partial document."""

    def test_payload_parses_as_plan(self):
        """Test that a built payload parses as a CampaignPlan."""
        request = CampaignRequest(campaign_name="Fall Sale", sources=["website"], channels=["email"])
        payload = build_payload(request, "CMP-42", 2)

        plan = CampaignPlan.model_validate(payload)
        assert plan.campaign_id == "CMP-42"
        assert plan.objective == "conversion"
        assert plan.strategy.sources == ["website"]
        assert plan.strategy.per_channel[0].channel == "email"
        assert plan.strategy.per_channel[0].message.text == 'Sample email message part 2 for "Fall Sale"'


class TestChunkGenerator:
    """Chunk sequencing, identity and cancellation."""

    @pytest.fixture
    def request_email(self):
        return CampaignRequest(
            campaign_name="Fall Sale",
            objective=Objective.CONVERSION,
            sources=["website"],
            channels=["email"],
        )

    @pytest.mark.asyncio
    async def test_emits_k_partials_then_one_end(self, request_email):
        """Test that a stream yields K partials then exactly one end marker."""
        generator = ChunkGenerator(chunk_count=3, interval=0)
        chunks = await collect(generator, request_email)

        kinds = [chunk.kind for chunk in chunks]
        assert kinds == [ChunkKind.PARTIAL] * 3 + [ChunkKind.END]

        sequences = [chunk.sequence for chunk in chunks]
        assert sequences == sorted(set(sequences))
        assert generator.active_timers == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("chunk_count", [1, 5])
    async def test_chunk_count_is_configurable(self, request_email, chunk_count):
        """Test that the number of partials follows chunk_count."""
        generator = ChunkGenerator(chunk_count=chunk_count, interval=0)
        chunks = await collect(generator, request_email)

        assert len(chunks) == chunk_count + 1
        assert chunks[-1].is_end
        assert not any(chunk.is_end for chunk in chunks[:-1])

    @pytest.mark.asyncio
    async def test_campaign_id_stable_within_stream(self, request_email):
        """Test that every partial of a stream shares one campaign_id."""
        generator = ChunkGenerator(chunk_count=3, interval=0, rng=random.Random(11))
        chunks = await collect(generator, request_email)

        ids = {json.loads(chunk.raw)["campaign_id"] for chunk in chunks if not chunk.is_end}
        assert len(ids) == 1

        campaign_id = ids.pop()
        assert campaign_id.startswith("CMP-")
        assert 0 <= int(campaign_id[4:]) < 10000

    @pytest.mark.asyncio
    async def test_seeded_rng_gives_reproducible_ids(self, request_email):
        """Test that a seeded RNG gives the same campaign IDs."""
        first = ChunkGenerator(interval=0, rng=random.Random(3)).open(request_email)
        second = ChunkGenerator(interval=0, rng=random.Random(3)).open(request_email)
        try:
            assert first.campaign_id == second.campaign_id
        finally:
            await first.aclose()
            await second.aclose()

    @pytest.mark.asyncio
    async def test_each_partial_is_a_full_document_with_its_ordinal(self, request_email):
        """Test that each partial is complete and carries its ordinal."""
        generator = ChunkGenerator(chunk_count=3, interval=0)
        chunks = await collect(generator, request_email)

        for ordinal, chunk in enumerate(chunks[:-1], start=1):
            document = json.loads(chunk.raw)
            assert document["campaign_name"] == "Fall Sale"
            assert document["strategy"]["sources"] == ["website"]
            text = document["strategy"]["per_channel"][0]["message"]["text"]
            assert f"part {ordinal}" in text

    @pytest.mark.asyncio
    async def test_zero_channels_is_not_an_error(self):
        """Test that a request without channels still streams."""
        request = CampaignRequest(campaign_name="Fall Sale", sources=["website"], channels=[])
        generator = ChunkGenerator(chunk_count=3, interval=0)
        chunks = await collect(generator, request)

        partials = [json.loads(chunk.raw) for chunk in chunks if not chunk.is_end]
        assert len(partials) == 3
        assert all(doc["strategy"]["per_channel"] == [] for doc in partials)

    @pytest.mark.asyncio
    async def test_close_before_end_cancels_production(self, request_email):
        """Test that closing early cancels the producer and frees its timer."""
        generator = ChunkGenerator(chunk_count=3, interval=0.05)
        stream = generator.open(request_email)

        first = await stream.__anext__()
        assert first.sequence == 1
        assert generator.active_timers == 1

        await stream.aclose()
        assert generator.active_timers == 0
        assert stream.closed

        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_shutdown_cancels_every_stream(self, request_email):
        """Test that shutdown cancels all live producers."""
        generator = ChunkGenerator(chunk_count=3, interval=10)
        generator.open(request_email)
        generator.open(request_email)
        await asyncio.sleep(0)
        assert generator.active_timers == 2

        await generator.shutdown()
        assert generator.active_timers == 0

    def test_rejects_zero_chunks(self):
        """Test that chunk_count below one is rejected."""
        with pytest.raises(ValueError):
            ChunkGenerator(chunk_count=0)
