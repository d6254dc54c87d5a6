"""
Campaign Generation

Request/plan models and the placeholder incremental planner.
"""

from .models import (
    CampaignPlan,
    CampaignRequest,
    CampaignStrategy,
    ChannelMessage,
    MessageContent,
    Objective,
)
from .generator import ChunkGenerator, ChunkStream, build_payload

__all__ = [
    "CampaignPlan",
    "CampaignRequest",
    "CampaignStrategy",
    "ChannelMessage",
    "MessageContent",
    "Objective",
    "ChunkGenerator",
    "ChunkStream",
    "build_payload",
]
