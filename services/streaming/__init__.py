"""
Campaign Plan Streaming

Server-Sent Events transport for incrementally generated campaign plans.

Usage:
    # Server
    from services.streaming.sse_server import CampaignStreamServer
    server = CampaignStreamServer(host="0.0.0.0", port=4000)
    await server.start()

    # Client
    from services.streaming import CampaignStreamClient
    stream = await CampaignStreamClient("http://localhost:4000").open(request)
    async for payload in stream:
        ...
"""

from .protocol import Chunk, ChunkKind, END_SENTINEL, FrameDecoder, MalformedFrame, encode_frame
from .sse_client import CampaignStream, CampaignStreamClient, TransportError

__all__ = [
    "Chunk",
    "ChunkKind",
    "END_SENTINEL",
    "FrameDecoder",
    "MalformedFrame",
    "encode_frame",
    "CampaignStream",
    "CampaignStreamClient",
    "TransportError",
]
