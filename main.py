#!/usr/bin/env python3
"""
Campaign Stream - Main Entry Point

Streams incrementally generated campaign plans over SSE and previews them
as typed chat bubbles.

Usage:
    # Start the SSE server
    python main.py server

    # Stream a plan and preview it
    python main.py preview --name "Fall Sale" --sources website --channels email,sms

    # Check server status
    python main.py status
"""

import argparse
import asyncio
import logging
import signal
import sys

from core.config import get_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("campaignstream")


async def start_server(
    host: str,
    port: int,
    chunk_count: int,
    interval: float,
    cors_origin: str = "*",
):
    """Start the SSE server for campaign streaming."""
    from services.campaign.generator import ChunkGenerator
    from services.streaming.sse_server import CampaignStreamServer

    generator = ChunkGenerator(chunk_count=chunk_count, interval=interval)
    server = CampaignStreamServer(host=host, port=port, generator=generator, cors_origin=cors_origin)
    await server.start()

    logger.info("Press Ctrl+C to stop")

    # Keep running until interrupted
    stop_event = asyncio.Event()

    def handle_signal():
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal)

    await stop_event.wait()
    await server.stop()

    logger.info("Server stopped")


async def check_status(server_url: str) -> bool:
    """Print the server's /status summary."""
    import aiohttp

    async with aiohttp.ClientSession() as session:
        try:
            async with session.get(f"{server_url.rstrip('/')}/status") as resp:
                if resp.status != 200:
                    print(f"Server returned status {resp.status}")
                    return False
                data = await resp.json()
        except aiohttp.ClientError as e:
            print(f"Cannot connect to server: {e}")
            return False

    generator = data["generator"]
    print(f"Server: {server_url}")
    print("Status: Online")
    print(f"Uptime: {data['server']['uptime_seconds']}s")
    print(f"Chunks per stream: {generator['chunk_count']} every {generator['interval_seconds']}s")
    print(f"Active streams: {len(data['streams'])} ({generator['active_timers']} generator timers)")
    for client_id, info in data["streams"].items():
        print(f"  - {info['campaign_id']}: {info['frames_sent']} frames (client {client_id[:8]})")
    return True


def main():
    config = get_config()

    parser = argparse.ArgumentParser(
        description="Campaign Stream - incremental campaign plans over SSE",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Start SSE server
    python main.py server --port 4000

    # Preview a campaign
    python main.py preview --name "Fall Sale" --objective conversion --sources website --channels email

    # Check server status
    python main.py status --server http://localhost:4000
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start SSE server")
    server_parser.add_argument("--host", default=config.server.host, help="Host to bind")
    server_parser.add_argument("--port", type=int, default=config.server.port, help="Port to bind")
    server_parser.add_argument(
        "--chunks",
        type=int,
        default=config.generator.chunk_count,
        help="Partial chunks per stream",
    )
    server_parser.add_argument(
        "--interval",
        type=float,
        default=config.generator.interval_seconds,
        help="Seconds between chunks",
    )

    # Preview command
    from cli.campaign_preview import build_parser, request_from_args, run_preview

    preview_parser = subparsers.add_parser("preview", help="Stream and preview a campaign")
    build_parser(preview_parser)

    # Status command
    status_parser = subparsers.add_parser("status", help="Check server status")
    status_parser.add_argument("--server", default=config.client.server_url, help="SSE server URL")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    issues = config.validate()
    for issue in issues:
        logger.warning(f"Config: {issue}")

    # Run appropriate command
    if args.command == "server":
        asyncio.run(
            start_server(
                host=args.host,
                port=args.port,
                chunk_count=args.chunks,
                interval=args.interval,
                cors_origin=config.server.cors_origin,
            )
        )

    elif args.command == "preview":
        output_dir = None if args.no_export else args.output
        try:
            asyncio.run(run_preview(request_from_args(args), args.server, output_dir))
        except KeyboardInterrupt:
            print("\n\nInterrupted by user.")
            sys.exit(130)

    elif args.command == "status":
        ok = asyncio.run(check_status(args.server))
        sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
