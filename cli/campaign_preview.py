#!/usr/bin/env python3
"""
CLI Campaign Preview

Streams a campaign plan from the SSE server, shows the raw JSON as it
arrives, then types out each channel's message like a chat bubble.

Usage:
    python -m cli.campaign_preview --name "Fall Sale" --channels email,sms
    python -m cli.campaign_preview --server http://localhost:4000 --sources website --channels whatsapp
"""

import argparse
import asyncio
from pathlib import Path
from typing import Optional

from core.config import get_config
from services.campaign.models import CampaignRequest, Objective
from services.preview.export import export_plan
from services.preview.session import SessionController, SessionState, SessionStatus
from services.preview.typing_animator import BubbleSender, TypingAnimator
from services.streaming.sse_client import CampaignStreamClient


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    # Clear line
    CLEAR_LINE = "\033[2K\r"


def colored(text: str, color: str) -> str:
    """Apply color to text."""
    return f"{color}{text}{Colors.RESET}"


# Bubble color per channel for user-sent messages
CHANNEL_COLORS = {
    "sms": Colors.BLUE,
    "whatsapp": Colors.GREEN,
    "messenger": Colors.BLUE + Colors.BOLD,
}

STATUS_STYLE = {
    SessionStatus.STREAMING: ("live", Colors.CYAN),
    SessionStatus.COMPLETED: ("complete", Colors.GREEN),
    SessionStatus.FAILED: ("failed", Colors.RED),
    SessionStatus.CANCELLED: ("cancelled", Colors.YELLOW),
    SessionStatus.IDLE: ("idle", Colors.DIM),
}


def format_bubble(channel: str, sender: BubbleSender, text: str) -> str:
    """Format a finished bubble as one line."""
    if sender is BubbleSender.BRAND:
        return f"  {colored('B', Colors.DIM)} {colored(text, Colors.WHITE)}"
    color = CHANNEL_COLORS.get(channel, Colors.WHITE)
    return f"  {colored(channel.upper(), Colors.BOLD)} {colored('U', Colors.CYAN)} {colored(text, color)}"


class CampaignPreview:
    """Terminal renderer for one preview session."""

    def __init__(self, controller: SessionController):
        self.controller = controller
        self._printed_buffer = 0
        self._printed_bubbles: set[tuple[str, int]] = set()
        self._last_status: Optional[SessionStatus] = None
        self._typing_line = False

        controller.on_change(self.render)

    def render(self, state: SessionState):
        """Print whatever changed since the last call."""
        self._clear_typing_line()

        if state.status is not self._last_status:
            self._last_status = state.status
            label, color = STATUS_STYLE[state.status]
            print(colored(f"── {label} ──", color))
            if state.error:
                print(colored(f"   {state.error}", Colors.RED))

        if len(state.buffer) > self._printed_buffer:
            for line in state.buffer[self._printed_buffer:].splitlines():
                print(colored(line if len(line) <= 120 else line[:117] + "...", Colors.DIM))
            self._printed_buffer = len(state.buffer)

        for channel, session in state.sessions.items():
            for idx, bubble in enumerate(session.bubbles):
                key = (channel, idx)
                if bubble.complete and key not in self._printed_bubbles:
                    self._printed_bubbles.add(key)
                    print(format_bubble(channel, bubble.sender, bubble.full_text))

        typing = state.typing_channels
        if typing:
            print(f"{Colors.CLEAR_LINE}{colored('typing… ' + ', '.join(typing), Colors.DIM)}", end="", flush=True)
            self._typing_line = True

    def _clear_typing_line(self):
        if self._typing_line:
            print(Colors.CLEAR_LINE, end="")
            self._typing_line = False


async def run_preview(
    request: CampaignRequest,
    server_url: str,
    output_dir: Optional[str] = None,
) -> Optional[Path]:
    """Run one session end to end. Returns the export path, if any."""
    client = CampaignStreamClient(server_url, connect_timeout=get_config().client.connect_timeout)
    controller = SessionController(client, TypingAnimator(config=get_config().typing))
    CampaignPreview(controller)

    print(colored("\n╔═══════════════════════════════════════════╗", Colors.CYAN))
    print(colored("║  Campaign Stream Preview                  ║", Colors.CYAN))
    print(colored("╚═══════════════════════════════════════════╝", Colors.CYAN))
    print(f"Campaign: {colored(request.campaign_name, Colors.BOLD)} ({request.objective.value})")
    print(f"Server:   {colored(client.stream_url, Colors.DIM)}")
    print()

    try:
        await controller.start(request)
        await controller.wait()
    except asyncio.CancelledError:
        await controller.stop()
        raise
    finally:
        await controller.close()

    plan = controller.state.plan
    if plan is None or output_dir is None:
        return None
    path = await export_plan(plan, output_dir)
    print(colored(f"\nSaved {path}", Colors.GREEN))
    return path


def build_parser(parser: Optional[argparse.ArgumentParser] = None) -> argparse.ArgumentParser:
    config = get_config()
    parser = parser or argparse.ArgumentParser(description="Preview a streamed campaign plan")
    parser.add_argument("--server", default=config.client.server_url, help="SSE server URL")
    parser.add_argument("--name", default="September Sales Clearing", help="Campaign name")
    parser.add_argument(
        "--objective",
        choices=[o.value for o in Objective],
        default=Objective.CONVERSION.value,
        help="Campaign objective",
    )
    parser.add_argument("--sources", default="", help="Comma-separated data sources")
    parser.add_argument("--channels", default="email", help="Comma-separated channels")
    parser.add_argument("--output", "-o", default=config.client.export_dir, help="Export directory")
    parser.add_argument("--no-export", action="store_true", help="Do not write the plan JSON")
    return parser


def request_from_args(args: argparse.Namespace) -> CampaignRequest:
    return CampaignRequest(
        campaign_name=args.name,
        objective=Objective(args.objective),
        sources=args.sources,
        channels=args.channels,
    )


async def main():
    args = build_parser().parse_args()
    output_dir = None if args.no_export else args.output

    try:
        await run_preview(request_from_args(args), args.server, output_dir)
    except KeyboardInterrupt:
        print(colored("\n\nInterrupted by user.", Colors.YELLOW))


if __name__ == "__main__":
    asyncio.run(main())
