"""
Typing Animator

Replays each channel's message as a chat bubble that is typed out one
character at a time, the way a person would.

One asyncio task per bubble:
1. wait a random start delay
2. append an empty bubble and mark the channel as typing
3. reveal one more character per step at a cadence drawn once per bubble
4. clear the typing flag once the bubble is complete

Channels animate independently. Bubbles queued on the same channel are
revealed one after another. `reset()` bumps an epoch counter before
cancelling, so any step already scheduled for an old epoch becomes a no-op.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

from core.config import TypingConfig
from services.campaign.models import CampaignPlan

logger = logging.getLogger(__name__)


class BubbleSender(str, Enum):
    USER = "user"
    BRAND = "brand"


@dataclass
class Bubble:
    """One rendered message with progressively revealed text."""

    sender: BubbleSender
    full_text: str
    visible_text: str = ""

    @property
    def complete(self) -> bool:
        return self.visible_text == self.full_text


@dataclass
class TypingSession:
    """Animation state of a single channel."""

    channel: str
    bubbles: list[Bubble] = field(default_factory=list)
    is_typing: bool = False


UpdateCallback = Callable[[TypingSession], None]


class TypingAnimator:
    """
    Drives concurrent per-channel typing animations.

    Args:
        config: Timing ranges (seconds)
        rng: Random source for delays and cadences; seed it for reproducible runs
        start_delay: Replaces the start-delay draw
        cadence: Replaces the per-bubble cadence draw
        sleep: Replaces asyncio.sleep (tests inject a fake clock)

    Usage:
        animator = TypingAnimator(rng=random.Random(7))
        animator.on_update(lambda session: render(session))
        animator.animate(plan)
        await animator.join()
    """

    def __init__(
        self,
        config: Optional[TypingConfig] = None,
        rng: Optional[random.Random] = None,
        start_delay: Optional[Callable[[], float]] = None,
        cadence: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.config = config or TypingConfig()
        self._rng = rng or random.Random()
        self._start_delay = start_delay or self._draw_start_delay
        self._cadence = cadence or self._draw_cadence
        self._sleep = sleep or asyncio.sleep

        self.sessions: dict[str, TypingSession] = {}

        self._epoch = 0
        self._tasks: set[asyncio.Task] = set()
        self._tails: dict[str, asyncio.Task] = {}  # channel -> last scheduled bubble
        self._callbacks: list[UpdateCallback] = []

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def active_tasks(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    @property
    def is_animating(self) -> bool:
        return self.active_tasks > 0

    def _draw_start_delay(self) -> float:
        return self._rng.random() * self.config.start_delay_max

    def _draw_cadence(self) -> float:
        low, high = self.config.cadence_min, self.config.cadence_max
        return low + self._rng.random() * (high - low)

    def on_update(self, callback: UpdateCallback):
        """Register a callback invoked after every visible change."""
        self._callbacks.append(callback)

    def _emit(self, session: TypingSession):
        for callback in self._callbacks:
            try:
                callback(session)
            except Exception as e:
                logger.error(f"Typing update callback error: {e}")

    def animate(self, plan: CampaignPlan) -> list[asyncio.Task]:
        """Schedule one bubble per channel entry of the plan."""
        return [
            self.add_message(entry.channel, entry.message.content)
            for entry in plan.strategy.per_channel
        ]

    def add_message(
        self,
        channel: str,
        text: str,
        sender: BubbleSender = BubbleSender.USER,
    ) -> asyncio.Task:
        """Schedule a bubble on a channel, after any bubble already queued there."""
        if channel not in self.sessions:
            self.sessions[channel] = TypingSession(channel=channel)

        previous = self._tails.get(channel)
        task = asyncio.create_task(
            self._reveal(self.sessions[channel], sender, text, self._epoch, previous),
            name=f"typing:{channel}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._tails[channel] = task
        return task

    async def _reveal(
        self,
        session: TypingSession,
        sender: BubbleSender,
        text: str,
        epoch: int,
        previous: Optional[asyncio.Task],
    ):
        if previous is not None and not previous.done():
            # asyncio.wait does not cancel `previous` if this task is cancelled
            await asyncio.wait({previous})
        if epoch != self._epoch:
            return

        delay = self._start_delay()
        cadence = self._cadence()

        await self._sleep(delay)
        if epoch != self._epoch:
            return

        bubble = Bubble(sender=sender, full_text=text)
        session.bubbles.append(bubble)
        session.is_typing = not bubble.complete
        self._emit(session)
        logger.debug(f"Typing {len(text)} chars on {session.channel} every {cadence * 1000:.0f}ms")

        for idx in range(1, len(text) + 1):
            await self._sleep(cadence)
            if epoch != self._epoch:
                return
            bubble.visible_text = text[:idx]
            session.is_typing = idx < len(text)
            self._emit(session)

    def reset(self):
        """Cancel every animation and discard all sessions."""
        self._epoch += 1

        for session in self.sessions.values():
            session.is_typing = False

        for task in list(self._tasks):
            task.cancel()

        if self.sessions:
            logger.debug(f"Typing animator reset (epoch {self._epoch}), dropped {len(self.sessions)} channel(s)")

        self._tails = {}
        self.sessions = {}

    async def join(self):
        """Wait until every scheduled bubble is fully revealed or cancelled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self):
        """Reset and wait for the cancelled tasks to unwind."""
        self.reset()
        await self.join()
