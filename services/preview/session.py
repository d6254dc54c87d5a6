"""
Preview Session Controller

Orchestrates one streaming run at a time on the client:
transport → assembler → plan → typing animator.

States:
    IDLE → STREAMING → COMPLETED | FAILED | CANCELLED
    COMPLETED | FAILED | CANCELLED → STREAMING   (only via a fresh start)

The controller exclusively owns the live transport handle and the
SessionState; renderers subscribe with on_change() and get the state
after each mutation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from services.campaign.models import CampaignPlan, CampaignRequest
from services.streaming.sse_client import CampaignStream, CampaignStreamClient, TransportError

from .assembler import MalformedPayload, StreamAssembler
from .typing_animator import TypingAnimator, TypingSession

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class SessionState:
    """Everything a renderer needs to draw the preview."""

    status: SessionStatus = SessionStatus.IDLE
    request: Optional[CampaignRequest] = None
    buffer: str = ""
    plan: Optional[CampaignPlan] = None
    sessions: dict[str, TypingSession] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def is_streaming(self) -> bool:
        return self.status is SessionStatus.STREAMING

    @property
    def typing_channels(self) -> list[str]:
        return [channel for channel, session in self.sessions.items() if session.is_typing]

    def clear(self, request: Optional[CampaignRequest] = None):
        self.request = request
        self.buffer = ""
        self.plan = None
        self.sessions = {}
        self.error = None


ChangeCallback = Callable[[SessionState], None]


class SessionController:
    """
    Start/stop control over a single campaign stream.

    Usage:
        controller = SessionController(CampaignStreamClient(url))
        controller.on_change(render)

        await controller.start(request)
        await controller.wait()          # stream done and bubbles typed
        plan = controller.state.plan
    """

    def __init__(
        self,
        client: CampaignStreamClient,
        animator: Optional[TypingAnimator] = None,
    ):
        self.client = client
        self.animator = animator or TypingAnimator()
        self.animator.on_update(self._on_typing_update)

        self.state = SessionState()

        self._stream: Optional[CampaignStream] = None
        self._reader: Optional[asyncio.Task] = None
        self._assembler: Optional[StreamAssembler] = None
        self._epoch = 0
        self._callbacks: list[ChangeCallback] = []

    @property
    def status(self) -> SessionStatus:
        return self.state.status

    @property
    def has_transport(self) -> bool:
        return self._stream is not None and not self._stream.closed

    def on_change(self, callback: ChangeCallback):
        """Register a renderer callback."""
        self._callbacks.append(callback)

    def _emit(self):
        for callback in self._callbacks:
            try:
                callback(self.state)
            except Exception as e:
                logger.error(f"Session change callback error: {e}")

    def _set_status(self, status: SessionStatus):
        if self.state.status is not status:
            logger.info(f"Session {self.state.status.value} -> {status.value}")
        self.state.status = status
        self._emit()

    async def start(self, request: CampaignRequest):
        """Begin a new streaming run. No-op while a run is streaming."""
        if self.state.is_streaming:
            logger.debug("start() ignored: already streaming")
            return

        await self._teardown()

        self.state.clear(request)
        self._assembler = StreamAssembler()
        epoch = self._epoch
        self._reader = asyncio.create_task(self._run(request, epoch), name="campaign-stream-reader")
        self._set_status(SessionStatus.STREAMING)

    async def stop(self):
        """Cancel the live stream. No-op unless streaming."""
        if not self.state.is_streaming:
            return

        # Invalidate the reader before anything else can run
        self._epoch += 1
        self._set_status(SessionStatus.CANCELLED)
        await self._close_transport()

    async def wait(self):
        """Wait for the stream to finish and every bubble to be typed."""
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)
        await self.animator.join()

    async def close(self):
        """Release everything the controller holds."""
        await self.stop()
        await self._teardown()

    async def _teardown(self):
        self._epoch += 1
        await self._close_transport()
        self.animator.reset()
        self.state.sessions = self.animator.sessions

    async def _close_transport(self):
        reader, self._reader = self._reader, None
        if reader is not None and not reader.done():
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)

        stream, self._stream = self._stream, None
        if stream is not None:
            await stream.close()

    async def _run(self, request: CampaignRequest, epoch: int):
        """Read frames, feed the assembler, hand the plan to the animator."""
        assembler = self._assembler
        stream: Optional[CampaignStream] = None
        try:
            stream = await self.client.open(request)
            if epoch != self._epoch:
                return
            self._stream = stream

            async for payload in stream:
                if epoch != self._epoch:
                    return

                plan = assembler.feed(payload)
                if plan is None:
                    self.state.buffer = assembler.buffer
                    self._emit()
                else:
                    self._complete(plan)

        except TransportError as e:
            if epoch == self._epoch:
                logger.warning(f"Stream failed: {e}")
                self._fail(str(e))
        except MalformedPayload as e:
            if epoch == self._epoch:
                self._fail(str(e))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error while streaming: {e}")
            if epoch == self._epoch:
                self._fail(str(e))
        finally:
            if stream is not None:
                await stream.close()
                if self._stream is stream:
                    self._stream = None

    def _complete(self, plan: CampaignPlan):
        self.state.plan = plan
        self.animator.animate(plan)
        self.state.sessions = self.animator.sessions
        self._set_status(SessionStatus.COMPLETED)

    def _fail(self, message: str):
        self.state.error = message
        self._set_status(SessionStatus.FAILED)

    def _on_typing_update(self, session: TypingSession):
        self._emit()
