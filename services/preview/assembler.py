"""
Stream Assembler

Turns the frames of one campaign stream into a CampaignPlan.

Every partial frame is a complete document superseding the previous one, so
the plan is parsed from the last partial received before `[END]`. The raw
text of all partials is kept (newline separated) for live display and for
diagnostics when parsing fails.
"""

import json
import logging
from typing import Optional

from pydantic import ValidationError

from services.campaign.models import CampaignPlan
from services.streaming.protocol import END_SENTINEL

logger = logging.getLogger(__name__)


class MalformedPayload(Exception):
    """Raised when the final stream payload is not a valid campaign plan."""

    def __init__(self, message: str, buffer: str = ""):
        self.buffer = buffer
        super().__init__(message)


class AssemblerClosed(Exception):
    """Raised when a finished assembler is fed again."""


class StreamAssembler:
    """
    Single-use accumulator for one stream attempt.

    Usage:
        assembler = StreamAssembler()
        for payload in payloads:
            plan = assembler.feed(payload)   # returns the plan on [END]
    """

    def __init__(self):
        self._parts: list[str] = []
        self._last_partial: Optional[str] = None
        self.plan: Optional[CampaignPlan] = None
        self.error: Optional[MalformedPayload] = None
        self.finished = False

    @property
    def buffer(self) -> str:
        """Everything received so far, one partial per line."""
        return "".join(self._parts)

    @property
    def partial_count(self) -> int:
        return len(self._parts)

    def feed(self, payload: str) -> Optional[CampaignPlan]:
        """
        Consume one frame payload.

        Returns the assembled plan when the terminal marker arrives, None
        otherwise. Raises MalformedPayload if the final document is invalid.
        """
        if self.finished:
            raise AssemblerClosed("Assembler already finished; open a new one per stream")

        if payload == END_SENTINEL:
            return self.finish()

        self._parts.append(payload + "\n")
        self._last_partial = payload
        return None

    def finish(self) -> CampaignPlan:
        """Parse the last partial into the final plan."""
        if self.finished:
            raise AssemblerClosed("Assembler already finished; open a new one per stream")
        self.finished = True

        if self._last_partial is None:
            self.error = MalformedPayload("Stream ended without any partial payload", self.buffer)
            raise self.error

        try:
            document = json.loads(self._last_partial)
            plan = CampaignPlan.model_validate(document)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Error parsing final JSON: {e}")
            self.error = MalformedPayload(f"Final payload is not a campaign plan: {e}", self.buffer)
            raise self.error from e

        self.plan = plan
        logger.info(
            f"Assembled plan {plan.campaign_id or '(no id)'} from {self.partial_count} partial(s), "
            f"{len(plan.strategy.per_channel)} channel message(s)"
        )
        return plan
