"""
Campaign request and plan models.

The plan models mirror the wire payload of the stream one-to-one, so a
partial chunk parses straight into a CampaignPlan.
"""

from enum import Enum
from typing import Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Objective(str, Enum):
    """Campaign objectives offered to the user."""
    CONVERSION = "conversion"
    ENGAGEMENT = "engagement"
    RETENTION = "retention"


def _unique(values: Iterable[str]) -> tuple[str, ...]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for value in values:
        value = value.strip()
        if value:
            seen.setdefault(value, None)
    return tuple(seen)


def split_list(raw: Optional[str]) -> tuple[str, ...]:
    """Parse a comma-separated query value."""
    if not raw:
        return ()
    return _unique(raw.split(","))


class CampaignRequest(BaseModel):
    """What the user asked for. Frozen once built."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    campaign_name: str = Field(default="", alias="campaignName")
    objective: Objective = Objective.CONVERSION
    sources: tuple[str, ...] = ()
    channels: tuple[str, ...] = ()

    @field_validator("sources", "channels", mode="before")
    @classmethod
    def _as_unique_tuple(cls, value):
        if value is None:
            return ()
        if isinstance(value, str):
            return split_list(value)
        return _unique(value)

    @classmethod
    def from_query(cls, query: Mapping[str, str]) -> "CampaignRequest":
        """Build a request from /stream-campaign query parameters."""
        return cls.model_validate({
            "campaignName": query.get("campaignName", ""),
            "objective": query.get("objective") or Objective.CONVERSION.value,
            "sources": query.get("sources", ""),
            "channels": query.get("channels", ""),
        })

    def to_query(self) -> dict[str, str]:
        """Inverse of from_query, used by the client."""
        return {
            "campaignName": self.campaign_name,
            "objective": self.objective.value,
            "sources": ",".join(self.sources),
            "channels": ",".join(self.channels),
        }


class MessageContent(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: Optional[str] = None
    body: Optional[str] = None

    @property
    def content(self) -> str:
        """Text to reveal; older payloads carried the copy in `body`."""
        return self.text or self.body or ""


class ChannelMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    channel: str
    message: MessageContent


class CampaignStrategy(BaseModel):
    model_config = ConfigDict(extra="allow")

    sources: list[str] = Field(default_factory=list)
    per_channel: list[ChannelMessage] = Field(default_factory=list)


class CampaignPlan(BaseModel):
    """
    A campaign plan as streamed by the server.

    Keys the models do not name are kept, so a plan dumps back to exactly
    the document it was parsed from.
    """

    model_config = ConfigDict(extra="allow")

    campaign_id: Optional[str] = None
    campaign_name: str
    objective: str
    strategy: CampaignStrategy

    def to_payload(self) -> dict:
        """Plain dict in wire shape."""
        return self.model_dump(exclude_unset=True)
