"""
Campaign Stream CLI Tools

Command-line tools for interacting with the campaign stream server.

Tools:
- campaign_preview: Stream a plan and type out each channel's message
"""

from .campaign_preview import CampaignPreview, run_preview

__all__ = ["CampaignPreview", "run_preview"]
