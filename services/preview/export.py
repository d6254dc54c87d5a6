"""
Plan export.

Writes the final campaign plan to `<campaign_id>.json` (or `campaign.json`
when the plan has no ID), pretty-printed for humans.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Union

import aiofiles

from services.campaign.models import CampaignPlan

logger = logging.getLogger(__name__)


def plan_filename(plan: CampaignPlan) -> str:
    return f"{plan.campaign_id or 'campaign'}.json"


def render_plan(plan: CampaignPlan) -> str:
    return json.dumps(plan.to_payload(), indent=2, ensure_ascii=False)


async def export_plan(plan: Optional[CampaignPlan], directory: Union[str, Path] = ".") -> Path:
    """
    Write the plan to disk.

    Args:
        plan: Final plan of a completed session
        directory: Target directory (created if missing)

    Returns:
        Path of the written file
    """
    if plan is None:
        raise ValueError("No campaign plan to export")

    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / plan_filename(plan)

    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write(render_plan(plan))

    logger.info(f"Exported {plan.campaign_id or 'campaign'} to {path}")
    return path
