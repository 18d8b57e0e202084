# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Campaign persistence helpers.

Reads and writes campaign records together with their closure rows, and
publishes the ``campaign.written`` change event once a write commits.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.domains.sync.stats import StatsAggregator
from src.domains.sync.writer import add_to_index, remove_from_index
from src.infrastructure.database.models import Campaign, CampaignOrgTarget, User
from src.infrastructure.events import EventTypes, get_event_bus
from src.models.campaign import CampaignSnapshot
from src.models.org import OrgKind, OrgTargets
from src.utils.datetime import format_iso

logger = logging.getLogger(__name__)


def explicit_targets(campaign: Campaign) -> OrgTargets:
    """Explicitly targeted units of a campaign row."""
    return OrgTargets(
        sites=campaign.sites,
        schools=campaign.schools,
        classes=campaign.classes,
        cohorts=campaign.cohorts,
    )


def to_snapshot(campaign: Campaign, closure: OrgTargets) -> CampaignSnapshot:
    """Build the change-event image of a campaign row."""
    return CampaignSnapshot(
        id=campaign.id,
        name=campaign.name,
        public_name=campaign.public_name,
        assessments=list(campaign.assessments or []),
        sequential=campaign.sequential,
        date_opened=format_iso(campaign.date_opened),
        date_closed=format_iso(campaign.date_closed),
        targets=explicit_targets(campaign),
        closure=closure,
        site_id=campaign.site_id,
        created_by=campaign.created_by,
        test_data=campaign.test_data,
    )


class CampaignRepository:
    """Campaign record access for one session.

    Attributes:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, campaign_id: str) -> Campaign | None:
        """Load a campaign row."""
        return await self.db.get(Campaign, campaign_id)

    async def get_closure(self, campaign_id: str) -> OrgTargets:
        """Load the stored closure of a campaign."""
        result = await self.db.execute(
            select(CampaignOrgTarget.kind, CampaignOrgTarget.org_id).where(
                CampaignOrgTarget.campaign_id == campaign_id
            )
        )
        found: dict[str, list[str]] = {kind.plural: [] for kind in OrgKind}
        for kind, org_id in result.all():
            found[OrgKind(kind).plural].append(org_id)
        return OrgTargets(**found)

    async def snapshot(self, campaign_id: str) -> CampaignSnapshot | None:
        """Load the current image of a campaign, or None if absent."""
        campaign = await self.get(campaign_id)
        if campaign is None:
            return None
        return to_snapshot(campaign, await self.get_closure(campaign_id))

    async def replace_closure(self, campaign_id: str, closure: OrgTargets) -> None:
        """Replace the stored closure rows of a campaign in full."""
        await self.db.execute(
            delete(CampaignOrgTarget).where(CampaignOrgTarget.campaign_id == campaign_id)
        )
        self.db.add_all([
            CampaignOrgTarget(campaign_id=campaign_id, kind=kind.value, org_id=org_id)
            for kind, org_id in sorted(closure.refs())
        ])
        await self.db.flush()

    async def delete(self, campaign_id: str) -> bool:
        """Delete a campaign row with its closure rows and stats.

        Returns:
            True if a campaign row was deleted.
        """
        await self.db.execute(
            delete(CampaignOrgTarget).where(CampaignOrgTarget.campaign_id == campaign_id)
        )
        await StatsAggregator(self.db).delete(campaign_id)
        result = await self.db.execute(delete(Campaign).where(Campaign.id == campaign_id))
        return result.rowcount > 0

    async def list_by_creator(self, creator_id: str) -> Sequence[Campaign]:
        """List campaigns created by one administrator."""
        result = await self.db.execute(
            select(Campaign)
            .where(Campaign.created_by == creator_id)
            .order_by(Campaign.created_at.desc())
        )
        return result.scalars().all()

    async def add_to_creator_index(self, creator_id: str | None, campaign_id: str) -> None:
        """Record a campaign in its creator's created-campaigns index."""
        creator = await self._get_user(creator_id)
        if creator is None:
            logger.debug("Creator %s has no user record; index not updated", creator_id)
            return
        creator.created_campaign_ids = add_to_index(creator.created_campaign_ids, campaign_id)

    async def remove_from_creator_index(self, creator_id: str | None, campaign_id: str) -> None:
        """Drop a campaign from its creator's created-campaigns index."""
        creator = await self._get_user(creator_id)
        if creator is None or campaign_id not in (creator.created_campaign_ids or []):
            return
        creator.created_campaign_ids = remove_from_index(creator.created_campaign_ids, campaign_id)

    async def _get_user(self, user_id: str | None) -> User | None:
        if not user_id:
            return None
        return await self.db.get(User, user_id)


async def publish_campaign_written(
    campaign_id: str,
    before: CampaignSnapshot | None,
    after: CampaignSnapshot | None,
) -> None:
    """Publish a committed campaign write to the change feed."""
    await get_event_bus().publish(
        EventTypes.Campaign.WRITTEN,
        {
            "campaign_id": campaign_id,
            "before": before.model_dump(mode="json") if before else None,
            "after": after.model_dump(mode="json") if after else None,
        },
    )
