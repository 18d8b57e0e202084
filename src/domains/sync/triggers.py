# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Change-triggered sync entry points.

Every committed write to a campaign or user record arrives here with a
before/after snapshot pair. Each handler derives its work from that pair
alone and applies it with idempotent writes, so it may run before, after
or instead of the synchronous request path, and any number of times,
without duplicating assignments or stats.

Classification of a pair:
    before absent, after present  -> creation
    before present, after absent  -> deletion
    both present                  -> update
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config.settings import SyncSettings
from src.domains.campaign.repository import CampaignRepository
from src.domains.org.hierarchy import OrgHierarchyResolver
from src.domains.sync.service import SyncOutcome, SyncService
from src.domains.sync.writer import AssignmentWriter, SyncMode
from src.infrastructure.database.connection import session_scope
from src.infrastructure.events.types import ChangeKind
from src.models.campaign import CampaignSnapshot
from src.models.org import OrgTargets
from src.models.user import UserSnapshot

logger = logging.getLogger(__name__)


class SyncTriggers:
    """Handlers for campaign and user write events.

    Attributes:
        sessionmaker: Factory for one session per transaction.
        settings: Sync settings.
        sync_service: Pipeline used for campaign-level work.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        settings: SyncSettings | None = None,
    ) -> None:
        self.sessionmaker = sessionmaker
        self.settings = settings or SyncSettings()
        self.sync_service = SyncService(sessionmaker, self.settings)

    async def handle_campaign_written(
        self,
        campaign_id: str,
        before: CampaignSnapshot | None,
        after: CampaignSnapshot | None,
    ) -> SyncOutcome | None:
        """React to a campaign write.

        Creation and update events for a campaign that no longer exists are
        ignored; its deletion event performs the cleanup.

        Args:
            campaign_id: Id of the written campaign.
            before: Image before the write.
            after: Image after the write.

        Returns:
            The sync outcome, or None when nothing was done.
        """
        change = ChangeKind.classify(before, after)

        if change == ChangeKind.DELETE:
            outcome = await self.sync_service.sync_deleted(before)
            async with session_scope(self.sessionmaker) as session:
                await CampaignRepository(session).remove_from_creator_index(
                    before.created_by, campaign_id
                )
            return outcome

        if change == ChangeKind.NOOP:
            return None

        async with session_scope(self.sessionmaker) as session:
            exists = await CampaignRepository(session).get(campaign_id) is not None
        if not exists:
            logger.info(
                "Ignoring %s event for campaign %s: record no longer exists",
                change,
                campaign_id,
            )
            return None

        if change == ChangeKind.CREATE:
            return await self.sync_service.ensure_assigned(after)
        return await self.sync_service.sync_updated(before, after)

    async def handle_user_written(
        self,
        user_id: str,
        before: UserSnapshot | None,
        after: UserSnapshot | None,
    ) -> SyncOutcome | None:
        """React to a change of one user's current membership.

        Units the user joined gain the user an assignment for every campaign
        whose closure contains them. Units the user left are then stripped
        from the assigning units of every campaign reaching them; an
        assignment left with none is deleted. Archived users lose but never
        gain.

        Only participant user types are handled.

        Returns:
            The sync outcome, or None when nothing was done.
        """
        if after is None:
            return None
        if after.user_type not in self.settings.participant_user_types:
            return None

        previous = before.current_orgs if before else OrgTargets()
        left = previous.difference(after.current_orgs)
        joined = after.current_orgs.difference(previous)
        if after.archived:
            joined = OrgTargets()
        if left.is_empty() and joined.is_empty():
            return None

        # Joined units first, so a move between two units of the same closure
        # widens the assignment before the left unit is stripped from it.
        outcome = SyncOutcome()
        if not joined.is_empty():
            await self._apply_to_user(user_id, joined, SyncMode.ADD, outcome)
        if not left.is_empty():
            await self._apply_to_user(user_id, left, SyncMode.REMOVE, outcome)

        logger.info(
            "User %s membership change applied: %d campaigns, %d created, %d removed",
            user_id,
            outcome.chunks,
            len(outcome.created_user_ids),
            len(outcome.removed_user_ids),
        )
        return outcome

    async def _apply_to_user(
        self,
        user_id: str,
        units: OrgTargets,
        mode: SyncMode,
        outcome: SyncOutcome,
    ) -> None:
        async with session_scope(self.sessionmaker) as session:
            campaign_ids = sorted(await OrgHierarchyResolver(session).campaigns_reaching(units))

        writer = AssignmentWriter(self.sessionmaker, self.settings)
        for campaign_id in campaign_ids:
            async with session_scope(self.sessionmaker) as session:
                campaign = await CampaignRepository(session).snapshot(campaign_id)
                if campaign is None:
                    continue
                reaching = units.intersection(campaign.closure)
                result = await writer.apply_to_users(session, [user_id], reaching, campaign, mode)
            outcome.add(result)
