# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Compensating rollback for multi-transaction sync operations.

A sync operation commits one transaction per user sub-chunk, so a failure
part way through leaves earlier sub-chunks committed. The coordinator
records every chunk result of one operation and, on failure, deletes the
assignments that operation created.

For a brand-new campaign the campaign record, its closure rows, its stats
and its creator index entry are deleted as well, so a failed creation is
never visible. For an existing campaign only the created assignments are
compensated; what happens to the already committed definition is decided
by ``SyncSettings.update_failure_policy``.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config.settings import SyncSettings
from src.domains.campaign.repository import CampaignRepository, publish_campaign_written
from src.domains.sync.chunking import batched
from src.domains.sync.stats import StatsAggregator
from src.domains.sync.writer import ChunkResult, remove_from_index
from src.infrastructure.database.connection import session_scope
from src.infrastructure.database.models import Assignment, Campaign, User
from src.models.campaign import CampaignSnapshot
from src.utils.datetime import parse_iso
from src.utils.logging import summarize_ids_for_log

logger = logging.getLogger(__name__)


class ChunkLedger:
    """Chunk results of one logical operation, in application order."""

    def __init__(self) -> None:
        self.results: list[ChunkResult] = []

    def record(self, result: ChunkResult) -> None:
        """Record a chunk result, including the partial result of a failed chunk."""
        self.results.append(result)

    @property
    def created_user_ids(self) -> set[str]:
        """Users who received a new assignment during this operation."""
        created: set[str] = set()
        for result in self.results:
            created.update(result.created_user_ids)
        return created

    @property
    def user_ids(self) -> set[str]:
        """Users touched during this operation."""
        touched: set[str] = set()
        for result in self.results:
            touched.update(result.user_ids)
        return touched


class RollbackCoordinator(ChunkLedger):
    """Ledger that can undo the assignments its operation created.

    Attributes:
        sessionmaker: Factory for compensation transactions.
        settings: Sync settings.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        settings: SyncSettings | None = None,
    ) -> None:
        super().__init__()
        self.sessionmaker = sessionmaker
        self.settings = settings or SyncSettings()

    async def rollback_created(self, campaign: CampaignSnapshot) -> int:
        """Undo a failed creation: assignments first, then the campaign itself.

        Returns:
            Number of compensation batches that failed.
        """
        failures = await self.compensate_assignments(campaign.id)

        try:
            async with session_scope(self.sessionmaker) as session:
                repo = CampaignRepository(session)
                await repo.delete(campaign.id)
                await repo.remove_from_creator_index(campaign.created_by, campaign.id)
        except Exception as e:
            failures += 1
            logger.error(
                "Rollback could not delete campaign record %s: %s",
                campaign.id,
                str(e),
                exc_info=True,
            )
        else:
            await publish_campaign_written(campaign.id, campaign, None)

        logger.warning(
            "Rolled back creation of campaign %s (%d compensation failures)",
            campaign.id,
            failures,
        )
        return failures

    async def rollback_updated(
        self,
        before: CampaignSnapshot,
        after: CampaignSnapshot,
        revert_definition: bool,
    ) -> int:
        """Undo the user-level effects of a failed update.

        Args:
            before: Campaign image before the update.
            after: Campaign image the update wrote.
            revert_definition: Also restore ``before`` as the stored
                definition. The change event for the restore makes the
                triggered path converge assignments back to it.

        Returns:
            Number of compensation batches that failed.
        """
        failures = await self.compensate_assignments(after.id)

        if revert_definition:
            try:
                async with session_scope(self.sessionmaker) as session:
                    await restore_definition(session, before)
            except Exception as e:
                failures += 1
                logger.error(
                    "Rollback could not restore definition of campaign %s: %s",
                    after.id,
                    str(e),
                    exc_info=True,
                )
            else:
                await publish_campaign_written(after.id, after, before)

        logger.warning(
            "Rolled back update of campaign %s (definition %s, %d compensation failures)",
            after.id,
            "reverted" if revert_definition else "kept",
            failures,
        )
        return failures

    async def compensate_assignments(self, campaign_id: str) -> int:
        """Delete every assignment created by this operation.

        Deletes run in batches of at most ``rollback_batch_size`` users. A
        failing batch is logged and skipped so the remaining batches still
        run.

        Returns:
            Number of failed batches.
        """
        created = sorted(self.created_user_ids)
        if not created:
            return 0

        logger.info(
            "Compensating %d created assignments of campaign %s: %s",
            len(created),
            campaign_id,
            summarize_ids_for_log(created, self.settings.log_sample_size),
        )

        failures = 0
        for batch in batched(created, self.settings.rollback_batch_size):
            try:
                async with session_scope(self.sessionmaker) as session:
                    await self._compensate_batch(session, campaign_id, batch)
            except Exception as e:
                failures += 1
                logger.error(
                    "Compensation batch failed for campaign %s (%d users): %s",
                    campaign_id,
                    len(batch),
                    str(e),
                    exc_info=True,
                )
        return failures

    async def _compensate_batch(
        self,
        session: AsyncSession,
        campaign_id: str,
        user_ids: list[str],
    ) -> None:
        result = await session.execute(
            delete(Assignment).where(
                Assignment.campaign_id == campaign_id,
                Assignment.user_id.in_(user_ids),
            )
        )
        deleted = result.rowcount or 0

        users = await session.execute(select(User).where(User.id.in_(user_ids)))
        for user in users.scalars():
            if campaign_id in (user.assigned_campaign_ids or []):
                user.assigned_campaign_ids = remove_from_index(user.assigned_campaign_ids, campaign_id)

        await StatsAggregator(session).increment_assigned(campaign_id, -deleted)


async def restore_definition(session: AsyncSession, snapshot: CampaignSnapshot) -> None:
    """Write a campaign image back over the stored record."""
    campaign = await session.get(Campaign, snapshot.id)
    if campaign is None:
        return

    campaign.name = snapshot.name
    campaign.public_name = snapshot.public_name
    campaign.assessments = list(snapshot.assessments)
    campaign.sequential = snapshot.sequential
    campaign.date_opened = parse_iso(snapshot.date_opened)
    campaign.date_closed = parse_iso(snapshot.date_closed)
    for kind, ids in snapshot.targets.items():
        setattr(campaign, kind.plural, list(ids))

    await CampaignRepository(session).replace_closure(snapshot.id, snapshot.closure)
