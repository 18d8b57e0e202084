# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Campaign assignment synchronization pipeline.

This module provides the SyncService class for:
- Assigning a newly created campaign to every user its closure reaches
- Reconciling assignments after a campaign update
- Removing every assignment of a deleted campaign

Each flow splits the relevant closure into unit-group chunks, applies
them one after another through the AssignmentWriter, and records every
chunk result in a ChunkLedger; flows that compensate on failure use its
RollbackCoordinator subclass. The whole chunk loop runs under
``SyncSettings.operation_timeout_seconds``; when the budget runs out no
compensation runs and the change-triggered path is left to finish the
work.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config.settings import SyncSettings
from src.core.errors import InternalError
from src.domains.campaign.diff import diff
from src.domains.org.hierarchy import OrgHierarchyResolver
from src.domains.sync.chunking import batched, chunk_targets
from src.domains.sync.rollback import ChunkLedger, RollbackCoordinator
from src.domains.sync.writer import AssignmentWriter, ChunkResult, SyncMode
from src.infrastructure.database.connection import session_scope
from src.infrastructure.database.models import Assignment
from src.models.campaign import CampaignSnapshot
from src.models.org import OrgTargets
from src.utils.logging import summarize_targets_for_log

logger = logging.getLogger(__name__)


class SyncServiceError(InternalError):
    """Base exception for sync failures."""

    pass


class ChunkFailedError(SyncServiceError):
    """Raised when a chunk fails and its operation has been compensated."""

    def __init__(self, message: str, chunk_index: int, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.chunk_index = chunk_index
        self.cause = cause


class SyncTimeoutError(SyncServiceError):
    """Raised when a sync operation exceeds its time budget.

    Nothing is compensated; the change-triggered path repairs the state.
    """

    pass


@dataclass
class SyncOutcome:
    """Summary of one completed sync operation.

    Attributes:
        chunks: Unit-group chunks applied.
        user_ids: Users touched.
        created_user_ids: Users who received a new assignment.
        removed_user_ids: Users whose assignment was deleted.
    """

    chunks: int = 0
    user_ids: set[str] = field(default_factory=set)
    created_user_ids: set[str] = field(default_factory=set)
    removed_user_ids: set[str] = field(default_factory=set)

    def add(self, result: ChunkResult) -> None:
        """Fold one successful chunk result into the outcome."""
        self.chunks += 1
        self.user_ids.update(result.user_ids)
        self.created_user_ids.update(result.created_user_ids)
        self.removed_user_ids.update(result.removed_user_ids)


@dataclass
class UpdatePlan:
    """Units an update must strip and units it must (re)apply."""

    removed_units: OrgTargets
    apply_units: OrgTargets
    apply_mode: SyncMode


class SyncService:
    """Orchestrates chunked assignment synchronization for campaigns.

    Attributes:
        sessionmaker: Factory for one session per transaction.
        settings: Sync settings.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        settings: SyncSettings | None = None,
        writer: AssignmentWriter | None = None,
    ) -> None:
        """Initialize the sync service.

        Args:
            sessionmaker: Session factory.
            settings: Sync settings. Defaults to SyncSettings().
            writer: Assignment writer. Built from the other arguments when
                omitted.
        """
        self.sessionmaker = sessionmaker
        self.settings = settings or SyncSettings()
        self.writer = writer or AssignmentWriter(sessionmaker, self.settings)

    async def compute_closure(
        self,
        targets: OrgTargets,
        include_archived: bool = False,
    ) -> OrgTargets:
        """Compute the exhaustive closure of a target set in its own session."""
        async with session_scope(self.sessionmaker) as session:
            return await OrgHierarchyResolver(session).closure(
                targets, include_archived=include_archived
            )

    async def sync_created(self, campaign: CampaignSnapshot) -> SyncOutcome:
        """Assign a newly created campaign.

        On a chunk failure every assignment created so far is deleted and the
        campaign record is removed before the error propagates.

        Raises:
            ChunkFailedError: If a chunk failed; the creation is rolled back.
            SyncTimeoutError: If the time budget ran out.
        """
        coordinator = RollbackCoordinator(self.sessionmaker, self.settings)
        chunks = chunk_targets(campaign.closure, self.settings.org_chunk_size)
        logger.info(
            "Creating assignments for campaign %s over %d chunks: %s",
            campaign.id,
            len(chunks),
            summarize_targets_for_log(campaign.closure.as_dict(), self.settings.log_sample_size),
        )

        try:
            return await self._run_chunks(campaign, chunks, SyncMode.ADD, coordinator)
        except ChunkFailedError:
            await coordinator.rollback_created(campaign)
            raise

    async def ensure_assigned(self, campaign: CampaignSnapshot) -> SyncOutcome:
        """Apply ADD over a campaign's whole closure without compensation.

        Used by the change-triggered path. Every write is idempotent, so a
        failure is left for the retry instead of being undone.

        Raises:
            ChunkFailedError: If a chunk failed.
            SyncTimeoutError: If the time budget ran out.
        """
        chunks = chunk_targets(campaign.closure, self.settings.org_chunk_size)
        return await self._run_chunks(campaign, chunks, SyncMode.ADD, ChunkLedger())

    async def plan_update(
        self,
        before: CampaignSnapshot,
        after: CampaignSnapshot,
    ) -> UpdatePlan:
        """Work out which units an update strips and which it applies.

        Removed units are the closure of the explicitly removed targets,
        archived units included, plus everything the previous closure held,
        minus whatever the new closure still reaches. The apply pass covers
        the whole new closure in UPDATE mode when the definition changed,
        otherwise only newly reached units in ADD mode.
        """
        changes = diff(before.targets, after.targets)
        removed_closure = OrgTargets()
        if not changes.removed.is_empty():
            removed_closure = await self.compute_closure(changes.removed, include_archived=True)
        removed_units = removed_closure.union(before.closure).difference(after.closure)

        if before.definition() != after.definition():
            return UpdatePlan(removed_units, after.closure, SyncMode.UPDATE)
        return UpdatePlan(removed_units, after.closure.difference(before.closure), SyncMode.ADD)

    async def sync_updated(
        self,
        before: CampaignSnapshot,
        after: CampaignSnapshot,
        revert_definition: bool = False,
    ) -> SyncOutcome:
        """Reconcile assignments after a campaign update.

        Args:
            before: Campaign image before the update.
            after: Campaign image after the update.
            revert_definition: On failure, restore ``before`` as the stored
                definition in addition to compensating created assignments.

        Raises:
            ChunkFailedError: If a chunk failed; created assignments are
                compensated.
            SyncTimeoutError: If the time budget ran out.
        """
        coordinator = RollbackCoordinator(self.sessionmaker, self.settings)
        plan = await self.plan_update(before, after)
        remove_chunks = chunk_targets(plan.removed_units, self.settings.org_chunk_size)
        apply_chunks = chunk_targets(plan.apply_units, self.settings.org_chunk_size)

        logger.info(
            "Updating campaign %s: %d %s chunks, %d remove chunks",
            after.id,
            len(apply_chunks),
            plan.apply_mode.value,
            len(remove_chunks),
        )

        # Apply first so assigning units are widened before any are stripped.
        try:
            async with asyncio.timeout(self.settings.operation_timeout_seconds):
                outcome = await self._apply_sequentially(
                    after, apply_chunks, plan.apply_mode, coordinator
                )
                removed = await self._apply_sequentially(
                    after, remove_chunks, SyncMode.REMOVE, coordinator, offset=len(apply_chunks)
                )
        except TimeoutError as e:
            raise self._timeout(after.id, coordinator) from e
        except ChunkFailedError:
            await coordinator.rollback_updated(before, after, revert_definition)
            raise

        outcome.chunks += removed.chunks
        outcome.user_ids |= removed.user_ids
        outcome.created_user_ids |= removed.created_user_ids
        outcome.removed_user_ids |= removed.removed_user_ids
        return outcome

    async def sync_deleted(self, campaign: CampaignSnapshot) -> SyncOutcome:
        """Remove every assignment of a deleted campaign, archived users included.

        Applies REMOVE over the closure of the campaign's targets and then
        sweeps any assignment still keyed to the campaign, which catches
        users whose membership moved without a trigger.

        Raises:
            ChunkFailedError: If a chunk failed. Nothing is compensated;
                removals are safe to repeat.
            SyncTimeoutError: If the time budget ran out.
        """
        ledger = ChunkLedger()
        units = campaign.closure
        if not campaign.targets.is_empty():
            units = units.union(
                await self.compute_closure(campaign.targets, include_archived=True)
            )
        chunks = chunk_targets(units, self.settings.org_chunk_size)

        try:
            async with asyncio.timeout(self.settings.operation_timeout_seconds):
                outcome = await self._apply_sequentially(
                    campaign, chunks, SyncMode.REMOVE, ledger, remove_all=True
                )
                swept = await self._sweep(campaign)
        except TimeoutError as e:
            raise self._timeout(campaign.id, ledger) from e

        outcome.user_ids |= swept
        outcome.removed_user_ids |= swept
        logger.info(
            "Removed campaign %s from %d users",
            campaign.id,
            len(outcome.removed_user_ids),
        )
        return outcome

    async def _run_chunks(
        self,
        campaign: CampaignSnapshot,
        chunks: list[OrgTargets],
        mode: SyncMode,
        ledger: ChunkLedger,
    ) -> SyncOutcome:
        try:
            async with asyncio.timeout(self.settings.operation_timeout_seconds):
                return await self._apply_sequentially(campaign, chunks, mode, ledger)
        except TimeoutError as e:
            raise self._timeout(campaign.id, ledger) from e

    async def _apply_sequentially(
        self,
        campaign: CampaignSnapshot,
        chunks: list[OrgTargets],
        mode: SyncMode,
        ledger: ChunkLedger,
        offset: int = 0,
        remove_all: bool = False,
    ) -> SyncOutcome:
        outcome = SyncOutcome()
        for index, chunk in enumerate(chunks, start=offset):
            result = await self.writer.apply_chunk(chunk, campaign, mode, remove_all=remove_all)
            ledger.record(result)
            if not result.success:
                raise ChunkFailedError(
                    f"Chunk {index} failed while syncing campaign {campaign.id}",
                    chunk_index=index,
                    cause=result.error,
                ) from result.error
            outcome.add(result)
        return outcome

    async def _sweep(self, campaign: CampaignSnapshot) -> set[str]:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(
                select(Assignment.user_id).where(Assignment.campaign_id == campaign.id)
            )
            leftover = sorted(result.scalars().all())

        removed: set[str] = set()
        for batch in batched(leftover, self.settings.max_transaction_ops):
            async with session_scope(self.sessionmaker) as session:
                batch_result = await self.writer.apply_to_users(
                    session, batch, OrgTargets(), campaign, SyncMode.REMOVE, remove_all=True
                )
            removed.update(batch_result.removed_user_ids)
        return removed

    def _timeout(self, campaign_id: str, ledger: ChunkLedger) -> SyncTimeoutError:
        logger.error(
            "Sync of campaign %s exceeded %.0fs after touching %d users; "
            "leaving the remainder to the change trigger",
            campaign_id,
            self.settings.operation_timeout_seconds,
            len(ledger.user_ids),
        )
        return SyncTimeoutError(f"Sync of campaign {campaign_id} timed out")
