# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Chunked assignment writer.

This module provides the AssignmentWriter class, which applies one
campaign to the users of one unit-group chunk:
- ADD creates missing assignments and leaves existing ones as they are
- UPDATE merges the campaign definition into assignments, creating
  missing ones, and never touches progress
- REMOVE strips the chunk's units from each assignment's assigning units
  and deletes assignments left with none

Users are resolved once per chunk and then written in sub-chunks of at
most ``max_transaction_ops`` users, each its own transaction. Every write
is idempotent, so a chunk may be applied again after a crash or by the
change-triggered path without duplicating anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config.settings import SyncSettings
from src.domains.org.hierarchy import OrgHierarchyResolver
from src.domains.sync.chunking import batched
from src.domains.sync.stats import StatsAggregator
from src.infrastructure.database.connection import DatabaseError, session_scope
from src.infrastructure.database.models import Assignment, User
from src.models.campaign import CampaignSnapshot
from src.models.org import OrgTargets
from src.utils.datetime import parse_iso, utc_now
from src.utils.logging import summarize_ids_for_log, summarize_targets_for_log

logger = logging.getLogger(__name__)


class SyncMode(str, Enum):
    """How a chunk is applied."""

    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


@dataclass
class ChunkResult:
    """Outcome of applying one unit-group chunk.

    On failure the ids cover every sub-chunk committed before the failing
    one, so the caller can compensate exactly what was written.

    Attributes:
        success: Whether every sub-chunk committed.
        user_ids: Users whose assignment was written or removed.
        created_user_ids: Users who received a new assignment.
        removed_user_ids: Users whose assignment was deleted.
        error: The failure, when ``success`` is False.
    """

    success: bool = True
    user_ids: set[str] = field(default_factory=set)
    created_user_ids: set[str] = field(default_factory=set)
    removed_user_ids: set[str] = field(default_factory=set)
    error: Exception | None = None


def assignment_fields(campaign: CampaignSnapshot) -> dict[str, Any]:
    """Definition fields copied from a campaign into its assignments."""
    return {
        "name": campaign.name,
        "public_name": campaign.public_name,
        "assessments": [dict(a) for a in campaign.assessments],
        "sequential": campaign.sequential,
        "date_opened": parse_iso(campaign.date_opened),
        "date_closed": parse_iso(campaign.date_closed),
    }


def add_to_index(ids: list[str] | None, campaign_id: str) -> list[str]:
    """Return an index list that contains ``campaign_id`` exactly once."""
    ids = list(ids or [])
    if campaign_id not in ids:
        ids.append(campaign_id)
    return ids


def remove_from_index(ids: list[str] | None, campaign_id: str) -> list[str]:
    """Return an index list without ``campaign_id``."""
    return [i for i in (ids or []) if i != campaign_id]


class AssignmentWriter:
    """Applies a campaign to the users of org chunks.

    Attributes:
        sessionmaker: Factory for one session per transaction.
        settings: Sync settings.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        settings: SyncSettings | None = None,
    ) -> None:
        self.sessionmaker = sessionmaker
        self.settings = settings or SyncSettings()

    async def apply_chunk(
        self,
        chunk: OrgTargets,
        campaign: CampaignSnapshot,
        mode: SyncMode,
        remove_all: bool = False,
    ) -> ChunkResult:
        """Apply a campaign to every user of one chunk.

        Args:
            chunk: Unit-group chunk.
            campaign: Campaign image to apply. Its ``closure`` determines
                the assigning units recorded on new assignments.
            mode: ADD, UPDATE or REMOVE. REMOVE includes archived users.
            remove_all: In REMOVE mode, delete assignments outright instead
                of stripping only the chunk's units. Used when the campaign
                itself is deleted.

        Returns:
            ChunkResult. Never raises for store errors; the failure is
            carried in the result together with the partial ids.
        """
        include_archived = mode == SyncMode.REMOVE
        result = ChunkResult()

        try:
            async with session_scope(self.sessionmaker) as session:
                user_ids = await OrgHierarchyResolver(session).users_of(
                    chunk, include_archived=include_archived
                )
        except Exception as e:
            logger.error(
                "User resolution failed for campaign %s chunk %s: %s",
                campaign.id,
                summarize_targets_for_log(chunk.as_dict()),
                str(e),
            )
            result.success = False
            result.error = e
            return result

        for batch in batched(sorted(user_ids), self.settings.max_transaction_ops):
            try:
                batch_result = await self._write_batch(batch, chunk, campaign, mode, remove_all)
            except Exception as e:
                logger.error(
                    "%s sub-chunk failed for campaign %s (%d users written before failure): %s",
                    mode.value,
                    campaign.id,
                    len(result.user_ids),
                    str(e),
                )
                result.success = False
                result.error = e
                return result

            result.user_ids.update(batch_result.user_ids)
            result.created_user_ids.update(batch_result.created_user_ids)
            result.removed_user_ids.update(batch_result.removed_user_ids)

        logger.debug(
            "%s chunk applied for campaign %s: users=%s created=%d removed=%d",
            mode.value,
            campaign.id,
            summarize_ids_for_log(result.user_ids, self.settings.log_sample_size),
            len(result.created_user_ids),
            len(result.removed_user_ids),
        )
        return result

    async def _write_batch(
        self,
        user_ids: list[str],
        chunk: OrgTargets,
        campaign: CampaignSnapshot,
        mode: SyncMode,
        remove_all: bool,
    ) -> ChunkResult:
        """Write one sub-chunk in its own transaction.

        The request path and the change-triggered path may create the same
        assignment at the same time. The losing commit hits the primary key;
        the sub-chunk is then read again once, which finds the other path's
        rows and leaves them as they are.
        """
        try:
            async with session_scope(self.sessionmaker) as session:
                return await self._apply_batch(session, user_ids, chunk, campaign, mode, remove_all)
        except DatabaseError as e:
            if not isinstance(e.original_error, IntegrityError):
                raise
            logger.info(
                "Concurrent write conflict for campaign %s on %d users; re-reading",
                campaign.id,
                len(user_ids),
            )

        async with session_scope(self.sessionmaker) as session:
            return await self._apply_batch(session, user_ids, chunk, campaign, mode, remove_all)

    async def apply_to_users(
        self,
        session: AsyncSession,
        user_ids: list[str],
        chunk: OrgTargets,
        campaign: CampaignSnapshot,
        mode: SyncMode,
        remove_all: bool = False,
    ) -> ChunkResult:
        """Apply a campaign to an explicit user list inside the caller's transaction.

        Used by the user-triggered path, which already knows the affected
        user and needs no membership lookup.
        """
        return await self._apply_batch(session, user_ids, chunk, campaign, mode, remove_all)

    async def _apply_batch(
        self,
        session: AsyncSession,
        user_ids: list[str],
        chunk: OrgTargets,
        campaign: CampaignSnapshot,
        mode: SyncMode,
        remove_all: bool,
    ) -> ChunkResult:
        result = ChunkResult()
        if not user_ids:
            return result

        # Reads first
        users = {
            u.id: u
            for u in (
                await session.execute(select(User).where(User.id.in_(user_ids)))
            ).scalars()
        }
        existing = {
            a.user_id: a
            for a in (
                await session.execute(
                    select(Assignment).where(
                        Assignment.campaign_id == campaign.id,
                        Assignment.user_id.in_(user_ids),
                    )
                )
            ).scalars()
        }
        memberships: dict[str, OrgTargets] = {}
        if mode != SyncMode.REMOVE:
            memberships = await OrgHierarchyResolver(session).current_orgs(user_ids)

        reach = campaign.closure.union(chunk)
        definition = assignment_fields(campaign)
        now = utc_now()

        for user_id in user_ids:
            user = users.get(user_id)
            if user is None:
                continue
            assignment = existing.get(user_id)

            if mode == SyncMode.REMOVE:
                if await self._remove(session, user, assignment, chunk, campaign.id, remove_all):
                    result.removed_user_ids.add(user_id)
                result.user_ids.add(user_id)
                continue

            assigning = memberships.get(user_id, OrgTargets()).intersection(reach)

            if assignment is None:
                if not self._has_index_room(user, campaign.id):
                    continue
                session.add(
                    Assignment(
                        user_id=user_id,
                        campaign_id=campaign.id,
                        assigning_orgs=assigning.as_dict(),
                        date_assigned=now,
                        started=False,
                        completed=False,
                        progress={},
                        **definition,
                    )
                )
                user.assigned_campaign_ids = add_to_index(user.assigned_campaign_ids, campaign.id)
                result.created_user_ids.add(user_id)
            else:
                current = OrgTargets.from_mapping(assignment.assigning_orgs)
                if not assigning.issubset(current):
                    assignment.assigning_orgs = current.union(assigning).as_dict()
                if mode == SyncMode.UPDATE:
                    for key, value in definition.items():
                        setattr(assignment, key, value)
                if campaign.id not in (user.assigned_campaign_ids or []):
                    user.assigned_campaign_ids = add_to_index(user.assigned_campaign_ids, campaign.id)

            result.user_ids.add(user_id)

        stats = StatsAggregator(session)
        await stats.increment_assigned(
            campaign.id, len(result.created_user_ids) - len(result.removed_user_ids)
        )
        return result

    async def _remove(
        self,
        session: AsyncSession,
        user: User,
        assignment: Assignment | None,
        chunk: OrgTargets,
        campaign_id: str,
        remove_all: bool,
    ) -> bool:
        """Strip or delete one assignment. Returns True if it was deleted."""
        if assignment is None:
            if campaign_id in (user.assigned_campaign_ids or []):
                user.assigned_campaign_ids = remove_from_index(user.assigned_campaign_ids, campaign_id)
            return False

        remaining = OrgTargets()
        if not remove_all:
            remaining = OrgTargets.from_mapping(assignment.assigning_orgs).difference(chunk)

        if not remaining.is_empty():
            assignment.assigning_orgs = remaining.as_dict()
            return False

        await session.delete(assignment)
        user.assigned_campaign_ids = remove_from_index(user.assigned_campaign_ids, campaign_id)
        return True

    def _has_index_room(self, user: User, campaign_id: str) -> bool:
        ids = user.assigned_campaign_ids or []
        if campaign_id in ids or len(ids) < self.settings.max_index_entries:
            return True
        logger.warning(
            "Skipping assignment of campaign %s to user %s: index holds %d entries (limit %d)",
            campaign_id,
            user.id,
            len(ids),
            self.settings.max_index_entries,
        )
        return False
