# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Campaign service for creating, updating and deleting campaigns.

This module provides the CampaignService class for:
- Validating and authorizing campaign upserts
- Committing the campaign record with its standardized closure
- Running the synchronous assignment sync for immediate visibility
- Deleting campaigns together with every assignment they produced

Creation is atomic from the caller's point of view: if the assignment
sync fails, the coordinator deletes what was written, including the
campaign record, and the call fails with ``internal``. Updates are not:
the new definition is committed first, and a failed sync either leaves
it in place (``sync_pending`` in the response) or restores the previous
definition, as ``SyncSettings.update_failure_policy`` says.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config.settings import SyncSettings
from src.core.errors import (
    ErrorCode,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    ServiceError,
)
from src.domains.campaign.repository import (
    CampaignRepository,
    publish_campaign_written,
    to_snapshot,
)
from src.domains.org.hierarchy import OrgHierarchyResolver
from src.domains.permissions.checker import (
    Actions,
    PermissionChecker,
    Resources,
    require_permission,
)
from src.domains.sync.service import ChunkFailedError, SyncService, SyncTimeoutError
from src.domains.sync.stats import StatsAggregator
from src.infrastructure.database.connection import session_scope
from src.infrastructure.database.models import Campaign, User
from src.models.campaign import (
    CampaignDeleteResponse,
    CampaignStatsResponse,
    CampaignSummary,
    CampaignUpsertRequest,
    CampaignUpsertResponse,
)
from src.models.org import OrgKind, OrgTargets
from src.utils.datetime import parse_iso

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


class CampaignServiceError(ServiceError):
    """Base exception for campaign service errors."""

    code = ErrorCode.INTERNAL


class InvalidCampaignError(CampaignServiceError, InvalidArgumentError):
    """Raised when campaign input is missing or malformed."""

    code = ErrorCode.INVALID_ARGUMENT


class CampaignNotFoundError(CampaignServiceError, NotFoundError):
    """Raised when a campaign id does not exist."""

    code = ErrorCode.NOT_FOUND


class SiteResolutionError(InvalidCampaignError):
    """Raised when no governing site can be determined for a new campaign."""

    pass


class CampaignSyncError(CampaignServiceError, InternalError):
    """Raised when assignment sync fails after validation passed."""

    code = ErrorCode.INTERNAL


def normalize_name(name: str) -> str:
    """Lowercase a name and collapse its whitespace for search."""
    return _WHITESPACE.sub(" ", name).strip().lower()


class CampaignService:
    """Service for campaign lifecycle operations.

    Attributes:
        sessionmaker: Session factory.
        permissions: Capability checker.
        settings: Sync settings.
        sync: Assignment sync pipeline.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        permissions: PermissionChecker,
        settings: SyncSettings | None = None,
        sync_service: SyncService | None = None,
    ) -> None:
        """Initialize campaign service.

        Args:
            sessionmaker: Session factory.
            permissions: Capability checker consulted before any write.
            settings: Sync settings. Defaults to SyncSettings().
            sync_service: Sync pipeline. Built from the other arguments
                when omitted.
        """
        self.sessionmaker = sessionmaker
        self.permissions = permissions
        self.settings = settings or SyncSettings()
        self.sync = sync_service or SyncService(sessionmaker, self.settings)

    async def upsert_campaign(
        self,
        caller_id: str,
        request: CampaignUpsertRequest,
    ) -> CampaignUpsertResponse:
        """Create or update a campaign and sync its assignments.

        Args:
            caller_id: Id of the administrator making the call.
            request: Campaign data. ``campaign_id`` absent means create.

        Returns:
            Upsert response with the campaign id.

        Raises:
            InvalidCampaignError: If input is missing or malformed, or no
                site can be resolved for a new campaign.
            CampaignNotFoundError: If ``campaign_id`` does not exist.
            PermissionDeniedError: If the caller may not write the campaign.
            CampaignSyncError: If creation sync failed (the campaign was
                rolled back), or update sync failed under the
                ``revert_definition`` policy.
        """
        date_opened, date_closed = self._validate(request)

        if request.campaign_id:
            return await self._update(caller_id, request, date_opened, date_closed)
        return await self._create(caller_id, request, date_opened, date_closed)

    async def delete_campaign(self, caller_id: str, campaign_id: str) -> CampaignDeleteResponse:
        """Delete a campaign and every assignment it produced.

        Assignments are removed first, archived users included, so a
        failure leaves the record in place and the call can be retried.

        Raises:
            CampaignNotFoundError: If the campaign does not exist.
            PermissionDeniedError: If the caller may not delete it.
            CampaignSyncError: If assignment removal failed.
        """
        async with session_scope(self.sessionmaker) as session:
            repo = CampaignRepository(session)
            before = await repo.snapshot(campaign_id)
        if before is None:
            raise CampaignNotFoundError(f"Campaign {campaign_id} not found")

        await require_permission(
            self.permissions,
            caller_id,
            Resources.ADMINISTRATIONS,
            Actions.DELETE,
            site_id=before.site_id,
        )

        try:
            outcome = await self.sync.sync_deleted(before)
        except (ChunkFailedError, SyncTimeoutError) as e:
            logger.error("Removing assignments of campaign %s failed: %s", campaign_id, str(e))
            raise CampaignSyncError(
                f"Failed to remove assignments of campaign {campaign_id}. Please try again."
            ) from e

        async with session_scope(self.sessionmaker) as session:
            repo = CampaignRepository(session)
            await repo.delete(campaign_id)
            await repo.remove_from_creator_index(before.created_by, campaign_id)

        await publish_campaign_written(campaign_id, before, None)

        logger.info(
            "Campaign %s deleted by %s (%d users unassigned)",
            campaign_id,
            caller_id,
            len(outcome.removed_user_ids),
        )
        return CampaignDeleteResponse(
            campaign_id=campaign_id,
            users_unassigned=len(outcome.removed_user_ids),
        )

    async def list_for_creator(self, caller_id: str) -> list[CampaignSummary]:
        """List campaigns created by the caller, newest first."""
        async with session_scope(self.sessionmaker) as session:
            campaigns = await CampaignRepository(session).list_by_creator(caller_id)
            return [CampaignSummary.model_validate(c) for c in campaigns]

    async def get_stats(self, campaign_id: str) -> CampaignStatsResponse:
        """Read a campaign's counters.

        Raises:
            CampaignNotFoundError: If the campaign has no stats row.
        """
        async with session_scope(self.sessionmaker) as session:
            stats = await StatsAggregator(session).get(campaign_id)
            if stats is None:
                raise CampaignNotFoundError(f"Campaign {campaign_id} not found")
            return CampaignStatsResponse.model_validate(stats)

    def _validate(self, request: CampaignUpsertRequest) -> tuple[datetime, datetime]:
        if (
            not request.name
            or request.assessments is None
            or not request.date_open
            or not request.date_close
        ):
            raise InvalidCampaignError(
                "Missing required fields: name, assessments, date_open, date_close."
            )

        try:
            date_opened = parse_iso(request.date_open)
            date_closed = parse_iso(request.date_close)
        except ValueError as e:
            raise InvalidCampaignError(
                "Invalid date format for date_open or date_close. Use ISO 8601 format."
            ) from e

        if date_closed < date_opened:
            raise InvalidCampaignError(
                f"The end date cannot be before the start date: "
                f"{request.date_close} < {request.date_open}"
            )
        return date_opened, date_closed

    def _definition_fields(
        self,
        request: CampaignUpsertRequest,
        date_opened: datetime,
        date_closed: datetime,
    ) -> dict[str, Any]:
        return {
            "name": request.name,
            "public_name": request.public_name or request.name,
            "normalized_name": request.normalized_name or normalize_name(request.name),
            "assessments": [a.model_dump() for a in request.assessments or []],
            "date_opened": date_opened,
            "date_closed": date_closed,
            "sequential": request.sequential,
            "tags": list(request.tags),
            "legal": request.legal,
            "test_data": request.is_test_data,
            "sites": request.targets.sites,
            "schools": request.targets.schools,
            "classes": request.targets.classes,
            "cohorts": request.targets.cohorts,
        }

    async def resolve_site_id(self, session: AsyncSession, targets: OrgTargets) -> str:
        """Resolve the governing site of a target set.

        The first explicit site wins. Otherwise the first cohort, then class,
        then school is walked up to its site.

        Raises:
            SiteResolutionError: If no site can be determined.
        """
        if targets.sites:
            return targets.sites[0]

        resolver = OrgHierarchyResolver(session)
        for kind in (OrgKind.COHORT, OrgKind.CLASS, OrgKind.SCHOOL):
            ids = targets.ids(kind)
            if not ids:
                continue
            chain = await resolver.parent_chain(kind, ids[0])
            if not chain:
                raise SiteResolutionError(
                    f"{kind.value.capitalize()} {ids[0]} not found while resolving site id."
                )
            site_id = chain[0].site_id or next(
                (u.id for u in chain if u.kind == OrgKind.SITE.value), None
            )
            if not site_id:
                raise SiteResolutionError(
                    f"{kind.value.capitalize()} {ids[0]} is not associated with a site."
                )
            return site_id

        raise SiteResolutionError(
            "Unable to determine site id. Provide a site or a unit associated with a site."
        )

    async def _create(
        self,
        caller_id: str,
        request: CampaignUpsertRequest,
        date_opened: datetime,
        date_closed: datetime,
    ) -> CampaignUpsertResponse:
        async with session_scope(self.sessionmaker) as session:
            site_id = await self.resolve_site_id(session, request.targets)

        await require_permission(
            self.permissions,
            caller_id,
            Resources.ADMINISTRATIONS,
            Actions.CREATE,
            site_id=site_id,
        )

        async with session_scope(self.sessionmaker) as session:
            closure = await OrgHierarchyResolver(session).closure(request.targets)
            creator = await session.get(User, caller_id)
            campaign = Campaign(
                site_id=site_id,
                created_by=caller_id,
                creator_name=request.creator_name or (creator.display_name if creator else None),
                **self._definition_fields(request, date_opened, date_closed),
            )
            session.add(campaign)
            await session.flush()

            repo = CampaignRepository(session)
            await repo.replace_closure(campaign.id, closure)
            await StatsAggregator(session).create(campaign.id)
            if creator is None:
                logger.warning(
                    "User record %s not found; campaign %s not added to created list",
                    caller_id,
                    campaign.id,
                )
            await repo.add_to_creator_index(caller_id, campaign.id)
            after = to_snapshot(campaign, closure)

        logger.info("Campaign %s created by %s for site %s", after.id, caller_id, site_id)

        # Creation is published only once this path has stopped writing.
        try:
            outcome = await self.sync.sync_created(after)
        except ChunkFailedError as e:
            raise CampaignSyncError(
                f"Failed to create assignment for all participants. {e.cause or e}. "
                "Please try again."
            ) from e
        except SyncTimeoutError as e:
            await publish_campaign_written(after.id, None, after)
            raise CampaignSyncError(
                f"Assignment of campaign {after.id} did not finish in time; "
                "it will complete in the background."
            ) from e

        logger.info(
            "Campaign %s assigned to %d users over %d chunks",
            after.id,
            len(outcome.created_user_ids),
            outcome.chunks,
        )
        await publish_campaign_written(after.id, None, after)
        return CampaignUpsertResponse(campaign_id=after.id)

    async def _update(
        self,
        caller_id: str,
        request: CampaignUpsertRequest,
        date_opened: datetime,
        date_closed: datetime,
    ) -> CampaignUpsertResponse:
        campaign_id = request.campaign_id
        async with session_scope(self.sessionmaker) as session:
            existing = await CampaignRepository(session).get(campaign_id)
            site_id = existing.site_id if existing else None
        if existing is None:
            raise CampaignNotFoundError(f"Campaign with id {campaign_id} not found for update.")

        await require_permission(
            self.permissions,
            caller_id,
            Resources.ADMINISTRATIONS,
            Actions.UPDATE,
            site_id=site_id,
        )

        async with session_scope(self.sessionmaker) as session:
            repo = CampaignRepository(session)
            campaign = await repo.get(campaign_id)
            if campaign is None:
                raise CampaignNotFoundError(f"Campaign with id {campaign_id} not found for update.")
            before = to_snapshot(campaign, await repo.get_closure(campaign_id))

            for key, value in self._definition_fields(request, date_opened, date_closed).items():
                setattr(campaign, key, value)
            closure = await OrgHierarchyResolver(session).closure(request.targets)
            await repo.replace_closure(campaign_id, closure)
            await session.flush()
            after = to_snapshot(campaign, closure)

        logger.info("Campaign %s updated by %s", campaign_id, caller_id)
        await publish_campaign_written(campaign_id, before, after)

        revert = self.settings.update_failure_policy == "revert_definition"
        try:
            await self.sync.sync_updated(before, after, revert_definition=revert)
        except ChunkFailedError as e:
            if revert:
                raise CampaignSyncError(
                    f"Failed to update assignments of campaign {campaign_id}; "
                    "the previous definition was restored."
                ) from e
            logger.error(
                "Assignment sync for campaign %s failed after the update committed; "
                "the change trigger will finish it: %s",
                campaign_id,
                str(e),
            )
            return CampaignUpsertResponse(campaign_id=campaign_id, sync_pending=True)
        except SyncTimeoutError:
            return CampaignUpsertResponse(campaign_id=campaign_id, sync_pending=True)

        return CampaignUpsertResponse(campaign_id=campaign_id)
