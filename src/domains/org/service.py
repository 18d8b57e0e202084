# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Org unit service for creating, updating and deleting units.

This module provides the OrgService class for:
- Unit creation with parent child-list maintenance
- Unit updates, including moving a unit to a new parent
- Unit deletion, cascading to child units and campaign targets

Parent rules: a school belongs to a site, a class to a school or a site,
and a cohort only to a site.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config.settings import SyncSettings
from src.core.errors import ErrorCode, InvalidArgumentError, NotFoundError, ServiceError
from src.domains.campaign.repository import (
    CampaignRepository,
    explicit_targets,
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
from src.infrastructure.database.connection import session_scope
from src.infrastructure.database.models import Campaign, OrgUnit
from src.infrastructure.events import EventTypes, get_event_bus
from src.models.campaign import CampaignSnapshot
from src.models.org import (
    PARENT_KINDS,
    OrgDeleteResponse,
    OrgKind,
    OrgTargets,
    OrgUnitResponse,
    OrgUnitUpsertRequest,
    OrgUpsertResponse,
)

logger = logging.getLogger(__name__)


class OrgServiceError(ServiceError):
    """Base exception for org service errors."""

    code = ErrorCode.INTERNAL


class InvalidOrgError(OrgServiceError, InvalidArgumentError):
    """Raised when unit input or parent rules are violated."""

    code = ErrorCode.INVALID_ARGUMENT


class OrgNotFoundError(OrgServiceError, NotFoundError):
    """Raised when a unit does not exist."""

    code = ErrorCode.NOT_FOUND


def _add_child(parent: OrgUnit, kind: OrgKind, child_id: str) -> None:
    children = {k: list(v) for k, v in (parent.children or {}).items()}
    ids = children.setdefault(kind.plural, [])
    if child_id not in ids:
        ids.append(child_id)
    parent.children = children


def _remove_child(parent: OrgUnit, kind: OrgKind, child_id: str) -> None:
    children = {k: list(v) for k, v in (parent.children or {}).items()}
    if child_id in children.get(kind.plural, []):
        children[kind.plural] = [i for i in children[kind.plural] if i != child_id]
        parent.children = children


class OrgService:
    """Service for org unit management.

    Attributes:
        sessionmaker: Session factory.
        permissions: Capability checker.
        sync: Sync pipeline used to reconcile campaigns after a deletion.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        permissions: PermissionChecker,
        settings: SyncSettings | None = None,
        sync_service: SyncService | None = None,
    ) -> None:
        self.sessionmaker = sessionmaker
        self.permissions = permissions
        self.sync = sync_service or SyncService(sessionmaker, settings)

    async def get_unit(self, kind: OrgKind, org_id: str) -> OrgUnitResponse:
        """Get one unit.

        Raises:
            OrgNotFoundError: If the unit does not exist.
        """
        async with session_scope(self.sessionmaker) as session:
            unit = await self._get(session, kind, org_id)
            if unit is None:
                raise OrgNotFoundError(f"{kind.value} {org_id} not found")
            return OrgUnitResponse.model_validate(unit)

    async def upsert_unit(
        self,
        caller_id: str,
        request: OrgUnitUpsertRequest,
    ) -> OrgUpsertResponse:
        """Create or update a unit and keep parent child lists in step.

        Args:
            caller_id: Id of the administrator making the call.
            request: Unit data. ``id`` absent means create.

        Returns:
            Upsert response with the unit id.

        Raises:
            InvalidOrgError: If the parent kind is not allowed or the parent
                does not exist.
            OrgNotFoundError: If ``id`` is given but does not exist.
            PermissionDeniedError: If the caller may not write the unit.
        """
        kind = request.kind
        parent_kind = self._validate_parent(request)

        async with session_scope(self.sessionmaker) as session:
            existing = None
            if request.id:
                existing = await self._get(session, kind, request.id)
                if existing is None:
                    raise OrgNotFoundError(
                        f"Group with id {request.id} not found in {kind.plural}."
                    )

            parent = None
            if request.parent_id:
                parent = await self._get(session, parent_kind, request.parent_id, for_update=True)
                if parent is None:
                    raise InvalidOrgError(
                        f"Parent {parent_kind.value} {request.parent_id} not found."
                    )

            site_id = self._site_of(kind, request, parent, existing)
            await require_permission(
                self.permissions,
                caller_id,
                Resources.GROUPS,
                Actions.UPDATE if existing else Actions.CREATE,
                sub_resource=kind.plural,
                site_id=site_id,
            )

            if existing is None:
                unit = OrgUnit(
                    kind=kind.value,
                    name=request.name,
                    archived=request.archived,
                    children={},
                    created_by=caller_id,
                )
                session.add(unit)
                await session.flush()
                if kind == OrgKind.SITE:
                    site_id = unit.id
            else:
                unit = existing
                await self._detach_from_old_parent(session, unit, request.parent_id, parent_kind)
                unit.name = request.name
                unit.archived = request.archived

            unit.parent_id = request.parent_id
            unit.parent_kind = parent_kind.value if request.parent_id else None
            unit.site_id = site_id
            if parent is not None:
                _add_child(parent, kind, unit.id)

            org_id = unit.id

        logger.info(
            "%s %s %s by %s",
            kind.value.capitalize(),
            org_id,
            "updated" if existing else "created",
            caller_id,
        )
        await get_event_bus().publish(
            EventTypes.Org.WRITTEN,
            {"kind": kind.value, "org_id": org_id, "created": existing is None},
        )
        return OrgUpsertResponse(org_id=org_id)

    async def delete_unit(
        self,
        caller_id: str,
        kind: OrgKind,
        org_id: str,
        recursive: bool = True,
    ) -> OrgDeleteResponse:
        """Delete a unit and cascade the removal.

        The unit is dropped from its parent's child list, and every deleted
        unit is dropped from each campaign's explicit targets and closure.
        Affected campaigns are then reconciled so assignments that only the
        deleted units reached are removed.

        Args:
            caller_id: Id of the administrator making the call.
            kind: Unit kind.
            org_id: Unit id.
            recursive: Also delete every descendant unit. Otherwise direct
                children are detached and kept.

        Raises:
            OrgNotFoundError: If the unit does not exist.
            PermissionDeniedError: If the caller may not delete the unit.
        """
        async with session_scope(self.sessionmaker) as session:
            unit = await self._get(session, kind, org_id)
            if unit is None:
                raise OrgNotFoundError(f"{kind.value} {org_id} not found")
            site_id = unit.id if kind == OrgKind.SITE else unit.site_id

        await require_permission(
            self.permissions,
            caller_id,
            Resources.GROUPS,
            Actions.DELETE,
            sub_resource=kind.plural,
            site_id=site_id,
        )

        changed: list[tuple[CampaignSnapshot, CampaignSnapshot]] = []
        async with session_scope(self.sessionmaker) as session:
            resolver = OrgHierarchyResolver(session)
            doomed = OrgTargets.of(kind, [org_id])
            if recursive:
                doomed = await resolver.closure(doomed, include_archived=True)

            units = await resolver.load_units(doomed)
            for doomed_unit in units:
                await self._detach_from_parent(session, doomed_unit, doomed)
                if not recursive:
                    await self._orphan_children(session, doomed_unit)
                await session.delete(doomed_unit)

            changed = await self._strip_from_campaigns(session, doomed)

        for before, after in changed:
            await publish_campaign_written(after.id, before, after)
            try:
                await self.sync.sync_updated(before, after)
            except (ChunkFailedError, SyncTimeoutError) as e:
                logger.error(
                    "Reconciling campaign %s after deleting %s %s failed; "
                    "the change trigger will finish it: %s",
                    after.id,
                    kind.value,
                    org_id,
                    str(e),
                )

        logger.info(
            "Deleted %d units starting at %s %s (%d campaigns updated)",
            doomed.count(),
            kind.value,
            org_id,
            len(changed),
        )
        return OrgDeleteResponse(
            deleted=doomed.as_dict(),
            campaigns_updated=[after.id for _, after in changed],
        )

    def _validate_parent(self, request: OrgUnitUpsertRequest) -> OrgKind | None:
        allowed = PARENT_KINDS[request.kind]
        parent_kind = request.parent_kind

        if parent_kind is None and request.parent_id:
            if len(allowed) != 1:
                raise InvalidOrgError(
                    f"parent_kind is required for a {request.kind.value} with a parent."
                )
            parent_kind = allowed[0]

        if parent_kind is not None and parent_kind not in allowed:
            if request.kind == OrgKind.COHORT:
                raise InvalidOrgError(
                    "Invalid parent Group type. Cohorts can only belong to a Site."
                )
            raise InvalidOrgError(
                f"A {request.kind.value} cannot belong to a {parent_kind.value}."
            )
        if request.kind == OrgKind.SITE and request.parent_id:
            raise InvalidOrgError("A site cannot have a parent.")
        return parent_kind

    def _site_of(
        self,
        kind: OrgKind,
        request: OrgUnitUpsertRequest,
        parent: OrgUnit | None,
        existing: OrgUnit | None,
    ) -> str | None:
        if kind == OrgKind.SITE:
            return existing.id if existing else None
        if parent is not None:
            return parent.id if parent.kind == OrgKind.SITE.value else parent.site_id
        return request.site_id

    async def _get(
        self,
        session: AsyncSession,
        kind: OrgKind | None,
        org_id: str,
        for_update: bool = False,
    ) -> OrgUnit | None:
        if kind is None:
            return None
        stmt = select(OrgUnit).where(OrgUnit.kind == kind.value, OrgUnit.id == org_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def _detach_from_old_parent(
        self,
        session: AsyncSession,
        unit: OrgUnit,
        new_parent_id: str | None,
        new_parent_kind: OrgKind | None,
    ) -> None:
        if not unit.parent_id:
            return
        same = (
            unit.parent_id == new_parent_id
            and new_parent_kind is not None
            and unit.parent_kind == new_parent_kind.value
        )
        if same:
            return
        old_parent = await self._get(
            session, OrgKind(unit.parent_kind), unit.parent_id, for_update=True
        )
        if old_parent is not None:
            _remove_child(old_parent, OrgKind(unit.kind), unit.id)

    async def _detach_from_parent(
        self,
        session: AsyncSession,
        unit: OrgUnit,
        doomed: OrgTargets,
    ) -> None:
        if not unit.parent_id or not unit.parent_kind:
            return
        parent_kind = OrgKind(unit.parent_kind)
        if doomed.contains(parent_kind, unit.parent_id):
            return
        parent = await self._get(session, parent_kind, unit.parent_id, for_update=True)
        if parent is not None:
            _remove_child(parent, OrgKind(unit.kind), unit.id)

    async def _orphan_children(self, session: AsyncSession, unit: OrgUnit) -> None:
        result = await session.execute(
            select(OrgUnit).where(
                OrgUnit.parent_id == unit.id,
                OrgUnit.parent_kind == unit.kind,
            )
        )
        for child in result.scalars():
            child.parent_id = None
            child.parent_kind = None

    async def _strip_from_campaigns(
        self,
        session: AsyncSession,
        doomed: OrgTargets,
    ) -> list[tuple[CampaignSnapshot, CampaignSnapshot]]:
        campaign_ids = await OrgHierarchyResolver(session).campaigns_reaching(doomed)
        explicit = await self._campaigns_targeting(session, doomed)
        repo = CampaignRepository(session)

        changed: list[tuple[CampaignSnapshot, CampaignSnapshot]] = []
        for campaign_id in sorted(campaign_ids | explicit):
            campaign = await repo.get(campaign_id)
            if campaign is None:
                continue
            closure = await repo.get_closure(campaign_id)
            before = to_snapshot(campaign, closure)

            targets = explicit_targets(campaign).difference(doomed)
            for target_kind, ids in targets.items():
                setattr(campaign, target_kind.plural, list(ids))
            new_closure = closure.difference(doomed)
            await repo.replace_closure(campaign_id, new_closure)
            changed.append((before, to_snapshot(campaign, new_closure)))

        return changed

    async def _campaigns_targeting(self, session: AsyncSession, doomed: OrgTargets) -> set[str]:
        # Explicit targets live in JSON lists; closure rows cover them except
        # when an explicitly targeted unit was already dangling.
        result = await session.execute(select(Campaign))
        found: set[str] = set()
        for campaign in result.scalars():
            if not explicit_targets(campaign).intersection(doomed).is_empty():
                found.add(campaign.id)
        return found
