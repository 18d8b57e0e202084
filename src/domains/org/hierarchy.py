# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Org hierarchy resolution.

This module provides the OrgHierarchyResolver class for:
- Expanding a target set into its exhaustive closure
- Checking which referenced units exist
- Resolving the users whose current membership intersects a target set

Containment is followed through each parent's denormalized ``children``
map, one breadth-first level at a time, with a single batched ``IN`` read
per kind per level.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.domains.sync.chunking import batched
from src.infrastructure.database.models import (
    CampaignOrgTarget,
    OrgUnit,
    User,
    UserOrgMembership,
)
from src.models.org import CHILD_KINDS, OrgKind, OrgTargets
from src.utils.logging import summarize_targets_for_log

logger = logging.getLogger(__name__)

# Upper bound on ids bound into one IN clause
IN_CLAUSE_BATCH = 500


class OrgHierarchyResolver:
    """Resolves closures and memberships over the org hierarchy.

    All reads go through the session supplied at construction, so a caller
    running inside a transaction sees its own uncommitted writes.

    Attributes:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize the resolver.

        Args:
            db: Async database session.
        """
        self.db = db

    async def load_units(
        self,
        targets: OrgTargets,
        include_archived: bool = True,
    ) -> list[OrgUnit]:
        """Load the unit rows referenced by a target set.

        Ids that do not resolve to a unit of the listed kind are skipped.

        Args:
            targets: Units to load.
            include_archived: Whether archived units are returned.

        Returns:
            Existing unit rows, in no particular order.
        """
        units: list[OrgUnit] = []
        for kind, ids in targets.items():
            if not ids:
                continue
            for batch in batched(ids, IN_CLAUSE_BATCH):
                stmt = select(OrgUnit).where(
                    and_(OrgUnit.kind == kind.value, OrgUnit.id.in_(batch))
                )
                if not include_archived:
                    stmt = stmt.where(OrgUnit.archived.is_(False))
                result = await self.db.execute(stmt)
                units.extend(result.scalars().all())
        return units

    async def existing(
        self,
        targets: OrgTargets,
        include_archived: bool = True,
    ) -> OrgTargets:
        """Restrict a target set to units that exist.

        Args:
            targets: Units to check.
            include_archived: Whether archived units count as existing.

        Returns:
            The subset of ``targets`` backed by a unit row.
        """
        units = await self.load_units(targets, include_archived=include_archived)
        found: dict[str, list[str]] = {kind.plural: [] for kind in OrgKind}
        for unit in units:
            found[OrgKind(unit.kind).plural].append(unit.id)
        return OrgTargets(**found)

    async def closure(
        self,
        targets: OrgTargets,
        include_archived: bool = False,
    ) -> OrgTargets:
        """Compute the exhaustive closure of a target set.

        Follows site -> schools, site -> classes, site -> cohorts and
        school -> classes until no new unit is discovered. Dangling ids,
        including dangling child pointers, are dropped.

        Args:
            targets: Explicitly targeted units.
            include_archived: Whether archived units are kept and expanded.
                Removal paths pass True so stale assignments under archived
                units are still found.

        Returns:
            Every existing unit reachable from ``targets``, including the
            existing members of ``targets`` themselves.
        """
        found: dict[OrgKind, set[str]] = {kind: set() for kind in OrgKind}
        frontier = targets
        levels = 0

        while not frontier.is_empty():
            levels += 1
            units = await self.load_units(frontier, include_archived=include_archived)
            discovered: dict[OrgKind, set[str]] = {kind: set() for kind in OrgKind}

            for unit in units:
                kind = OrgKind(unit.kind)
                if unit.id in found[kind]:
                    continue
                found[kind].add(unit.id)
                for child_kind in CHILD_KINDS[kind]:
                    for child_id in unit.child_ids(child_kind.plural):
                        if child_id not in found[child_kind]:
                            discovered[child_kind].add(child_id)

            frontier = OrgTargets(**{
                kind.plural: list(ids) for kind, ids in discovered.items()
            })

        result = OrgTargets(**{kind.plural: list(ids) for kind, ids in found.items()})
        logger.debug(
            "Closure resolved in %d levels: %s",
            levels,
            summarize_targets_for_log(result.as_dict()),
        )
        return result

    async def users_of(
        self,
        targets: OrgTargets,
        include_archived: bool = False,
    ) -> set[str]:
        """Resolve users whose current membership intersects a target set.

        Args:
            targets: Units to look up. Empty kinds are skipped.
            include_archived: Whether archived users are returned.

        Returns:
            Matching user ids.
        """
        user_ids: set[str] = set()
        for kind, ids in targets.items():
            if not ids:
                continue
            for batch in batched(ids, IN_CLAUSE_BATCH):
                stmt = (
                    select(UserOrgMembership.user_id)
                    .join(User, User.id == UserOrgMembership.user_id)
                    .where(
                        UserOrgMembership.kind == kind.value,
                        UserOrgMembership.org_id.in_(batch),
                        UserOrgMembership.current.is_(True),
                    )
                    .distinct()
                )
                if not include_archived:
                    stmt = stmt.where(User.archived.is_(False))
                result = await self.db.execute(stmt)
                user_ids.update(result.scalars().all())
        return user_ids

    async def current_orgs(self, user_ids: Iterable[str]) -> dict[str, OrgTargets]:
        """Load the current membership of several users.

        Args:
            user_ids: Users to load.

        Returns:
            Mapping of user id to current membership. Users without any
            current membership map to an empty OrgTargets.
        """
        ids = sorted(set(user_ids))
        memberships: dict[str, dict[str, list[str]]] = {
            user_id: {kind.plural: [] for kind in OrgKind} for user_id in ids
        }
        for batch in batched(ids, IN_CLAUSE_BATCH):
            result = await self.db.execute(
                select(
                    UserOrgMembership.user_id,
                    UserOrgMembership.kind,
                    UserOrgMembership.org_id,
                ).where(
                    UserOrgMembership.user_id.in_(batch),
                    UserOrgMembership.current.is_(True),
                )
            )
            for user_id, kind, org_id in result.all():
                memberships[user_id][OrgKind(kind).plural].append(org_id)
        return {user_id: OrgTargets(**orgs) for user_id, orgs in memberships.items()}

    async def parent_chain(self, kind: OrgKind, org_id: str) -> list[OrgUnit]:
        """Walk parent pointers from a unit up to its root.

        Args:
            kind: Kind of the starting unit.
            org_id: Id of the starting unit.

        Returns:
            Units from the starting unit to the root. Empty when the start
            does not exist. The walk stops at a missing parent.
        """
        chain: list[OrgUnit] = []
        visited: set[str] = set()
        current = await self._get(kind.value, org_id)

        while current is not None and current.id not in visited:
            chain.append(current)
            visited.add(current.id)
            if not current.parent_id or not current.parent_kind:
                break
            current = await self._get(current.parent_kind, current.parent_id)

        return chain

    async def campaigns_reaching(self, targets: OrgTargets) -> set[str]:
        """Find campaigns whose stored closure contains any unit of ``targets``."""
        campaign_ids: set[str] = set()
        for kind, ids in targets.items():
            if not ids:
                continue
            for batch in batched(ids, IN_CLAUSE_BATCH):
                result = await self.db.execute(
                    select(CampaignOrgTarget.campaign_id)
                    .where(
                        CampaignOrgTarget.kind == kind.value,
                        CampaignOrgTarget.org_id.in_(batch),
                    )
                    .distinct()
                )
                campaign_ids.update(result.scalars().all())
        return campaign_ids

    async def _get(self, kind: str, org_id: str) -> OrgUnit | None:
        result = await self.db.execute(
            select(OrgUnit).where(OrgUnit.kind == kind, OrgUnit.id == org_id)
        )
        return result.scalar_one_or_none()
