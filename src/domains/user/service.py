# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User service for user records and org memberships.

This module provides the UserService that handles:
- User creation and updates
- Current org membership changes
- Archiving

Every committed write publishes ``user.written`` with a before/after
snapshot; the user trigger derives assignment changes from that pair.

Example:
    >>> service = UserService(sessionmaker)
    >>> await service.upsert_user(UserUpsertRequest(id="u1", current_orgs=orgs))
    >>> await service.set_current_orgs("u1", OrgTargets(classes=["c2"]))
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.errors import ErrorCode, NotFoundError, ServiceError
from src.infrastructure.database.connection import session_scope
from src.infrastructure.database.models import User, UserOrgMembership
from src.infrastructure.events import EventTypes, get_event_bus
from src.models.org import OrgKind, OrgTargets
from src.models.user import UserSnapshot, UserUpsertRequest
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class UserServiceError(ServiceError):
    """Base exception for user service errors."""

    code = ErrorCode.INTERNAL


class UserNotFoundError(UserServiceError, NotFoundError):
    """Raised when a user is not found."""

    code = ErrorCode.NOT_FOUND


class UserService:
    """Service for managing users and their memberships.

    Attributes:
        sessionmaker: Session factory.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    async def get_snapshot(self, user_id: str) -> UserSnapshot | None:
        """Load the sync-relevant image of a user, or None if absent."""
        async with session_scope(self.sessionmaker) as session:
            user = await session.get(User, user_id)
            if user is None:
                return None
            return await self._snapshot(session, user)

    async def upsert_user(self, request: UserUpsertRequest) -> UserSnapshot:
        """Create a user or update an existing one.

        Args:
            request: User data, including current memberships.

        Returns:
            Snapshot of the user after the write.
        """
        async with session_scope(self.sessionmaker) as session:
            user = await session.get(User, request.id)
            before = None
            if user is None:
                user = User(
                    id=request.id,
                    user_type=request.user_type.value,
                    email=request.email,
                    display_name=request.display_name,
                    archived=False,
                    assigned_campaign_ids=[],
                    created_campaign_ids=[],
                )
                session.add(user)
                await session.flush()
            else:
                before = await self._snapshot(session, user)
                user.user_type = request.user_type.value
                user.email = request.email
                user.display_name = request.display_name

            await self._write_memberships(session, user.id, request.current_orgs)
            after = await self._snapshot(session, user)

        logger.info("User %s %s", request.id, "updated" if before else "created")
        await self._publish(request.id, before, after)
        return after

    async def set_current_orgs(self, user_id: str, targets: OrgTargets) -> UserSnapshot:
        """Replace a user's current memberships.

        Units the user leaves keep their membership row with ``current``
        cleared, so history is preserved.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        async with session_scope(self.sessionmaker) as session:
            user = await session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found")
            before = await self._snapshot(session, user)
            await self._write_memberships(session, user_id, targets)
            after = await self._snapshot(session, user)

        await self._publish(user_id, before, after)
        return after

    async def archive_user(self, user_id: str, archived: bool = True) -> UserSnapshot:
        """Archive or unarchive a user.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        async with session_scope(self.sessionmaker) as session:
            user = await session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found")
            before = await self._snapshot(session, user)
            user.archived = archived
            after = await self._snapshot(session, user)

        logger.info("User %s %s", user_id, "archived" if archived else "unarchived")
        await self._publish(user_id, before, after)
        return after

    async def _write_memberships(
        self,
        session: AsyncSession,
        user_id: str,
        targets: OrgTargets,
    ) -> None:
        result = await session.execute(
            select(UserOrgMembership).where(UserOrgMembership.user_id == user_id)
        )
        rows = {(row.kind, row.org_id): row for row in result.scalars()}
        wanted = {(kind.value, org_id) for kind, org_id in targets.refs()}
        now = utc_now()

        for key, row in rows.items():
            if key in wanted and not row.current:
                row.current = True
                row.joined_at = now
                row.left_at = None
            elif key not in wanted and row.current:
                row.current = False
                row.left_at = now

        for kind, org_id in sorted(wanted - set(rows)):
            session.add(
                UserOrgMembership(
                    user_id=user_id,
                    kind=kind,
                    org_id=org_id,
                    current=True,
                    joined_at=now,
                )
            )
        await session.flush()

    async def _snapshot(self, session: AsyncSession, user: User) -> UserSnapshot:
        result = await session.execute(
            select(UserOrgMembership.kind, UserOrgMembership.org_id).where(
                UserOrgMembership.user_id == user.id,
                UserOrgMembership.current.is_(True),
            )
        )
        orgs: dict[str, list[str]] = {kind.plural: [] for kind in OrgKind}
        for kind, org_id in result.all():
            orgs[OrgKind(kind).plural].append(org_id)
        return UserSnapshot(
            id=user.id,
            user_type=user.user_type,
            archived=user.archived,
            current_orgs=OrgTargets(**orgs),
        )

    async def _publish(
        self,
        user_id: str,
        before: UserSnapshot | None,
        after: UserSnapshot | None,
    ) -> None:
        await get_event_bus().publish(
            EventTypes.User.WRITTEN,
            {
                "user_id": user_id,
                "before": before.model_dump(mode="json") if before else None,
                "after": after.model_dump(mode="json") if after else None,
            },
        )
