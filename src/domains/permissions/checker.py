# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Capability checks.

The permission policy itself lives outside this service. Domain services
consult it through the PermissionChecker protocol as a yes/no question
and never interpret roles themselves.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from src.core.errors import PermissionDeniedError

logger = logging.getLogger(__name__)

WILDCARD = "*"


class Resources:
    """Resource names understood by the policy."""

    ADMINISTRATIONS = "administrations"
    GROUPS = "groups"
    USERS = "users"


class Actions:
    """Action names understood by the policy."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class SubResources:
    """Sub-resources of ``groups``, one per org kind."""

    SITES = "sites"
    SCHOOLS = "schools"
    CLASSES = "classes"
    COHORTS = "cohorts"


@runtime_checkable
class PermissionChecker(Protocol):
    """Answers whether a user may perform an action."""

    async def can_perform(
        self,
        user_id: str,
        resource: str,
        action: str,
        sub_resource: str | None = None,
        site_id: str | None = None,
    ) -> bool:
        ...


class AllowAllPermissionChecker:
    """Grants every request. For development and tests only."""

    async def can_perform(
        self,
        user_id: str,
        resource: str,
        action: str,
        sub_resource: str | None = None,
        site_id: str | None = None,
    ) -> bool:
        return True


@dataclass(frozen=True)
class Grant:
    """One permission grant.

    Any field set to ``*`` matches every value.
    """

    resource: str
    action: str
    sub_resource: str = WILDCARD
    site_id: str = WILDCARD

    def matches(
        self,
        resource: str,
        action: str,
        sub_resource: str | None,
        site_id: str | None,
    ) -> bool:
        return (
            self.resource in (WILDCARD, resource)
            and self.action in (WILDCARD, action)
            and (self.sub_resource == WILDCARD or self.sub_resource == sub_resource)
            and (self.site_id == WILDCARD or self.site_id == site_id)
        )


class GrantPermissionChecker:
    """Checks requests against an in-memory table of grants per user."""

    def __init__(self, grants: dict[str, Iterable[Grant]] | None = None) -> None:
        self._grants: dict[str, list[Grant]] = {
            user_id: list(user_grants) for user_id, user_grants in (grants or {}).items()
        }

    def grant(self, user_id: str, grant: Grant) -> None:
        """Add a grant for a user."""
        self._grants.setdefault(user_id, []).append(grant)

    async def can_perform(
        self,
        user_id: str,
        resource: str,
        action: str,
        sub_resource: str | None = None,
        site_id: str | None = None,
    ) -> bool:
        return any(
            g.matches(resource, action, sub_resource, site_id)
            for g in self._grants.get(user_id, [])
        )


async def require_permission(
    checker: PermissionChecker,
    user_id: str,
    resource: str,
    action: str,
    sub_resource: str | None = None,
    site_id: str | None = None,
) -> None:
    """Raise unless the checker allows the request.

    Raises:
        PermissionDeniedError: If the request is not allowed.
    """
    allowed = await checker.can_perform(
        user_id, resource, action, sub_resource=sub_resource, site_id=site_id
    )
    if not allowed:
        logger.warning(
            "Permission denied: user=%s resource=%s action=%s sub_resource=%s site=%s",
            user_id,
            resource,
            action,
            sub_resource,
            site_id,
        )
        raise PermissionDeniedError(
            f"User {user_id} cannot {action} {sub_resource or resource}"
        )
