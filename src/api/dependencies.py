# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Get the database sessionmaker
- Get the calling administrator's identity
- Get the permission checker
- Get service instances

Identity is established upstream; the caller id arrives in the
``X-Caller-Id`` header.

Example:
    @router.post("")
    async def upsert_campaign(
        data: CampaignUpsertRequest,
        caller_id: str = Depends(require_caller),
        service: CampaignService = Depends(get_campaign_service),
    ):
        ...
"""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config import get_settings
from src.domains.assignment.service import AssignmentService
from src.domains.campaign.service import CampaignService
from src.domains.org.service import OrgService
from src.domains.permissions.checker import PermissionChecker
from src.domains.user.service import UserService
from src.infrastructure.database.connection import get_sessionmaker, is_database_initialized

logger = logging.getLogger(__name__)


def get_db_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the application sessionmaker.

    Raises:
        HTTPException: If the database is not initialized.
    """
    if not is_database_initialized():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not initialized",
        )
    return get_sessionmaker()


async def require_caller(
    x_caller_id: Annotated[str | None, Header()] = None,
) -> str:
    """Get the id of the calling administrator.

    Raises:
        HTTPException: 401 if the header is missing.
    """
    if not x_caller_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User is not authenticated.",
        )
    return x_caller_id


def get_permission_checker(request: Request) -> PermissionChecker:
    """Get the permission checker installed on the application."""
    return request.app.state.permission_checker


def get_campaign_service(
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(get_db_sessionmaker),
    permissions: PermissionChecker = Depends(get_permission_checker),
) -> CampaignService:
    """Get campaign service instance."""
    return CampaignService(sessionmaker, permissions, get_settings().sync)


def get_org_service(
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(get_db_sessionmaker),
    permissions: PermissionChecker = Depends(get_permission_checker),
) -> OrgService:
    """Get org service instance."""
    return OrgService(sessionmaker, permissions, get_settings().sync)


def get_user_service(
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(get_db_sessionmaker),
) -> UserService:
    """Get user service instance."""
    return UserService(sessionmaker)


def get_assignment_service(
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(get_db_sessionmaker),
) -> AssignmentService:
    """Get assignment service instance."""
    return AssignmentService(sessionmaker)
