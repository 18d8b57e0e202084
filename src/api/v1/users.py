# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User API endpoints.

This module provides endpoints for users and their assignments:
- POST / - Create or update a user with current memberships
- PUT /{user_id}/orgs - Replace current memberships
- POST /{user_id}/archive - Archive a user
- GET /{user_id}/assignments - List assignments
- POST /{user_id}/assignments/{campaign_id}/assessments/{task_id}/start
- POST /{user_id}/assignments/{campaign_id}/assessments/{task_id}/complete

Membership writes publish ``user.written``; assignments follow through the
background sync trigger.
"""

import logging

from fastapi import APIRouter, Depends

from src.api.dependencies import (
    get_assignment_service,
    get_permission_checker,
    get_user_service,
    require_caller,
)
from src.domains.assignment.service import AssignmentService
from src.domains.permissions.checker import (
    Actions,
    PermissionChecker,
    Resources,
    require_permission,
)
from src.domains.user.service import UserService
from src.models.assignment import AssignmentResponse
from src.models.org import OrgTargets
from src.models.user import UserSnapshot, UserUpsertRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=UserSnapshot,
    summary="Create or update user",
)
async def upsert_user(
    data: UserUpsertRequest,
    caller_id: str = Depends(require_caller),
    permissions: PermissionChecker = Depends(get_permission_checker),
    service: UserService = Depends(get_user_service),
) -> UserSnapshot:
    """Create or update a user together with current memberships."""
    await require_permission(permissions, caller_id, Resources.USERS, Actions.UPDATE)
    return await service.upsert_user(data)


@router.put(
    "/{user_id}/orgs",
    response_model=UserSnapshot,
    summary="Replace memberships",
)
async def set_current_orgs(
    user_id: str,
    data: OrgTargets,
    caller_id: str = Depends(require_caller),
    permissions: PermissionChecker = Depends(get_permission_checker),
    service: UserService = Depends(get_user_service),
) -> UserSnapshot:
    """Replace the units a user currently belongs to."""
    await require_permission(permissions, caller_id, Resources.USERS, Actions.UPDATE)
    return await service.set_current_orgs(user_id, data)


@router.post(
    "/{user_id}/archive",
    response_model=UserSnapshot,
    summary="Archive user",
)
async def archive_user(
    user_id: str,
    caller_id: str = Depends(require_caller),
    permissions: PermissionChecker = Depends(get_permission_checker),
    service: UserService = Depends(get_user_service),
) -> UserSnapshot:
    """Archive a user. Archived users gain no new assignments."""
    await require_permission(permissions, caller_id, Resources.USERS, Actions.UPDATE)
    return await service.archive_user(user_id)


@router.get(
    "/{user_id}/assignments",
    response_model=list[AssignmentResponse],
    summary="List assignments",
)
async def list_assignments(
    user_id: str,
    caller_id: str = Depends(require_caller),
    service: AssignmentService = Depends(get_assignment_service),
) -> list[AssignmentResponse]:
    """List a user's assignments."""
    return await service.list_for_user(user_id)


@router.post(
    "/{user_id}/assignments/{campaign_id}/assessments/{task_id}/start",
    response_model=AssignmentResponse,
    summary="Start assessment",
)
async def start_assessment(
    user_id: str,
    campaign_id: str,
    task_id: str,
    caller_id: str = Depends(require_caller),
    service: AssignmentService = Depends(get_assignment_service),
) -> AssignmentResponse:
    """Mark an assessment started."""
    return await service.start_assessment(user_id, campaign_id, task_id)


@router.post(
    "/{user_id}/assignments/{campaign_id}/assessments/{task_id}/complete",
    response_model=AssignmentResponse,
    summary="Complete assessment",
)
async def complete_assessment(
    user_id: str,
    campaign_id: str,
    task_id: str,
    caller_id: str = Depends(require_caller),
    service: AssignmentService = Depends(get_assignment_service),
) -> AssignmentResponse:
    """Mark an assessment completed."""
    return await service.complete_assessment(user_id, campaign_id, task_id)
