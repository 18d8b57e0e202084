# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Org unit API endpoints.

This module provides endpoints for org unit management:
- POST / - Create or update a site, school, class or cohort
- GET /{kind}/{org_id} - Get a unit
- DELETE /{kind}/{org_id} - Delete a unit and cascade to campaigns

Example:
    POST /api/v1/orgs
    {"kind": "class", "name": "3B", "parent_id": "school-1", "parent_kind": "school"}
"""

import logging

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_org_service, require_caller
from src.domains.org.service import OrgService
from src.models.org import (
    OrgDeleteResponse,
    OrgKind,
    OrgUnitResponse,
    OrgUnitUpsertRequest,
    OrgUpsertResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=OrgUpsertResponse,
    summary="Create or update org unit",
)
async def upsert_unit(
    data: OrgUnitUpsertRequest,
    caller_id: str = Depends(require_caller),
    service: OrgService = Depends(get_org_service),
) -> OrgUpsertResponse:
    """Create a unit, or update it when ``id`` is given."""
    return await service.upsert_unit(caller_id, data)


@router.get(
    "/{kind}/{org_id}",
    response_model=OrgUnitResponse,
    summary="Get org unit",
)
async def get_unit(
    kind: OrgKind,
    org_id: str,
    caller_id: str = Depends(require_caller),
    service: OrgService = Depends(get_org_service),
) -> OrgUnitResponse:
    """Get one unit with its direct children."""
    return await service.get_unit(kind, org_id)


@router.delete(
    "/{kind}/{org_id}",
    response_model=OrgDeleteResponse,
    summary="Delete org unit",
)
async def delete_unit(
    kind: OrgKind,
    org_id: str,
    recursive: bool = Query(True, description="Also delete descendant units"),
    caller_id: str = Depends(require_caller),
    service: OrgService = Depends(get_org_service),
) -> OrgDeleteResponse:
    """Delete a unit, drop it from campaign targets and reconcile assignments."""
    return await service.delete_unit(caller_id, kind, org_id, recursive=recursive)
