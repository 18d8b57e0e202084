# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Campaign API endpoints.

This module provides endpoints for campaign management:
- POST / - Create or update a campaign and sync its assignments
- GET / - List campaigns created by the caller
- GET /{campaign_id}/stats - Get assignment counters
- DELETE /{campaign_id} - Delete a campaign and its assignments

Example:
    POST /api/v1/campaigns
    {
        "name": "Spring screening",
        "assessments": [{"task_id": "swr"}],
        "date_open": "2025-03-01T00:00:00Z",
        "date_close": "2025-06-01T00:00:00Z",
        "targets": {"schools": ["school-1"]}
    }
"""

import logging

from fastapi import APIRouter, Depends, status

from src.api.dependencies import get_campaign_service, require_caller
from src.domains.campaign.service import CampaignService
from src.models.campaign import (
    CampaignDeleteResponse,
    CampaignStatsResponse,
    CampaignSummary,
    CampaignUpsertRequest,
    CampaignUpsertResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=CampaignUpsertResponse,
    status_code=status.HTTP_200_OK,
    summary="Create or update campaign",
)
async def upsert_campaign(
    data: CampaignUpsertRequest,
    caller_id: str = Depends(require_caller),
    service: CampaignService = Depends(get_campaign_service),
) -> CampaignUpsertResponse:
    """Create a campaign, or update it when ``campaign_id`` is given.

    Assignments are synchronized before the response is returned. When an
    update's sync did not finish, ``sync_pending`` is true and the
    background trigger completes it.
    """
    return await service.upsert_campaign(caller_id, data)


@router.get(
    "",
    response_model=list[CampaignSummary],
    summary="List own campaigns",
)
async def list_campaigns(
    caller_id: str = Depends(require_caller),
    service: CampaignService = Depends(get_campaign_service),
) -> list[CampaignSummary]:
    """List campaigns created by the caller."""
    return await service.list_for_creator(caller_id)


@router.get(
    "/{campaign_id}/stats",
    response_model=CampaignStatsResponse,
    summary="Get campaign stats",
)
async def get_campaign_stats(
    campaign_id: str,
    caller_id: str = Depends(require_caller),
    service: CampaignService = Depends(get_campaign_service),
) -> CampaignStatsResponse:
    """Get the assigned, started and completed counters of a campaign."""
    return await service.get_stats(campaign_id)


@router.delete(
    "/{campaign_id}",
    response_model=CampaignDeleteResponse,
    summary="Delete campaign",
)
async def delete_campaign(
    campaign_id: str,
    caller_id: str = Depends(require_caller),
    service: CampaignService = Depends(get_campaign_service),
) -> CampaignDeleteResponse:
    """Delete a campaign and remove its assignments from every user."""
    return await service.delete_campaign(caller_id, campaign_id)
