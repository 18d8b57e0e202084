# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pydantic request, response and snapshot models shared by services and API."""

from src.models.assignment import AssignmentResponse, ProgressStatus
from src.models.campaign import (
    Assessment,
    CampaignDeleteResponse,
    CampaignSnapshot,
    CampaignStatsResponse,
    CampaignSummary,
    CampaignUpsertRequest,
    CampaignUpsertResponse,
)
from src.models.org import (
    CHILD_KINDS,
    PARENT_KINDS,
    OrgDeleteResponse,
    OrgKind,
    OrgTargets,
    OrgUnitResponse,
    OrgUnitUpsertRequest,
    OrgUpsertResponse,
)
from src.models.user import UserSnapshot, UserType, UserUpsertRequest

__all__ = [
    # Org
    "OrgKind",
    "OrgTargets",
    "CHILD_KINDS",
    "PARENT_KINDS",
    "OrgUnitUpsertRequest",
    "OrgUnitResponse",
    "OrgUpsertResponse",
    "OrgDeleteResponse",
    # Campaign
    "Assessment",
    "CampaignUpsertRequest",
    "CampaignUpsertResponse",
    "CampaignDeleteResponse",
    "CampaignSnapshot",
    "CampaignStatsResponse",
    "CampaignSummary",
    # User
    "UserType",
    "UserUpsertRequest",
    "UserSnapshot",
    # Assignment
    "AssignmentResponse",
    "ProgressStatus",
]
