# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    campaigns: Campaign upsert, deletion, listing and stats.
    orgs: Org unit upsert and deletion.
    users: User records, memberships and assignment progress.
"""

from fastapi import APIRouter

from src.api.v1 import campaigns, orgs, users

# Mounted under settings.api.prefix by the app factory
router = APIRouter()

router.include_router(campaigns.router, prefix="/campaigns", tags=["Campaigns"])
router.include_router(orgs.router, prefix="/orgs", tags=["Orgs"])
router.include_router(users.router, prefix="/users", tags=["Users"])

__all__ = ["router"]
