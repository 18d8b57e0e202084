# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Campaign domain package.

The service module depends on the sync pipeline, which itself imports the
diff and repository helpers exported here, so it is imported by path:

Example:
    >>> from src.domains.campaign.service import CampaignService
    >>> service = CampaignService(sessionmaker, permissions, settings.sync)
    >>> response = await service.upsert_campaign(caller_id, request)
"""

from src.domains.campaign.diff import OrgChanges, diff
from src.domains.campaign.repository import (
    CampaignRepository,
    explicit_targets,
    publish_campaign_written,
    to_snapshot,
)

__all__ = [
    "CampaignRepository",
    "OrgChanges",
    "diff",
    "explicit_targets",
    "publish_campaign_written",
    "to_snapshot",
]
