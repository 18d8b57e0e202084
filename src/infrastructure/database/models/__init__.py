# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy ORM models.

Importing this package registers every table on ``Base.metadata``.
"""

from src.infrastructure.database.models.base import Base, TimestampMixin, new_id
from src.infrastructure.database.models.campaign import (
    Campaign,
    CampaignOrgTarget,
    CampaignStats,
)
from src.infrastructure.database.models.org import OrgUnit
from src.infrastructure.database.models.user import Assignment, User, UserOrgMembership

__all__ = [
    "Base",
    "TimestampMixin",
    "new_id",
    "OrgUnit",
    "Campaign",
    "CampaignOrgTarget",
    "CampaignStats",
    "User",
    "UserOrgMembership",
    "Assignment",
]
