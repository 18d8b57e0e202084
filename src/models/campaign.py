# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Campaign (administration) request, response and snapshot models."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.org import OrgTargets


class Assessment(BaseModel):
    """One assessment task within a campaign.

    Unknown keys (variant parameters, conditions) are preserved so they are
    copied verbatim into every assignment.
    """

    model_config = ConfigDict(extra="allow")

    task_id: str = Field(..., min_length=1)
    variant_id: str | None = None
    variant_name: str | None = None
    optional: bool = False


class CampaignUpsertRequest(BaseModel):
    """Request to create or update a campaign.

    Attributes:
        campaign_id: Existing campaign id. Absent means create.
        name: Internal campaign name.
        public_name: Name shown to participants. Defaults to ``name``.
        normalized_name: Search-normalized name.
        assessments: Assessment list copied into every assignment.
        date_open: ISO 8601 open timestamp.
        date_close: ISO 8601 close timestamp, not before ``date_open``.
        sequential: Whether assessments must be completed in order.
        targets: Explicitly targeted org units.
        tags: Free-form tags.
        legal: Consent/assent metadata.
        is_test_data: Marks the campaign as test data.
        creator_name: Display name of the creating administrator.
    """

    campaign_id: str | None = None
    name: str = ""
    public_name: str | None = None
    normalized_name: str | None = None
    assessments: list[Assessment] | None = None
    date_open: str = ""
    date_close: str = ""
    sequential: bool = True
    targets: OrgTargets = Field(default_factory=OrgTargets)
    tags: list[str] = Field(default_factory=list)
    legal: dict[str, Any] | None = None
    is_test_data: bool = False
    creator_name: str | None = None


class CampaignUpsertResponse(BaseModel):
    """Result of a campaign upsert.

    Attributes:
        status: Always ``ok`` on success.
        campaign_id: Id of the created or updated campaign.
        sync_pending: True when the definition was committed but the
            synchronous assignment sync did not finish; the change trigger
            completes it.
    """

    status: str = "ok"
    campaign_id: str
    sync_pending: bool = False


class CampaignDeleteResponse(BaseModel):
    """Result of a campaign deletion."""

    status: str = "ok"
    campaign_id: str
    users_unassigned: int = 0


class CampaignSnapshot(BaseModel):
    """Serializable image of a campaign record at one point in time.

    Change events carry a before/after pair of snapshots; the triggered
    sync path derives all of its work from them.

    Attributes:
        id: Campaign id.
        targets: Explicitly targeted units.
        closure: Exhaustive closure of ``targets`` at the time of the write.
    """

    id: str
    name: str
    public_name: str | None = None
    assessments: list[dict[str, Any]] = Field(default_factory=list)
    sequential: bool = True
    date_opened: str | None = None
    date_closed: str | None = None
    targets: OrgTargets = Field(default_factory=OrgTargets)
    closure: OrgTargets = Field(default_factory=OrgTargets)
    site_id: str | None = None
    created_by: str | None = None
    test_data: bool = False

    def definition(self) -> dict[str, Any]:
        """Fields copied into assignments; a change here requires an update pass."""
        return {
            "name": self.name,
            "public_name": self.public_name,
            "assessments": self.assessments,
            "sequential": self.sequential,
            "date_opened": self.date_opened,
            "date_closed": self.date_closed,
        }


class CampaignStatsResponse(BaseModel):
    """Denormalized campaign counters."""

    model_config = ConfigDict(from_attributes=True)

    campaign_id: str
    assigned: int = 0
    started: int = 0
    completed: int = 0


class CampaignSummary(BaseModel):
    """Campaign listing entry."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    public_name: str | None = None
    site_id: str
    created_by: str
    sequential: bool = True
    test_data: bool = False
