# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per-user assignment models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProgressStatus(str, Enum):
    """Progress of one assessment inside an assignment."""

    ASSIGNED = "assigned"
    STARTED = "started"
    COMPLETED = "completed"


class AssignmentResponse(BaseModel):
    """Assignment representation returned by the service."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    campaign_id: str
    name: str
    public_name: str | None = None
    assessments: list[dict[str, Any]] = Field(default_factory=list)
    sequential: bool = True
    date_opened: datetime | None = None
    date_closed: datetime | None = None
    assigning_orgs: dict[str, list[str]] = Field(default_factory=dict)
    started: bool = False
    completed: bool = False
    progress: dict[str, str] = Field(default_factory=dict)
