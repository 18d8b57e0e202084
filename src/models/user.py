# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User and membership models."""

from enum import Enum

from pydantic import BaseModel, Field

from src.models.org import OrgTargets


class UserType(str, Enum):
    """User types known to the platform."""

    STUDENT = "student"
    PARENT = "parent"
    TEACHER = "teacher"
    ADMIN = "admin"
    GUEST = "guest"


class UserUpsertRequest(BaseModel):
    """Request to create or update a user record.

    Attributes:
        id: User id. Created when absent from the store.
        user_type: Type of user.
        email: Optional contact email.
        display_name: Optional display name.
        current_orgs: Units the user currently belongs to.
    """

    id: str = Field(..., min_length=1)
    user_type: UserType = UserType.STUDENT
    email: str | None = None
    display_name: str | None = None
    current_orgs: OrgTargets = Field(default_factory=OrgTargets)


class UserSnapshot(BaseModel):
    """Serializable image of the sync-relevant part of a user record."""

    id: str
    user_type: str
    archived: bool = False
    current_orgs: OrgTargets = Field(default_factory=OrgTargets)
