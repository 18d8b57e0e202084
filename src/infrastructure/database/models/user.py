# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User, membership and assignment tables.

Memberships are never deleted when a user leaves a unit; ``current`` is
cleared instead so the all-time history stays queryable. Assignments are
owned by the user they are keyed under.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, TimestampMixin
from src.utils.datetime import utc_now


class User(Base, TimestampMixin):
    """A platform user."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_type: Mapped[str] = mapped_column(String(32), nullable=False, default="student")
    email: Mapped[str | None] = mapped_column(String(255))
    display_name: Mapped[str | None] = mapped_column(String(200))
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    assigned_campaign_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_campaign_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<User {self.id} ({self.user_type})>"


class UserOrgMembership(Base):
    """A user's membership in one org unit."""

    __tablename__ = "user_org_memberships"
    __table_args__ = (
        Index("ix_user_org_memberships_lookup", "kind", "org_id", "current"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    kind: Mapped[str] = mapped_column(String(16), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Assignment(Base, TimestampMixin):
    """One user's copy of one campaign plus that user's progress."""

    __tablename__ = "assignments"
    __table_args__ = (
        Index("ix_assignments_campaign_id", "campaign_id"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    campaign_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Copied from the campaign definition
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    public_name: Mapped[str | None] = mapped_column(String(300))
    assessments: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    sequential: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    date_opened: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    date_closed: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    assigning_orgs: Mapped[dict[str, list[str]]] = mapped_column(JSON, nullable=False, default=dict)

    # Per-user progress, never written by campaign sync
    date_assigned: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    started: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    progress: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<Assignment {self.user_id}/{self.campaign_id}>"
