# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Campaign tables.

``campaigns`` holds the definition and the explicitly targeted units.
``campaign_org_targets`` holds the standardized exhaustive closure, one
row per unit, so campaigns reaching a unit can be found with an indexed
lookup. ``campaign_stats`` holds counters updated by atomic increments.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, TimestampMixin, new_id


class Campaign(Base, TimestampMixin):
    """A globally defined assessment campaign."""

    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    public_name: Mapped[str | None] = mapped_column(String(300))
    normalized_name: Mapped[str | None] = mapped_column(String(300))
    assessments: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    date_opened: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    date_closed: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sequential: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    legal: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    test_data: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Explicitly supplied targets
    sites: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    schools: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    classes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    cohorts: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    site_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    creator_name: Mapped[str | None] = mapped_column(String(200))

    def __repr__(self) -> str:
        return f"<Campaign {self.id} {self.name!r}>"


class CampaignOrgTarget(Base):
    """One unit of a campaign's standardized closure."""

    __tablename__ = "campaign_org_targets"
    __table_args__ = (
        Index("ix_campaign_org_targets_kind_org", "kind", "org_id"),
    )

    campaign_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("campaigns.id", ondelete="CASCADE"),
        primary_key=True,
    )
    kind: Mapped[str] = mapped_column(String(16), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), primary_key=True)


class CampaignStats(Base):
    """Denormalized campaign counters."""

    __tablename__ = "campaign_stats"

    campaign_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("campaigns.id", ondelete="CASCADE"),
        primary_key=True,
    )
    assigned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
