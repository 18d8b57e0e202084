# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Organizational unit table.

All four unit kinds share one table. Containment is stored twice: each
unit names its parent, and each parent keeps a denormalized ``children``
map (plural kind -> ids) that the closure walk follows without joins.
"""

from sqlalchemy import JSON, Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, TimestampMixin, new_id


class OrgUnit(Base, TimestampMixin):
    """A site, school, class or cohort."""

    __tablename__ = "org_units"
    __table_args__ = (
        Index("ix_org_units_kind_id", "kind", "id"),
        Index("ix_org_units_parent_id", "parent_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    parent_id: Mapped[str | None] = mapped_column(String(64))
    parent_kind: Mapped[str | None] = mapped_column(String(16))
    site_id: Mapped[str | None] = mapped_column(String(64))
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    children: Mapped[dict[str, list[str]]] = mapped_column(JSON, nullable=False, default=dict)
    created_by: Mapped[str | None] = mapped_column(String(64))

    def child_ids(self, plural: str) -> list[str]:
        """Direct children of one kind."""
        return list((self.children or {}).get(plural) or [])

    def __repr__(self) -> str:
        return f"<OrgUnit {self.kind}:{self.id}>"
