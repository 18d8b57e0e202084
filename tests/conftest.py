# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- A per-test SQLite database with every table created
- Sync settings sized so small fixtures span several chunks
- A seeder for org trees, users and memberships

The reference org tree used by most tests::

    site-1
    ├── school-1
    │   ├── class-1   (student-1, student-2)
    │   └── class-2   (student-3)
    ├── school-2
    │   └── class-3   (student-4)
    ├── class-4       (directly under the site)
    └── cohort-1      (student-5)
    site-2
    └── school-3
        └── class-5   (student-6)
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("WORKER_TEST_MODE", "true")

from collections.abc import AsyncGenerator
from typing import Any

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src.core.config.settings import SyncSettings
from src.infrastructure.database.connection import build_sessionmaker, session_scope
from src.infrastructure.database.models import (
    Assignment,
    Base,
    CampaignStats,
    OrgUnit,
    User,
    UserOrgMembership,
)
from src.infrastructure.events import reset_event_bus
from src.models.org import OrgKind, OrgTargets


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a SQLite engine on a temporary file with all tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessionmaker bound to the test engine."""
    return build_sessionmaker(engine)


@pytest.fixture
def sync_settings() -> SyncSettings:
    """Sync settings with tiny chunks so fixtures span several transactions."""
    return SyncSettings(
        org_chunk_size=2,
        max_transaction_ops=2,
        rollback_batch_size=2,
        operation_timeout_seconds=30,
    )


@pytest.fixture(autouse=True)
def clean_event_bus():
    """Give every test a fresh event bus."""
    reset_event_bus()
    yield
    reset_event_bus()


# =============================================================================
# Seeding
# =============================================================================


class Seeder:
    """Writes fixture rows directly, bypassing the services."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    async def unit(
        self,
        kind: OrgKind,
        org_id: str,
        parent: tuple[OrgKind, str] | None = None,
        archived: bool = False,
        site_id: str | None = None,
    ) -> None:
        """Create a unit and register it in its parent's child list."""
        async with session_scope(self.sessionmaker) as session:
            parent_unit = None
            if parent is not None:
                parent_unit = await session.get(OrgUnit, parent[1])
                children = {k: list(v) for k, v in (parent_unit.children or {}).items()}
                children.setdefault(kind.plural, []).append(org_id)
                parent_unit.children = children
                if site_id is None:
                    site_id = parent_unit.id if parent[0] == OrgKind.SITE else parent_unit.site_id
            if kind == OrgKind.SITE:
                site_id = org_id

            session.add(
                OrgUnit(
                    id=org_id,
                    kind=kind.value,
                    name=org_id,
                    parent_id=parent[1] if parent else None,
                    parent_kind=parent[0].value if parent else None,
                    site_id=site_id,
                    archived=archived,
                    children={},
                )
            )

    async def user(
        self,
        user_id: str,
        orgs: OrgTargets | None = None,
        user_type: str = "student",
        archived: bool = False,
        display_name: str | None = None,
    ) -> None:
        """Create a user with current memberships."""
        async with session_scope(self.sessionmaker) as session:
            session.add(
                User(
                    id=user_id,
                    user_type=user_type,
                    display_name=display_name,
                    archived=archived,
                    assigned_campaign_ids=[],
                    created_campaign_ids=[],
                )
            )
            for kind, org_id in sorted((orgs or OrgTargets()).refs()):
                session.add(
                    UserOrgMembership(
                        user_id=user_id,
                        kind=kind.value,
                        org_id=org_id,
                        current=True,
                    )
                )

    async def reference_tree(self) -> None:
        """Create the reference org tree and its students plus an admin."""
        await self.unit(OrgKind.SITE, "site-1")
        await self.unit(OrgKind.SCHOOL, "school-1", (OrgKind.SITE, "site-1"))
        await self.unit(OrgKind.SCHOOL, "school-2", (OrgKind.SITE, "site-1"))
        await self.unit(OrgKind.CLASS, "class-1", (OrgKind.SCHOOL, "school-1"))
        await self.unit(OrgKind.CLASS, "class-2", (OrgKind.SCHOOL, "school-1"))
        await self.unit(OrgKind.CLASS, "class-3", (OrgKind.SCHOOL, "school-2"))
        await self.unit(OrgKind.CLASS, "class-4", (OrgKind.SITE, "site-1"))
        await self.unit(OrgKind.COHORT, "cohort-1", (OrgKind.SITE, "site-1"))
        await self.unit(OrgKind.SITE, "site-2")
        await self.unit(OrgKind.SCHOOL, "school-3", (OrgKind.SITE, "site-2"))
        await self.unit(OrgKind.CLASS, "class-5", (OrgKind.SCHOOL, "school-3"))

        await self.user("student-1", OrgTargets(sites=["site-1"], schools=["school-1"], classes=["class-1"]))
        await self.user("student-2", OrgTargets(sites=["site-1"], schools=["school-1"], classes=["class-1"]))
        await self.user("student-3", OrgTargets(sites=["site-1"], schools=["school-1"], classes=["class-2"]))
        await self.user("student-4", OrgTargets(sites=["site-1"], schools=["school-2"], classes=["class-3"]))
        await self.user("student-5", OrgTargets(sites=["site-1"], cohorts=["cohort-1"]))
        await self.user("student-6", OrgTargets(sites=["site-2"], schools=["school-3"], classes=["class-5"]))
        await self.user("admin-1", user_type="admin", display_name="Ada Admin")


@pytest.fixture
def seeder(sessionmaker: async_sessionmaker[AsyncSession]) -> Seeder:
    """Seeder bound to the test database."""
    return Seeder(sessionmaker)


@pytest.fixture
async def reference_tree(seeder: Seeder) -> Seeder:
    """The reference org tree, seeded."""
    await seeder.reference_tree()
    return seeder


# =============================================================================
# Query Helpers
# =============================================================================


class Store:
    """Read helpers for assertions."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    async def assignment(self, user_id: str, campaign_id: str) -> Assignment | None:
        async with session_scope(self.sessionmaker) as session:
            return await session.get(Assignment, (user_id, campaign_id))

    async def assigned_users(self, campaign_id: str) -> set[str]:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(
                select(Assignment.user_id).where(Assignment.campaign_id == campaign_id)
            )
            return set(result.scalars().all())

    async def user(self, user_id: str) -> User | None:
        async with session_scope(self.sessionmaker) as session:
            return await session.get(User, user_id)

    async def unit(self, org_id: str) -> OrgUnit | None:
        async with session_scope(self.sessionmaker) as session:
            return await session.get(OrgUnit, org_id)

    async def stats(self, campaign_id: str) -> dict[str, Any] | None:
        async with session_scope(self.sessionmaker) as session:
            row = await session.get(CampaignStats, campaign_id)
            if row is None:
                return None
            return {"assigned": row.assigned, "started": row.started, "completed": row.completed}


@pytest.fixture
def store(sessionmaker: async_sessionmaker[AsyncSession]) -> Store:
    """Read helpers bound to the test database."""
    return Store(sessionmaker)


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
