# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the org hierarchy resolver."""

from unittest.mock import patch

import pytest

from src.domains.org.hierarchy import OrgHierarchyResolver
from src.infrastructure.database.connection import session_scope
from src.infrastructure.database.models import OrgUnit
from src.models.org import OrgKind, OrgTargets

SITE_1_CLOSURE = OrgTargets(
    sites=["site-1"],
    schools=["school-1", "school-2"],
    classes=["class-1", "class-2", "class-3", "class-4"],
    cohorts=["cohort-1"],
)


async def closure_of(sessionmaker, targets: OrgTargets, include_archived: bool = False) -> OrgTargets:
    async with session_scope(sessionmaker) as session:
        return await OrgHierarchyResolver(session).closure(targets, include_archived=include_archived)


class TestClosure:
    """Tests for closure()."""

    @pytest.mark.asyncio
    async def test_site_expands_to_every_descendant(self, sessionmaker, reference_tree) -> None:
        closure = await closure_of(sessionmaker, OrgTargets(sites=["site-1"]))

        assert closure == SITE_1_CLOSURE

    @pytest.mark.asyncio
    async def test_small_in_clause_batches(self, sessionmaker, reference_tree) -> None:
        """Test lookups split into one-id IN clauses give the same answers."""
        with patch("src.domains.org.hierarchy.IN_CLAUSE_BATCH", 1):
            closure = await closure_of(sessionmaker, OrgTargets(sites=["site-1"]))
            async with session_scope(sessionmaker) as session:
                users = await OrgHierarchyResolver(session).users_of(closure)

        assert closure == SITE_1_CLOSURE
        assert users == {"student-1", "student-2", "student-3", "student-4", "student-5"}

    @pytest.mark.asyncio
    async def test_single_chain(self, sessionmaker, seeder) -> None:
        """Test a site with one school and one class resolves all three."""
        await seeder.unit(OrgKind.SITE, "S1")
        await seeder.unit(OrgKind.SCHOOL, "SC1", (OrgKind.SITE, "S1"))
        await seeder.unit(OrgKind.CLASS, "CL1", (OrgKind.SCHOOL, "SC1"))

        closure = await closure_of(sessionmaker, OrgTargets(sites=["S1"]))

        assert closure == OrgTargets(sites=["S1"], schools=["SC1"], classes=["CL1"])

    @pytest.mark.asyncio
    async def test_idempotent(self, sessionmaker, reference_tree) -> None:
        once = await closure_of(sessionmaker, OrgTargets(schools=["school-1"], cohorts=["cohort-1"]))
        twice = await closure_of(sessionmaker, once)

        assert once == twice

    @pytest.mark.asyncio
    async def test_monotonic(self, sessionmaker, reference_tree) -> None:
        """Test a larger target set never yields a smaller closure."""
        small = await closure_of(sessionmaker, OrgTargets(schools=["school-1"]))
        large = await closure_of(sessionmaker, OrgTargets(schools=["school-1"], sites=["site-2"]))

        assert small.issubset(large)
        assert small.issubset(SITE_1_CLOSURE)

    @pytest.mark.asyncio
    async def test_contains_existing_targets(self, sessionmaker, reference_tree) -> None:
        targets = OrgTargets(classes=["class-5"], cohorts=["cohort-1"])

        closure = await closure_of(sessionmaker, targets)

        assert targets.issubset(closure)

    @pytest.mark.asyncio
    async def test_dangling_ids_are_dropped(self, sessionmaker, reference_tree) -> None:
        closure = await closure_of(
            sessionmaker, OrgTargets(schools=["school-2", "ghost"], classes=["nowhere"])
        )

        assert closure == OrgTargets(schools=["school-2"], classes=["class-3"])

    @pytest.mark.asyncio
    async def test_dangling_child_pointer_is_dropped(self, sessionmaker, reference_tree) -> None:
        async with session_scope(sessionmaker) as session:
            school = await session.get(OrgUnit, "school-2")
            school.children = {"classes": ["class-3", "deleted-class"]}

        closure = await closure_of(sessionmaker, OrgTargets(schools=["school-2"]))

        assert closure == OrgTargets(schools=["school-2"], classes=["class-3"])

    @pytest.mark.asyncio
    async def test_wrong_kind_does_not_resolve(self, sessionmaker, reference_tree) -> None:
        """Test an id listed under the wrong kind is treated as dangling."""
        closure = await closure_of(sessionmaker, OrgTargets(classes=["school-1"]))

        assert closure.is_empty()

    @pytest.mark.asyncio
    async def test_archived_units_skipped_unless_requested(self, sessionmaker, seeder) -> None:
        await seeder.unit(OrgKind.SCHOOL, "sc")
        await seeder.unit(OrgKind.CLASS, "live", (OrgKind.SCHOOL, "sc"))
        await seeder.unit(OrgKind.CLASS, "old", (OrgKind.SCHOOL, "sc"), archived=True)

        default = await closure_of(sessionmaker, OrgTargets(schools=["sc"]))
        archived = await closure_of(sessionmaker, OrgTargets(schools=["sc"]), include_archived=True)

        assert default == OrgTargets(schools=["sc"], classes=["live"])
        assert archived == OrgTargets(schools=["sc"], classes=["live", "old"])

    @pytest.mark.asyncio
    async def test_empty_targets(self, sessionmaker, reference_tree) -> None:
        assert (await closure_of(sessionmaker, OrgTargets())).is_empty()


class TestMembership:
    """Tests for user and campaign lookups."""

    @pytest.mark.asyncio
    async def test_users_of_returns_current_members(self, sessionmaker, reference_tree) -> None:
        async with session_scope(sessionmaker) as session:
            users = await OrgHierarchyResolver(session).users_of(
                OrgTargets(classes=["class-1"], cohorts=["cohort-1"])
            )

        assert users == {"student-1", "student-2", "student-5"}

    @pytest.mark.asyncio
    async def test_users_of_skips_archived_by_default(self, sessionmaker, seeder) -> None:
        await seeder.unit(OrgKind.CLASS, "c")
        await seeder.user("active", OrgTargets(classes=["c"]))
        await seeder.user("gone", OrgTargets(classes=["c"]), archived=True)

        async with session_scope(sessionmaker) as session:
            resolver = OrgHierarchyResolver(session)
            default = await resolver.users_of(OrgTargets(classes=["c"]))
            everyone = await resolver.users_of(OrgTargets(classes=["c"]), include_archived=True)

        assert default == {"active"}
        assert everyone == {"active", "gone"}

    @pytest.mark.asyncio
    async def test_current_orgs(self, sessionmaker, reference_tree) -> None:
        async with session_scope(sessionmaker) as session:
            orgs = await OrgHierarchyResolver(session).current_orgs(["student-5", "admin-1"])

        assert orgs["student-5"] == OrgTargets(sites=["site-1"], cohorts=["cohort-1"])
        assert orgs["admin-1"].is_empty()

    @pytest.mark.asyncio
    async def test_parent_chain(self, sessionmaker, reference_tree) -> None:
        async with session_scope(sessionmaker) as session:
            chain = await OrgHierarchyResolver(session).parent_chain(OrgKind.CLASS, "class-3")

        assert [u.id for u in chain] == ["class-3", "school-2", "site-1"]
