# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the org unit service."""

import pytest

from src.core.errors import ErrorCode, PermissionDeniedError
from src.domains.campaign.service import CampaignService
from src.domains.org.service import InvalidOrgError, OrgNotFoundError, OrgService
from src.domains.permissions import AllowAllPermissionChecker, GrantPermissionChecker
from src.infrastructure.database.connection import session_scope
from src.infrastructure.database.models import Campaign
from src.models.campaign import CampaignUpsertRequest
from src.models.org import OrgKind, OrgTargets, OrgUnitUpsertRequest


@pytest.fixture
def service(sessionmaker, sync_settings) -> OrgService:
    return OrgService(sessionmaker, AllowAllPermissionChecker(), sync_settings)


@pytest.fixture
def campaigns(sessionmaker, sync_settings) -> CampaignService:
    return CampaignService(sessionmaker, AllowAllPermissionChecker(), sync_settings)


async def create_campaign(campaigns: CampaignService, targets: OrgTargets) -> str:
    response = await campaigns.upsert_campaign(
        "admin-1",
        CampaignUpsertRequest(
            name="Winter check",
            assessments=[{"task_id": "swr"}],
            date_open="2025-12-01T00:00:00Z",
            date_close="2026-02-28T00:00:00Z",
            targets=targets,
        ),
    )
    return response.campaign_id


class TestUpsertUnit:
    """Tests for unit creation and updates."""

    @pytest.mark.asyncio
    async def test_create_site_governs_itself(self, service) -> None:
        response = await service.upsert_unit(
            "admin-1", OrgUnitUpsertRequest(kind=OrgKind.SITE, name="North District")
        )

        unit = await service.get_unit(OrgKind.SITE, response.org_id)
        assert unit.name == "North District"
        assert unit.site_id == response.org_id
        assert unit.parent_id is None

    @pytest.mark.asyncio
    async def test_create_school_registers_child(self, service, reference_tree, store) -> None:
        response = await service.upsert_unit(
            "admin-1",
            OrgUnitUpsertRequest(kind=OrgKind.SCHOOL, name="Lakeside", parent_id="site-1"),
        )

        unit = await service.get_unit(OrgKind.SCHOOL, response.org_id)
        assert unit.parent_kind == OrgKind.SITE
        assert unit.site_id == "site-1"
        site = await store.unit("site-1")
        assert response.org_id in site.child_ids("schools")

    @pytest.mark.asyncio
    async def test_class_site_comes_from_school(self, service, reference_tree) -> None:
        response = await service.upsert_unit(
            "admin-1",
            OrgUnitUpsertRequest(
                kind=OrgKind.CLASS,
                name="Room 12",
                parent_id="school-3",
                parent_kind=OrgKind.SCHOOL,
            ),
        )

        unit = await service.get_unit(OrgKind.CLASS, response.org_id)
        assert unit.site_id == "site-2"

    @pytest.mark.asyncio
    async def test_class_needs_parent_kind(self, service, reference_tree) -> None:
        with pytest.raises(InvalidOrgError, match="parent_kind is required"):
            await service.upsert_unit(
                "admin-1",
                OrgUnitUpsertRequest(kind=OrgKind.CLASS, name="Room 1", parent_id="school-1"),
            )

    @pytest.mark.asyncio
    async def test_cohort_only_under_site(self, service, reference_tree) -> None:
        with pytest.raises(InvalidOrgError) as exc_info:
            await service.upsert_unit(
                "admin-1",
                OrgUnitUpsertRequest(
                    kind=OrgKind.COHORT,
                    name="Pilot",
                    parent_id="school-1",
                    parent_kind=OrgKind.SCHOOL,
                ),
            )

        assert exc_info.value.code == ErrorCode.INVALID_ARGUMENT
        assert exc_info.value.message == "Invalid parent Group type. Cohorts can only belong to a Site."

    @pytest.mark.asyncio
    async def test_site_cannot_have_parent(self, service, reference_tree) -> None:
        with pytest.raises(InvalidOrgError):
            await service.upsert_unit(
                "admin-1",
                OrgUnitUpsertRequest(
                    kind=OrgKind.SITE,
                    name="Nested",
                    parent_id="site-1",
                    parent_kind=OrgKind.SITE,
                ),
            )

    @pytest.mark.asyncio
    async def test_missing_parent(self, service, reference_tree) -> None:
        with pytest.raises(InvalidOrgError, match="not found"):
            await service.upsert_unit(
                "admin-1",
                OrgUnitUpsertRequest(kind=OrgKind.SCHOOL, name="Ghost", parent_id="site-9"),
            )

    @pytest.mark.asyncio
    async def test_update_unknown_unit(self, service, reference_tree) -> None:
        with pytest.raises(OrgNotFoundError):
            await service.upsert_unit(
                "admin-1",
                OrgUnitUpsertRequest(id="school-9", kind=OrgKind.SCHOOL, name="Ghost"),
            )

    @pytest.mark.asyncio
    async def test_move_class_between_schools(self, service, reference_tree, store) -> None:
        await service.upsert_unit(
            "admin-1",
            OrgUnitUpsertRequest(
                id="class-1",
                kind=OrgKind.CLASS,
                name="class-1",
                parent_id="school-2",
                parent_kind=OrgKind.SCHOOL,
            ),
        )

        assert (await store.unit("school-1")).child_ids("classes") == ["class-2"]
        assert (await store.unit("school-2")).child_ids("classes") == ["class-3", "class-1"]
        assert (await store.unit("class-1")).parent_id == "school-2"

    @pytest.mark.asyncio
    async def test_permission_denied(self, sessionmaker, reference_tree) -> None:
        service = OrgService(sessionmaker, GrantPermissionChecker())

        with pytest.raises(PermissionDeniedError):
            await service.upsert_unit(
                "admin-1",
                OrgUnitUpsertRequest(kind=OrgKind.SCHOOL, name="Lakeside", parent_id="site-1"),
            )


class TestGetUnit:
    """Tests for unit lookup."""

    @pytest.mark.asyncio
    async def test_kind_must_match(self, service, reference_tree) -> None:
        with pytest.raises(OrgNotFoundError):
            await service.get_unit(OrgKind.SCHOOL, "class-1")


class TestDeleteUnit:
    """Tests for unit deletion."""

    @pytest.mark.asyncio
    async def test_recursive_delete(self, service, reference_tree, store) -> None:
        response = await service.delete_unit("admin-1", OrgKind.SCHOOL, "school-1")

        assert response.deleted["schools"] == ["school-1"]
        assert response.deleted["classes"] == ["class-1", "class-2"]
        assert await store.unit("class-1") is None
        assert "school-1" not in (await store.unit("site-1")).child_ids("schools")

    @pytest.mark.asyncio
    async def test_non_recursive_delete_orphans_children(
        self, service, reference_tree, store
    ) -> None:
        response = await service.delete_unit(
            "admin-1", OrgKind.SCHOOL, "school-1", recursive=False
        )

        assert response.deleted["classes"] == []
        orphan = await store.unit("class-1")
        assert orphan.parent_id is None
        assert orphan.parent_kind is None

    @pytest.mark.asyncio
    async def test_unknown_unit(self, service, reference_tree) -> None:
        with pytest.raises(OrgNotFoundError):
            await service.delete_unit("admin-1", OrgKind.CLASS, "class-9")

    @pytest.mark.asyncio
    async def test_strips_campaign_targets_and_assignments(
        self, service, campaigns, reference_tree, store, sessionmaker
    ) -> None:
        """Test campaigns lose the deleted units and what only they reached."""
        school_campaign = await create_campaign(campaigns, OrgTargets(schools=["school-1"]))
        site_campaign = await create_campaign(campaigns, OrgTargets(sites=["site-1"]))

        response = await service.delete_unit("admin-1", OrgKind.SCHOOL, "school-1")

        assert set(response.campaigns_updated) == {school_campaign, site_campaign}
        async with session_scope(sessionmaker) as session:
            assert (await session.get(Campaign, school_campaign)).schools == []
            assert (await session.get(Campaign, site_campaign)).sites == ["site-1"]

        assert await store.assigned_users(school_campaign) == set()
        assert (await store.stats(school_campaign))["assigned"] == 0

        # Still reached through the site membership
        assert len(await store.assigned_users(site_campaign)) == 5
        assignment = await store.assignment("student-1", site_campaign)
        assert OrgTargets.from_mapping(assignment.assigning_orgs) == OrgTargets(sites=["site-1"])
