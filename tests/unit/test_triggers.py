# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the change-triggered sync handlers."""

import pytest

from src.domains.campaign.repository import CampaignRepository
from src.domains.campaign.service import CampaignService
from src.domains.permissions import AllowAllPermissionChecker
from src.domains.sync.triggers import SyncTriggers
from src.domains.user.service import UserService
from src.infrastructure.database.connection import session_scope
from src.infrastructure.database.models import Assignment, User
from src.models.campaign import CampaignSnapshot, CampaignUpsertRequest
from src.models.org import OrgTargets
from src.models.user import UserUpsertRequest

MOVED_TO_CLASS_3 = OrgTargets(sites=["site-1"], schools=["school-2"], classes=["class-3"])


@pytest.fixture
def campaigns(sessionmaker, sync_settings, reference_tree) -> CampaignService:
    return CampaignService(sessionmaker, AllowAllPermissionChecker(), sync_settings)


@pytest.fixture
def triggers(sessionmaker, sync_settings) -> SyncTriggers:
    return SyncTriggers(sessionmaker, sync_settings)


@pytest.fixture
def users(sessionmaker) -> UserService:
    return UserService(sessionmaker)


async def create_campaign(campaigns: CampaignService, targets: OrgTargets) -> str:
    response = await campaigns.upsert_campaign(
        "admin-1",
        CampaignUpsertRequest(
            name="Fall screening",
            assessments=[{"task_id": "swr"}],
            date_open="2025-09-01T00:00:00Z",
            date_close="2026-06-30T00:00:00Z",
            targets=targets,
        ),
    )
    return response.campaign_id


async def snapshot(sessionmaker, campaign_id: str) -> CampaignSnapshot:
    async with session_scope(sessionmaker) as session:
        return await CampaignRepository(session).snapshot(campaign_id)


class TestCampaignWritten:
    """Tests for campaign write events."""

    @pytest.mark.asyncio
    async def test_repeated_create_event_changes_nothing(
        self, campaigns, triggers, sessionmaker, store
    ) -> None:
        """Test the event for an already synced creation is a no-op, twice over."""
        campaign_id = await create_campaign(campaigns, OrgTargets(sites=["site-1"]))
        after = await snapshot(sessionmaker, campaign_id)

        first = await triggers.handle_campaign_written(campaign_id, None, after)
        second = await triggers.handle_campaign_written(campaign_id, None, after)

        assert first.created_user_ids == set()
        assert second.created_user_ids == set()
        assert len(await store.assigned_users(campaign_id)) == 5
        assert (await store.stats(campaign_id))["assigned"] == 5
        assert (await store.user("student-1")).assigned_campaign_ids == [campaign_id]

    @pytest.mark.asyncio
    async def test_create_event_finishes_missing_assignments(
        self, campaigns, triggers, sessionmaker, store
    ) -> None:
        campaign_id = await create_campaign(campaigns, OrgTargets(classes=["class-1"]))
        after = await snapshot(sessionmaker, campaign_id)
        async with session_scope(sessionmaker) as session:
            await session.delete(await session.get(Assignment, ("student-2", campaign_id)))
            (await session.get(User, "student-2")).assigned_campaign_ids = []

        outcome = await triggers.handle_campaign_written(campaign_id, None, after)

        assert outcome.created_user_ids == {"student-2"}
        assert await store.assigned_users(campaign_id) == {"student-1", "student-2"}

    @pytest.mark.asyncio
    async def test_event_for_missing_campaign_is_ignored(self, triggers, reference_tree) -> None:
        ghost = CampaignSnapshot(
            id="ghost",
            name="Ghost",
            targets=OrgTargets(classes=["class-1"]),
            closure=OrgTargets(classes=["class-1"]),
        )

        assert await triggers.handle_campaign_written("ghost", None, ghost) is None
        assert await triggers.handle_campaign_written("ghost", ghost, ghost) is None

    @pytest.mark.asyncio
    async def test_noop_pair(self, triggers) -> None:
        assert await triggers.handle_campaign_written("camp", None, None) is None

    @pytest.mark.asyncio
    async def test_delete_event_removes_assignments_and_creator_index(
        self, campaigns, triggers, sessionmaker, store
    ) -> None:
        """Test a record deleted outside the service is cleaned up by its event."""
        campaign_id = await create_campaign(campaigns, OrgTargets(schools=["school-1"]))
        before = await snapshot(sessionmaker, campaign_id)
        async with session_scope(sessionmaker) as session:
            await CampaignRepository(session).delete(campaign_id)

        outcome = await triggers.handle_campaign_written(campaign_id, before, None)

        assert outcome.removed_user_ids == {"student-1", "student-2", "student-3"}
        assert await store.assigned_users(campaign_id) == set()
        assert (await store.user("student-1")).assigned_campaign_ids == []
        assert (await store.user("admin-1")).created_campaign_ids == []

    @pytest.mark.asyncio
    async def test_update_event_is_idempotent(
        self, campaigns, triggers, sessionmaker, store
    ) -> None:
        campaign_id = await create_campaign(campaigns, OrgTargets(schools=["school-1", "school-2"]))
        before = await snapshot(sessionmaker, campaign_id)
        await campaigns.upsert_campaign(
            "admin-1",
            CampaignUpsertRequest(
                campaign_id=campaign_id,
                name="Fall screening",
                assessments=[{"task_id": "swr"}],
                date_open="2025-09-01T00:00:00Z",
                date_close="2026-06-30T00:00:00Z",
                targets=OrgTargets(schools=["school-2"]),
            ),
        )
        after = await snapshot(sessionmaker, campaign_id)

        await triggers.handle_campaign_written(campaign_id, before, after)

        assert await store.assigned_users(campaign_id) == {"student-4"}
        assert (await store.stats(campaign_id))["assigned"] == 1


class TestUserWritten:
    """Tests for user write events."""

    @pytest.mark.asyncio
    async def test_joining_a_targeted_unit_assigns(
        self, campaigns, triggers, users, store
    ) -> None:
        campaign_id = await create_campaign(campaigns, OrgTargets(classes=["class-3"]))
        before = await users.get_snapshot("student-1")
        after = await users.set_current_orgs("student-1", MOVED_TO_CLASS_3)

        outcome = await triggers.handle_user_written("student-1", before, after)

        assert outcome.created_user_ids == {"student-1"}
        assert await store.assigned_users(campaign_id) == {"student-1", "student-4"}
        assignment = await store.assignment("student-1", campaign_id)
        assert OrgTargets.from_mapping(assignment.assigning_orgs) == OrgTargets(classes=["class-3"])
        assert (await store.stats(campaign_id))["assigned"] == 2

    @pytest.mark.asyncio
    async def test_repeated_user_event_changes_nothing(
        self, campaigns, triggers, users, store
    ) -> None:
        campaign_id = await create_campaign(campaigns, OrgTargets(classes=["class-3"]))
        before = await users.get_snapshot("student-1")
        after = await users.set_current_orgs("student-1", MOVED_TO_CLASS_3)

        await triggers.handle_user_written("student-1", before, after)
        await triggers.handle_user_written("student-1", before, after)

        assert await store.assigned_users(campaign_id) == {"student-1", "student-4"}
        assert (await store.stats(campaign_id))["assigned"] == 2
        assert (await store.user("student-1")).assigned_campaign_ids == [campaign_id]

    @pytest.mark.asyncio
    async def test_leaving_the_only_assigning_unit_unassigns(
        self, campaigns, triggers, users, store
    ) -> None:
        campaign_id = await create_campaign(campaigns, OrgTargets(classes=["class-1"]))
        before = await users.get_snapshot("student-1")
        after = await users.set_current_orgs("student-1", MOVED_TO_CLASS_3)

        outcome = await triggers.handle_user_written("student-1", before, after)

        assert outcome.removed_user_ids == {"student-1"}
        assert await store.assigned_users(campaign_id) == {"student-2"}
        assert (await store.user("student-1")).assigned_campaign_ids == []
        assert (await store.stats(campaign_id))["assigned"] == 1

    @pytest.mark.asyncio
    async def test_moving_within_a_targeted_school_keeps_assignment(
        self, campaigns, triggers, users, store
    ) -> None:
        campaign_id = await create_campaign(campaigns, OrgTargets(schools=["school-1"]))
        before = await users.get_snapshot("student-1")
        after = await users.set_current_orgs(
            "student-1",
            OrgTargets(sites=["site-1"], schools=["school-1"], classes=["class-2"]),
        )

        await triggers.handle_user_written("student-1", before, after)

        assignment = await store.assignment("student-1", campaign_id)
        assert assignment is not None
        assert OrgTargets.from_mapping(assignment.assigning_orgs) == OrgTargets(
            schools=["school-1"], classes=["class-2"]
        )
        assert (await store.stats(campaign_id))["assigned"] == 3

    @pytest.mark.asyncio
    async def test_moving_between_targeted_classes_keeps_progress(
        self, campaigns, triggers, users, store, sessionmaker
    ) -> None:
        """Test a move between two targeted classes of different schools."""
        campaign_id = await create_campaign(
            campaigns, OrgTargets(classes=["class-1", "class-3"])
        )
        async with session_scope(sessionmaker) as session:
            assignment = await session.get(Assignment, ("student-1", campaign_id))
            assignment.progress = {"swr": "started"}
        before = await users.get_snapshot("student-1")
        after = await users.set_current_orgs("student-1", MOVED_TO_CLASS_3)

        outcome = await triggers.handle_user_written("student-1", before, after)

        assert outcome.created_user_ids == set()
        assert outcome.removed_user_ids == set()
        assignment = await store.assignment("student-1", campaign_id)
        assert assignment.progress == {"swr": "started"}
        assert OrgTargets.from_mapping(assignment.assigning_orgs) == OrgTargets(classes=["class-3"])
        assert (await store.stats(campaign_id))["assigned"] == 3

    @pytest.mark.asyncio
    async def test_archived_user_gains_nothing(self, campaigns, triggers, users, store) -> None:
        campaign_id = await create_campaign(campaigns, OrgTargets(classes=["class-3"]))
        await users.archive_user("student-1")
        before = await users.get_snapshot("student-1")
        after = await users.set_current_orgs("student-1", MOVED_TO_CLASS_3)

        outcome = await triggers.handle_user_written("student-1", before, after)

        assert outcome.created_user_ids == set()
        assert await store.assigned_users(campaign_id) == {"student-4"}

    @pytest.mark.asyncio
    async def test_archived_user_still_loses(self, campaigns, triggers, users, store) -> None:
        campaign_id = await create_campaign(campaigns, OrgTargets(classes=["class-1"]))
        await users.archive_user("student-1")
        before = await users.get_snapshot("student-1")
        after = await users.set_current_orgs("student-1", MOVED_TO_CLASS_3)

        await triggers.handle_user_written("student-1", before, after)

        assert await store.assigned_users(campaign_id) == {"student-2"}

    @pytest.mark.asyncio
    async def test_non_participant_is_ignored(self, campaigns, triggers, users, store) -> None:
        campaign_id = await create_campaign(campaigns, OrgTargets(classes=["class-3"]))
        before = await users.get_snapshot("admin-1")
        after = await users.set_current_orgs("admin-1", OrgTargets(classes=["class-3"]))

        assert await triggers.handle_user_written("admin-1", before, after) is None
        assert await store.assigned_users(campaign_id) == {"student-4"}

    @pytest.mark.asyncio
    async def test_new_user_is_assigned(self, campaigns, triggers, users, store) -> None:
        campaign_id = await create_campaign(campaigns, OrgTargets(classes=["class-3"]))
        after = await users.upsert_user(
            UserUpsertRequest(id="student-7", current_orgs=OrgTargets(classes=["class-3"]))
        )

        outcome = await triggers.handle_user_written("student-7", None, after)

        assert outcome.created_user_ids == {"student-7"}
        assert await store.assigned_users(campaign_id) == {"student-4", "student-7"}

    @pytest.mark.asyncio
    async def test_deleted_user_is_ignored(self, triggers, users, reference_tree) -> None:
        before = await users.get_snapshot("student-1")

        assert await triggers.handle_user_written("student-1", before, None) is None
