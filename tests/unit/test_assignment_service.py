# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the assignment progress service."""

import pytest

from src.core.errors import ErrorCode
from src.domains.assignment.service import (
    AssessmentNotFoundError,
    AssessmentUnavailableError,
    AssignmentNotFoundError,
    AssignmentService,
)
from src.domains.campaign.service import CampaignService
from src.domains.permissions import AllowAllPermissionChecker
from src.models.campaign import CampaignUpsertRequest
from src.models.org import OrgTargets

ASSESSMENTS = [
    {"task_id": "swr"},
    {"task_id": "pa", "optional": True},
    {"task_id": "sre"},
]


@pytest.fixture
def service(sessionmaker) -> AssignmentService:
    return AssignmentService(sessionmaker)


@pytest.fixture
def campaigns(sessionmaker, sync_settings, reference_tree) -> CampaignService:
    return CampaignService(sessionmaker, AllowAllPermissionChecker(), sync_settings)


async def create_campaign(
    campaigns: CampaignService,
    date_open: str = "2025-01-01T00:00:00Z",
    date_close: str = "2099-12-31T00:00:00Z",
    sequential: bool = True,
) -> str:
    response = await campaigns.upsert_campaign(
        "admin-1",
        CampaignUpsertRequest(
            name="Reading",
            assessments=ASSESSMENTS,
            date_open=date_open,
            date_close=date_close,
            sequential=sequential,
            targets=OrgTargets(classes=["class-1"]),
        ),
    )
    return response.campaign_id


class TestReads:
    """Tests for assignment reads."""

    @pytest.mark.asyncio
    async def test_list_for_user(self, service, campaigns) -> None:
        campaign_id = await create_campaign(campaigns)

        assignments = await service.list_for_user("student-1")

        assert [a.campaign_id for a in assignments] == [campaign_id]
        assert assignments[0].assigning_orgs["classes"] == ["class-1"]
        assert await service.list_for_user("student-4") == []

    @pytest.mark.asyncio
    async def test_missing_assignment(self, service, campaigns) -> None:
        campaign_id = await create_campaign(campaigns)

        with pytest.raises(AssignmentNotFoundError) as exc_info:
            await service.get_assignment("student-4", campaign_id)

        assert exc_info.value.code == ErrorCode.NOT_FOUND


class TestStartAssessment:
    """Tests for starting assessments."""

    @pytest.mark.asyncio
    async def test_first_start_counts_once(self, service, campaigns, store) -> None:
        campaign_id = await create_campaign(campaigns)

        first = await service.start_assessment("student-1", campaign_id, "swr")
        await service.start_assessment("student-1", campaign_id, "swr")

        assert first.started is True
        assert first.progress == {"swr": "started"}
        assert (await store.stats(campaign_id))["started"] == 1

    @pytest.mark.asyncio
    async def test_sequential_order_is_enforced(self, service, campaigns) -> None:
        campaign_id = await create_campaign(campaigns)

        with pytest.raises(AssessmentUnavailableError, match="swr must be completed"):
            await service.start_assessment("student-1", campaign_id, "sre")

    @pytest.mark.asyncio
    async def test_optional_assessments_do_not_block(self, service, campaigns) -> None:
        campaign_id = await create_campaign(campaigns)
        await service.complete_assessment("student-1", campaign_id, "swr")

        assignment = await service.start_assessment("student-1", campaign_id, "sre")

        assert assignment.progress["sre"] == "started"

    @pytest.mark.asyncio
    async def test_any_order_when_not_sequential(self, service, campaigns) -> None:
        campaign_id = await create_campaign(campaigns, sequential=False)

        assignment = await service.start_assessment("student-1", campaign_id, "sre")

        assert assignment.progress == {"sre": "started"}

    @pytest.mark.asyncio
    async def test_closed_campaign(self, service, campaigns) -> None:
        campaign_id = await create_campaign(
            campaigns, date_open="2020-01-01T00:00:00Z", date_close="2020-06-01T00:00:00Z"
        )

        with pytest.raises(AssessmentUnavailableError, match="closed") as exc_info:
            await service.start_assessment("student-1", campaign_id, "swr")

        assert exc_info.value.code == ErrorCode.FAILED_PRECONDITION

    @pytest.mark.asyncio
    async def test_not_yet_open(self, service, campaigns) -> None:
        campaign_id = await create_campaign(campaigns, date_open="2098-01-01T00:00:00Z")

        with pytest.raises(AssessmentUnavailableError, match="not open yet"):
            await service.start_assessment("student-1", campaign_id, "swr")

    @pytest.mark.asyncio
    async def test_unknown_task(self, service, campaigns) -> None:
        campaign_id = await create_campaign(campaigns)

        with pytest.raises(AssessmentNotFoundError):
            await service.start_assessment("student-1", campaign_id, "vocab")


class TestCompleteAssessment:
    """Tests for completing assessments."""

    @pytest.mark.asyncio
    async def test_completing_required_tasks_completes_assignment(
        self, service, campaigns, store
    ) -> None:
        campaign_id = await create_campaign(campaigns)

        await service.start_assessment("student-1", campaign_id, "swr")
        partial = await service.complete_assessment("student-1", campaign_id, "swr")
        done = await service.complete_assessment("student-1", campaign_id, "sre")
        await service.complete_assessment("student-1", campaign_id, "sre")

        assert partial.completed is False
        assert done.completed is True
        assert done.progress == {"swr": "completed", "sre": "completed"}
        assert (await store.stats(campaign_id)) == {"assigned": 2, "started": 1, "completed": 1}

    @pytest.mark.asyncio
    async def test_completion_without_start_counts_start(self, service, campaigns, store) -> None:
        campaign_id = await create_campaign(campaigns)

        assignment = await service.complete_assessment("student-2", campaign_id, "swr")

        assert assignment.started is True
        assert (await store.stats(campaign_id))["started"] == 1

    @pytest.mark.asyncio
    async def test_completed_task_cannot_restart(self, service, campaigns) -> None:
        campaign_id = await create_campaign(campaigns)
        await service.complete_assessment("student-1", campaign_id, "swr")

        assignment = await service.start_assessment("student-1", campaign_id, "swr")

        assert assignment.progress["swr"] == "completed"
