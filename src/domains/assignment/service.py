# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Assignment progress service.

This module provides the AssignmentService class for:
- Reading a user's assignments
- Starting and completing assessments within an assignment

Progress fields are owned by the participant; campaign sync never writes
them. The started and completed campaign counters move here, at most once
per assignment.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.errors import ErrorCode, FailedPreconditionError, NotFoundError, ServiceError
from src.domains.sync.stats import StatsAggregator
from src.infrastructure.database.connection import session_scope
from src.infrastructure.database.models import Assignment
from src.models.assignment import AssignmentResponse, ProgressStatus
from src.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)


class AssignmentServiceError(ServiceError):
    """Base exception for assignment service errors."""

    code = ErrorCode.INTERNAL


class AssignmentNotFoundError(AssignmentServiceError, NotFoundError):
    """Raised when a user has no assignment for the campaign."""

    code = ErrorCode.NOT_FOUND


class AssessmentNotFoundError(AssignmentServiceError, NotFoundError):
    """Raised when the assignment has no assessment with the task id."""

    code = ErrorCode.NOT_FOUND


class AssessmentUnavailableError(AssignmentServiceError, FailedPreconditionError):
    """Raised when an assessment cannot be started yet or anymore."""

    code = ErrorCode.FAILED_PRECONDITION


class AssignmentService:
    """Service for per-user assignment progress.

    Attributes:
        sessionmaker: Session factory.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    async def list_for_user(self, user_id: str) -> list[AssignmentResponse]:
        """List a user's assignments ordered by campaign id."""
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(
                select(Assignment)
                .where(Assignment.user_id == user_id)
                .order_by(Assignment.campaign_id)
            )
            return [AssignmentResponse.model_validate(a) for a in result.scalars()]

    async def get_assignment(self, user_id: str, campaign_id: str) -> AssignmentResponse:
        """Get one assignment.

        Raises:
            AssignmentNotFoundError: If the assignment does not exist.
        """
        async with session_scope(self.sessionmaker) as session:
            assignment = await self._get(session, user_id, campaign_id)
            return AssignmentResponse.model_validate(assignment)

    async def start_assessment(
        self,
        user_id: str,
        campaign_id: str,
        task_id: str,
    ) -> AssignmentResponse:
        """Mark one assessment as started.

        The first start within an assignment marks the assignment started
        and increments the campaign's ``started`` counter. In a sequential
        assignment every earlier required assessment must be completed.

        Args:
            user_id: Participant id.
            campaign_id: Campaign id.
            task_id: Task id of the assessment.

        Returns:
            The updated assignment.

        Raises:
            AssignmentNotFoundError: If the assignment does not exist.
            AssessmentNotFoundError: If the task is not part of it.
            AssessmentUnavailableError: If the assignment is not open or an
                earlier assessment is still incomplete.
        """
        async with session_scope(self.sessionmaker) as session:
            assignment = await self._get(session, user_id, campaign_id, for_update=True)
            position = self._position(assignment, task_id)
            self._check_open(assignment)

            progress = dict(assignment.progress or {})
            if progress.get(task_id) == ProgressStatus.COMPLETED.value:
                return AssignmentResponse.model_validate(assignment)

            if assignment.sequential:
                for earlier in assignment.assessments[:position]:
                    if earlier.get("optional"):
                        continue
                    if progress.get(earlier["task_id"]) != ProgressStatus.COMPLETED.value:
                        raise AssessmentUnavailableError(
                            f"Assessment {earlier['task_id']} must be completed before {task_id}"
                        )

            progress[task_id] = ProgressStatus.STARTED.value
            assignment.progress = progress
            if not assignment.started:
                assignment.started = True
                await StatsAggregator(session).increment_started(campaign_id)

            logger.info("User %s started %s in campaign %s", user_id, task_id, campaign_id)
            return AssignmentResponse.model_validate(assignment)

    async def complete_assessment(
        self,
        user_id: str,
        campaign_id: str,
        task_id: str,
    ) -> AssignmentResponse:
        """Mark one assessment as completed.

        An assessment completed without an explicit start also starts the
        assignment. Once every required assessment is completed the
        assignment is marked completed and the campaign's ``completed``
        counter is incremented.

        Raises:
            AssignmentNotFoundError: If the assignment does not exist.
            AssessmentNotFoundError: If the task is not part of it.
        """
        async with session_scope(self.sessionmaker) as session:
            assignment = await self._get(session, user_id, campaign_id, for_update=True)
            self._position(assignment, task_id)

            progress = dict(assignment.progress or {})
            progress[task_id] = ProgressStatus.COMPLETED.value
            assignment.progress = progress

            stats = StatsAggregator(session)
            if not assignment.started:
                assignment.started = True
                await stats.increment_started(campaign_id)

            required = [a["task_id"] for a in assignment.assessments if not a.get("optional")]
            done = all(progress.get(t) == ProgressStatus.COMPLETED.value for t in required)
            if done and not assignment.completed:
                assignment.completed = True
                await stats.increment_completed(campaign_id)
                logger.info("User %s completed campaign %s", user_id, campaign_id)

            return AssignmentResponse.model_validate(assignment)

    async def _get(
        self,
        session: AsyncSession,
        user_id: str,
        campaign_id: str,
        for_update: bool = False,
    ) -> Assignment:
        stmt = select(Assignment).where(
            Assignment.user_id == user_id,
            Assignment.campaign_id == campaign_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        assignment = result.scalar_one_or_none()
        if assignment is None:
            raise AssignmentNotFoundError(
                f"User {user_id} has no assignment for campaign {campaign_id}"
            )
        return assignment

    def _position(self, assignment: Assignment, task_id: str) -> int:
        for index, assessment in enumerate(assignment.assessments or []):
            if assessment.get("task_id") == task_id:
                return index
        raise AssessmentNotFoundError(
            f"Assessment {task_id} is not part of campaign {assignment.campaign_id}"
        )

    def _check_open(self, assignment: Assignment) -> None:
        now = utc_now()
        if assignment.date_opened and now < ensure_utc(assignment.date_opened):
            raise AssessmentUnavailableError(f"Campaign {assignment.campaign_id} is not open yet")
        if assignment.date_closed and now > ensure_utc(assignment.date_closed):
            raise AssessmentUnavailableError(f"Campaign {assignment.campaign_id} is closed")
