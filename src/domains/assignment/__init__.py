# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Assignment progress domain package."""

from src.domains.assignment.service import (
    AssessmentNotFoundError,
    AssessmentUnavailableError,
    AssignmentNotFoundError,
    AssignmentService,
    AssignmentServiceError,
)

__all__ = [
    "AssignmentService",
    "AssignmentServiceError",
    "AssignmentNotFoundError",
    "AssessmentNotFoundError",
    "AssessmentUnavailableError",
]
