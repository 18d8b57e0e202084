# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Error codes shared by all domain services.

Each domain defines its own exception hierarchy. Every exception class
carries a ``code`` class attribute from ErrorCode so that callers (the API
layer, background actors) can map failures without knowing every domain.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Caller-visible error categories."""

    INVALID_ARGUMENT = "invalid-argument"
    PERMISSION_DENIED = "permission-denied"
    NOT_FOUND = "not-found"
    FAILED_PRECONDITION = "failed-precondition"
    INTERNAL = "internal"


class ServiceError(Exception):
    """Base exception for domain service errors.

    Attributes:
        code: Caller-visible error category.
        message: Human-readable error description.
    """

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidArgumentError(ServiceError):
    """Raised when request input is missing or malformed."""

    code = ErrorCode.INVALID_ARGUMENT


class PermissionDeniedError(ServiceError):
    """Raised when the caller lacks a capability."""

    code = ErrorCode.PERMISSION_DENIED


class NotFoundError(ServiceError):
    """Raised when a referenced record does not exist."""

    code = ErrorCode.NOT_FOUND


class InternalError(ServiceError):
    """Raised when an operation fails after validation passed."""

    code = ErrorCode.INTERNAL


class FailedPreconditionError(ServiceError):
    """Raised when a record is not in a state that allows the operation."""

    code = ErrorCode.FAILED_PRECONDITION
