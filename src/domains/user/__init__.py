# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User domain package.

Example:
    >>> from src.domains.user import UserService
    >>> service = UserService(sessionmaker)
    >>> await service.set_current_orgs("u1", OrgTargets(classes=["c1"]))
"""

from src.domains.user.service import (
    UserNotFoundError,
    UserService,
    UserServiceError,
)

__all__ = [
    "UserService",
    "UserServiceError",
    "UserNotFoundError",
]
