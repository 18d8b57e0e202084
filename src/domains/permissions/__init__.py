# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Permission collaborator interface and simple implementations."""

from src.domains.permissions.checker import (
    Actions,
    AllowAllPermissionChecker,
    Grant,
    GrantPermissionChecker,
    PermissionChecker,
    Resources,
    SubResources,
    require_permission,
)

__all__ = [
    "Actions",
    "AllowAllPermissionChecker",
    "Grant",
    "GrantPermissionChecker",
    "PermissionChecker",
    "Resources",
    "SubResources",
    "require_permission",
]
