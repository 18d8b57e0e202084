# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Org hierarchy domain package.

The service module is imported from ``src.domains.org.service`` directly;
it depends on the campaign and sync packages, which depend on the
resolver exported here.
"""

from src.domains.org.hierarchy import IN_CLAUSE_BATCH, OrgHierarchyResolver

__all__ = [
    "IN_CLAUSE_BATCH",
    "OrgHierarchyResolver",
]
