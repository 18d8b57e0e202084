# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer.

Each domain module provides services that orchestrate store reads and
writes for one area of the system.

Domains:
    org: Org hierarchy resolution and org unit management.
    campaign: Campaign definitions, targets and their persistence.
    sync: Chunked assignment synchronization, rollback and triggers.
    user: User records and memberships.
    assignment: Per-user assessment progress.
    permissions: Capability checks for administrators.
"""
