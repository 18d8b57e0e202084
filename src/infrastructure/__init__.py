# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer for external service integrations.

This package contains clients and managers for:
- Database connections (PostgreSQL, SQLite in tests)
- Background task processing (Dramatiq)
- The in-process event bus and its change feed bridge
"""
