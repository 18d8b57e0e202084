# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure.

This package provides SQLAlchemy async database connections and the ORM
models for org units, campaigns, users and assignments.

Example:
    from src.infrastructure.database import get_session

    async with get_session() as session:
        result = await session.execute(select(Campaign))
"""

from src.infrastructure.database.connection import (
    DatabaseError,
    build_sessionmaker,
    check_database_connection,
    close_database,
    create_tables,
    get_engine,
    get_session,
    get_sessionmaker,
    init_database,
    is_database_initialized,
    session_scope,
)

__all__ = [
    "DatabaseError",
    "build_sessionmaker",
    "check_database_connection",
    "close_database",
    "create_tables",
    "get_engine",
    "get_session",
    "get_sessionmaker",
    "init_database",
    "is_database_initialized",
    "session_scope",
]
