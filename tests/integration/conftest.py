# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Fixtures for API tests.

The application is driven in-process through httpx's ASGI transport on the
test's own event loop, with the database dependency pointed at the per-test
SQLite sessionmaker. The lifespan is not run.
"""

from collections.abc import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.api.app import create_app
from src.api.dependencies import get_db_sessionmaker
from src.domains.permissions import AllowAllPermissionChecker


@pytest.fixture
def permission_checker():
    """Permission checker installed on the app. Override to restrict."""
    return AllowAllPermissionChecker()


@pytest.fixture
def app(sessionmaker, permission_checker) -> FastAPI:
    """Create test FastAPI app bound to the test database."""
    app = create_app(permission_checker=permission_checker)
    app.dependency_overrides[get_db_sessionmaker] = lambda: sessionmaker
    return app


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
