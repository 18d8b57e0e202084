# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base utilities for Dramatiq tasks.

Thread-Local Event Loop Management:
    Dramatiq workers use multiple threads (--threads N) to process tasks
    concurrently. SQLAlchemy async engines and asyncpg connections are
    bound to specific event loops and cannot be used across different loops.

    This module keeps one persistent event loop per worker thread and one
    engine per loop, so pooled connections always belong to the loop that
    awaits them.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.core.config import get_settings
from src.infrastructure.database.connection import build_sessionmaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Thread-local storage for event loops and engines
_thread_local = threading.local()


def _get_thread_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create a persistent event loop for the current thread.

    When a new loop is created, the thread's cached sessionmaker is dropped
    so no connection from a previous loop is reused.
    """
    loop = getattr(_thread_local, "event_loop", None)

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.event_loop = loop
        _thread_local.sessionmaker = None

        logger.debug(
            "Created new event loop for thread %s",
            threading.current_thread().name,
        )

    return loop


def get_worker_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the sessionmaker bound to the current worker thread's loop."""
    sessionmaker = getattr(_thread_local, "sessionmaker", None)
    if sessionmaker is None:
        settings = get_settings()
        engine = create_async_engine(settings.db.url, echo=False)
        sessionmaker = build_sessionmaker(engine)
        _thread_local.sessionmaker = sessionmaker
    return sessionmaker


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run async coroutine in sync Dramatiq worker context.

    Args:
        coro: Coroutine to run.

    Returns:
        Result of coroutine.

    Example:
        @dramatiq.actor
        def my_task(campaign_id: str):
            async def _process():
                sessionmaker = get_worker_sessionmaker()
                ...
            return run_async(_process())
    """
    loop = _get_thread_event_loop()
    return loop.run_until_complete(coro)
