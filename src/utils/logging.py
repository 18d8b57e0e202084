# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Structured logging configuration using structlog.

Logs are formatted as JSON in production and as colored console output
in development for better readability.

Sync operations touch thousands of ids at a time, so this module also
provides summarizers that reduce id lists to a count and a short sample
before they reach a log line.

Example:
    >>> from src.utils.logging import setup_logging, bind_context
    >>> from src.core.config import get_settings
    >>> setup_logging(get_settings())
    >>> bind_context(campaign_id="abc")
"""

import logging
import sys
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from src.core.config.settings import Settings

DEFAULT_LOG_SAMPLE_SIZE = 3


def setup_logging(settings: "Settings") -> None:
    """Configure structured logging for the application.

    Sets up structlog with appropriate processors based on environment:
    - Development: Colored console output with pretty formatting
    - Production: JSON output for log aggregation

    Args:
        settings: Application settings containing log_level and debug flag.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development or settings.debug:
        processors: list[Processor] = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    # Set third-party loggers to WARNING to reduce noise
    for logger_name in [
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "sqlalchemy",
        "asyncio",
        "dramatiq",
    ]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("src").setLevel(log_level)


def bind_context(**kwargs: object) -> None:
    """Bind context variables to all subsequent log calls in this context.

    Useful for adding operation-scoped information like campaign_id.

    Args:
        **kwargs: Key-value pairs to bind to the logging context.

    Example:
        >>> bind_context(campaign_id="abc-123", caller_id="user-456")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def summarize_ids_for_log(
    ids: Iterable[str] | None,
    sample_size: int = DEFAULT_LOG_SAMPLE_SIZE,
) -> dict[str, Any]:
    """Reduce an id collection to a loggable summary.

    Args:
        ids: Ids to summarize. Sets are sorted for a stable sample.
        sample_size: Number of ids kept in the sample.

    Returns:
        Dict with ``count``, ``sample`` and ``truncated`` keys.
    """
    id_list = sorted(ids) if isinstance(ids, (set, frozenset)) else list(ids or [])
    return {
        "count": len(id_list),
        "sample": id_list[:sample_size],
        "truncated": len(id_list) > sample_size,
    }


def summarize_targets_for_log(
    targets: Mapping[str, Iterable[str]] | None,
    sample_size: int = DEFAULT_LOG_SAMPLE_SIZE,
) -> dict[str, dict[str, Any]]:
    """Summarize every id list of a kind-keyed target mapping.

    Args:
        targets: Mapping of org kind (plural) to ids.
        sample_size: Number of ids kept per kind.

    Returns:
        Mapping of kind to id summary.
    """
    return {
        kind: summarize_ids_for_log(ids, sample_size)
        for kind, ids in (targets or {}).items()
    }
