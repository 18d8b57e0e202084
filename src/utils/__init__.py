# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog, id-list summaries for logs
- datetime: Timezone-aware datetime operations
"""

from src.utils.datetime import ensure_utc, format_iso, parse_iso, utc_now
from src.utils.logging import (
    bind_context,
    clear_context,
    setup_logging,
    summarize_ids_for_log,
    summarize_targets_for_log,
)

__all__ = [
    # Logging
    "setup_logging",
    "bind_context",
    "clear_context",
    "summarize_ids_for_log",
    "summarize_targets_for_log",
    # Datetime
    "utc_now",
    "ensure_utc",
    "format_iso",
    "parse_iso",
]
