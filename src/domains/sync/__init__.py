# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Assignment synchronization package.

Exports the dependency-free building blocks only. The writer and the
orchestrating modules (``writer``, ``service``, ``rollback``, ``triggers``)
depend on ``src.domains.org`` and are imported by module path.

Example:
    >>> from src.domains.sync.service import SyncService
    >>> outcome = await SyncService(sessionmaker, settings).sync_created(snapshot)
"""

from src.domains.sync.chunking import batched, chunk_targets
from src.domains.sync.stats import StatsAggregator

__all__ = [
    "StatsAggregator",
    "batched",
    "chunk_targets",
]
