# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Two-level chunking of sync work.

Unit-group chunks bound the read phase of each step: a closure is split
into groups of at most ``org_chunk_size`` units before any user lookup.
User sub-chunks bound the write phase: the users resolved for one group
are split into groups of at most ``max_transaction_ops``, one transaction
each.
"""

from collections.abc import Iterable, Iterator
from typing import TypeVar

from src.models.org import OrgKind, OrgTargets

T = TypeVar("T")


def chunk_targets(targets: OrgTargets, org_chunk_size: int = 100) -> list[OrgTargets]:
    """Split a target set into groups of at most ``org_chunk_size`` units.

    Units are taken in kind order (sites, schools, classes, cohorts) and id
    order, so the same input always yields the same chunks.

    Args:
        targets: Units to split.
        org_chunk_size: Maximum units per chunk.

    Returns:
        Non-empty chunks whose union is ``targets``. Empty for empty input.

    Raises:
        ValueError: If org_chunk_size is not positive.
    """
    if org_chunk_size < 1:
        raise ValueError("org_chunk_size must be positive")

    chunks: list[OrgTargets] = []
    current: dict[OrgKind, list[str]] = {}
    size = 0

    for kind, ids in targets.items():
        for org_id in ids:
            current.setdefault(kind, []).append(org_id)
            size += 1
            if size == org_chunk_size:
                chunks.append(OrgTargets(**{k.plural: v for k, v in current.items()}))
                current = {}
                size = 0

    if size:
        chunks.append(OrgTargets(**{k.plural: v for k, v in current.items()}))

    return chunks


def batched(items: Iterable[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive lists of at most ``size`` items.

    Raises:
        ValueError: If size is not positive.
    """
    if size < 1:
        raise ValueError("batch size must be positive")

    batch: list[T] = []
    for item in items:
        batch.append(item)
        if len(batch) == size:
            yield batch
            batch = []
    if batch:
        yield batch
