# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Org target change classification."""

from dataclasses import dataclass

from src.models.org import OrgTargets


@dataclass(frozen=True)
class OrgChanges:
    """Units added and removed between two target sets.

    Attributes:
        added: Units in the current set but not the previous one.
        removed: Units in the previous set but not the current one.
    """

    added: OrgTargets
    removed: OrgTargets

    @property
    def is_empty(self) -> bool:
        """True when both sides are empty."""
        return self.added.is_empty() and self.removed.is_empty()


def diff(prev: OrgTargets | None, curr: OrgTargets | None) -> OrgChanges:
    """Classify target changes per kind.

    A missing ``prev`` is a creation (everything added); a missing ``curr``
    is a deletion (everything removed).

    Args:
        prev: Previous target set.
        curr: Current target set.

    Returns:
        Added and removed units.
    """
    prev = prev or OrgTargets()
    curr = curr or OrgTargets()
    return OrgChanges(
        added=curr.difference(prev),
        removed=prev.difference(curr),
    )
