# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Organizational unit models.

Defines the four org kinds, their containment rules, and OrgTargets, the
kind-keyed id set used everywhere a campaign target, a closure, a chunk or
a user's membership is passed around.
"""

from collections.abc import Iterable, Iterator, Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrgKind(str, Enum):
    """Kinds of organizational units."""

    SITE = "site"
    SCHOOL = "school"
    CLASS = "class"
    COHORT = "cohort"

    @property
    def plural(self) -> str:
        """Collection-style name used as the OrgTargets field name."""
        return _PLURALS[self]

    @classmethod
    def from_plural(cls, plural: str) -> "OrgKind":
        """Resolve a kind from its plural name.

        Raises:
            ValueError: If the name is not a known plural.
        """
        for kind, name in _PLURALS.items():
            if name == plural:
                return kind
        raise ValueError(f"Unknown org kind: {plural}")


_PLURALS: dict[OrgKind, str] = {
    OrgKind.SITE: "sites",
    OrgKind.SCHOOL: "schools",
    OrgKind.CLASS: "classes",
    OrgKind.COHORT: "cohorts",
}

# Direct containment: which kinds may be listed as children of a kind.
CHILD_KINDS: dict[OrgKind, tuple[OrgKind, ...]] = {
    OrgKind.SITE: (OrgKind.SCHOOL, OrgKind.CLASS, OrgKind.COHORT),
    OrgKind.SCHOOL: (OrgKind.CLASS,),
    OrgKind.CLASS: (),
    OrgKind.COHORT: (),
}

# Which kinds a unit may name as its parent.
PARENT_KINDS: dict[OrgKind, tuple[OrgKind, ...]] = {
    OrgKind.SITE: (),
    OrgKind.SCHOOL: (OrgKind.SITE,),
    OrgKind.CLASS: (OrgKind.SCHOOL, OrgKind.SITE),
    OrgKind.COHORT: (OrgKind.SITE,),
}


class OrgTargets(BaseModel):
    """Set of org unit ids, one list per kind.

    Lists are normalized to sorted, de-duplicated ids, so two OrgTargets
    compare equal exactly when they hold the same ids.

    Attributes:
        sites: Site ids.
        schools: School ids.
        classes: Class ids.
        cohorts: Cohort ids.
    """

    model_config = ConfigDict(frozen=True)

    sites: list[str] = Field(default_factory=list)
    schools: list[str] = Field(default_factory=list)
    classes: list[str] = Field(default_factory=list)
    cohorts: list[str] = Field(default_factory=list)

    @field_validator("sites", "schools", "classes", "cohorts", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> list[str]:
        if value is None:
            return []
        return sorted({str(v) for v in value if v})

    @classmethod
    def from_mapping(cls, data: Mapping[str, Iterable[str]] | None) -> "OrgTargets":
        """Build from a kind-keyed mapping, ignoring unknown keys."""
        data = data or {}
        return cls(**{kind.plural: list(data.get(kind.plural) or []) for kind in OrgKind})

    @classmethod
    def of(cls, kind: OrgKind, ids: Iterable[str]) -> "OrgTargets":
        """Build a target set holding ids of a single kind."""
        return cls(**{kind.plural: list(ids)})

    def ids(self, kind: OrgKind) -> list[str]:
        """Ids of the given kind."""
        return getattr(self, kind.plural)

    def items(self) -> Iterator[tuple[OrgKind, list[str]]]:
        """Iterate (kind, ids) pairs in containment order."""
        for kind in OrgKind:
            yield kind, self.ids(kind)

    def refs(self) -> set[tuple[OrgKind, str]]:
        """All (kind, id) pairs."""
        return {(kind, org_id) for kind, ids in self.items() for org_id in ids}

    def contains(self, kind: OrgKind, org_id: str) -> bool:
        """Check whether a unit is in the set."""
        return org_id in self.ids(kind)

    def count(self) -> int:
        """Total number of ids across kinds."""
        return sum(len(ids) for _, ids in self.items())

    def is_empty(self) -> bool:
        """Check whether no ids are present."""
        return self.count() == 0

    def union(self, other: "OrgTargets") -> "OrgTargets":
        """Per-kind union."""
        return OrgTargets(**{
            kind.plural: [*self.ids(kind), *other.ids(kind)] for kind in OrgKind
        })

    def difference(self, other: "OrgTargets") -> "OrgTargets":
        """Per-kind set difference ``self - other``."""
        return OrgTargets(**{
            kind.plural: list(set(self.ids(kind)) - set(other.ids(kind)))
            for kind in OrgKind
        })

    def intersection(self, other: "OrgTargets") -> "OrgTargets":
        """Per-kind intersection."""
        return OrgTargets(**{
            kind.plural: list(set(self.ids(kind)) & set(other.ids(kind)))
            for kind in OrgKind
        })

    def issubset(self, other: "OrgTargets") -> bool:
        """Check whether every id is also in ``other``."""
        return all(set(self.ids(kind)) <= set(other.ids(kind)) for kind in OrgKind)

    def without(self, kind: OrgKind, org_id: str) -> "OrgTargets":
        """Copy with one unit removed."""
        return self.difference(OrgTargets.of(kind, [org_id]))

    def as_dict(self) -> dict[str, list[str]]:
        """Plain dict representation keyed by plural kind."""
        return {kind.plural: list(ids) for kind, ids in self.items()}


class OrgUnitUpsertRequest(BaseModel):
    """Request to create or update an org unit.

    Attributes:
        id: Existing unit id for updates. Absent means create.
        kind: Unit kind.
        name: Display name.
        parent_id: Id of the containing unit.
        parent_kind: Kind of the containing unit. Defaults to the only
            allowed parent kind when there is exactly one.
        site_id: Governing site, used for permission checks.
        archived: Archived units are excluded from creation-path closures.
    """

    id: str | None = None
    kind: OrgKind
    name: str = Field(..., min_length=1, max_length=200)
    parent_id: str | None = None
    parent_kind: OrgKind | None = None
    site_id: str | None = None
    archived: bool = False


class OrgUnitResponse(BaseModel):
    """Org unit representation returned by the service."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: OrgKind
    name: str
    parent_id: str | None = None
    parent_kind: OrgKind | None = None
    site_id: str | None = None
    archived: bool = False
    children: dict[str, list[str]] = Field(default_factory=dict)


class OrgUpsertResponse(BaseModel):
    """Result of an org upsert."""

    status: str = "ok"
    org_id: str


class OrgDeleteResponse(BaseModel):
    """Result of an org unit deletion.

    Attributes:
        status: Always ``ok`` on success.
        deleted: Units removed, keyed by plural kind.
        campaigns_updated: Campaigns whose targets lost a deleted unit.
    """

    status: str = "ok"
    deleted: dict[str, list[str]] = Field(default_factory=dict)
    campaigns_updated: list[str] = Field(default_factory=list)
