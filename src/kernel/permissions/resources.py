"""
Resource references and domain-side record shapes.

These are what the access engine reasons about. Nothing here knows about
SQL; ``SqlResourceStore`` translates rows into these values.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from src.kernel.identity.principal import Principal


class ResourceType(str, Enum):
    """Every kind of tenant-owned resource the engine can authorize."""
    INSTITUTION = "INSTITUTION"
    READINESS = "READINESS"
    FACILITATOR = "FACILITATOR"
    LEARNER = "LEARNER"
    ENROLMENT = "ENROLMENT"
    DOCUMENT = "DOCUMENT"
    SUBMISSION = "SUBMISSION"
    REQUEST = "REQUEST"


class Action(str, Enum):
    READ = "READ"
    WRITE = "WRITE"
    REVIEW = "REVIEW"


@dataclass(frozen=True)
class ResourceRef:
    type: ResourceType
    id: str

    def __str__(self) -> str:
        return f"{self.type.value}:{self.id}"


@dataclass(frozen=True)
class Active:
    """Live row."""


@dataclass(frozen=True)
class Deleted:
    """Soft-deleted row. Invisible to every non-global principal."""
    at: datetime


Lifecycle = Union[Active, Deleted]

ACTIVE = Active()


def lifecycle_from(deleted_at: Optional[datetime]) -> Lifecycle:
    return ACTIVE if deleted_at is None else Deleted(at=deleted_at)


@dataclass(frozen=True)
class ResourceRecord:
    """
    What the store knows about one resource.

    Exactly one of ``institution_id`` / ``parent`` is set: either the row
    names its owner directly or ownership continues through the parent.
    """

    ref: ResourceRef
    lifecycle: Lifecycle
    institution_id: Optional[str] = None
    parent: Optional[ResourceRef] = None
    owner_user_id: Optional[str] = None  # learner -> student login

    @property
    def is_live(self) -> bool:
        return isinstance(self.lifecycle, Active)


@dataclass(frozen=True)
class UserSnapshot:
    """A user as seen by delegation checks."""

    principal: Principal
    lifecycle: Lifecycle

    @property
    def is_live(self) -> bool:
        return isinstance(self.lifecycle, Active)
