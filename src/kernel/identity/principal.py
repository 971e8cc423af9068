"""
The authenticated principal passed explicitly to every kernel operation.
"""

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.kernel.models.user import INSTITUTION_ROLES, REGULATOR_ROLES, UserRole


class Principal(BaseModel):
    """
    Who is acting.

    Immutable. ``impersonator_id`` is set only on an effective principal
    substituted through an impersonation session; it names the real actor.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    role: UserRole
    institution_id: Optional[str] = None
    qcto_id: Optional[str] = None
    assigned_provinces: Tuple[str, ...] = Field(default_factory=tuple)
    impersonator_id: Optional[str] = None

    @field_validator("assigned_provinces", mode="before")
    @classmethod
    def _normalize_provinces(cls, value):
        if value is None:
            return ()
        return tuple(p.strip() for p in value if p and p.strip())

    @property
    def is_regulator(self) -> bool:
        return self.role in REGULATOR_ROLES

    @property
    def is_institution_role(self) -> bool:
        return self.role in INSTITUTION_ROLES

    @property
    def is_impersonated(self) -> bool:
        return self.impersonator_id is not None

    def as_impersonated_by(self, impersonator_id: str) -> "Principal":
        """Effective principal for a session opened by ``impersonator_id``."""
        return self.model_copy(update={"impersonator_id": impersonator_id})
