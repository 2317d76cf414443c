"""Grant schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, model_validator

Role = Literal["read", "manager", "admin"]


class GrantCreate(BaseModel):
    """Request to grant *role* to *actor_id* at *node_id*."""
    actor_id: str
    node_id: str
    role: Role
    inherit_to_descendants: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class GrantUpdate(BaseModel):
    """Change role, inheritance or expiry of an active grant.

    ``clear_expiry`` removes ``valid_until``; it cannot be combined with a
    new expiry.
    """
    role: Optional[Role] = None
    inherit_to_descendants: Optional[bool] = None
    valid_until: Optional[datetime] = None
    clear_expiry: bool = False

    @model_validator(mode='after')
    def validate_expiry_fields(self) -> "GrantUpdate":
        if self.clear_expiry and self.valid_until is not None:
            raise ValueError("Pass either valid_until or clear_expiry, not both")
        return self


class GrantResponse(BaseModel):
    """Schema for grant response."""
    id: str
    actor_id: str
    node_id: str
    node_path: str
    role: Role
    inherit_to_descendants: bool
    valid_from: datetime
    valid_until: Optional[datetime] = None
    granted_by: Optional[str] = None
    revoked_by: Optional[str] = None
    revoked_at: Optional[datetime] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
