"""Member schemas."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class MemberCreate(BaseModel):
    """Schema for registering a member at a node."""
    email: str = Field(..., max_length=255)
    full_name: str = Field(..., max_length=255)
    base_node_id: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("Invalid email address")
        return v

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Full name cannot be empty")
        return v


class MemberResponse(BaseModel):
    """Schema for member response."""
    id: str
    email: str
    full_name: str
    base_node_id: Optional[str] = None
    attributes: Dict[str, Any] = {}
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
