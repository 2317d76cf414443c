"""Schemas for scoped member queries."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .grant import Role

SortField = Literal["name", "email", "node_path", "created_at"]


class UserQueryFilters(BaseModel):
    """Filters for "which members may I see".

    Every filter narrows the requester's scope; none can widen it.
    """
    search: Optional[str] = Field(None, max_length=255)
    is_active: Optional[bool] = None
    node_id: Optional[str] = None
    include_descendants: bool = True
    levels: Optional[List[int]] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    last_login_after: Optional[datetime] = None
    last_login_before: Optional[datetime] = None
    exclude_self: bool = False
    require_minimum_role: Optional[Role] = None
    page: int = Field(1, ge=1)
    limit: Optional[int] = Field(None, ge=1, le=1000)
    sort_by: SortField = "name"
    sort_order: Literal["asc", "desc"] = "asc"

    @field_validator('search')
    @classmethod
    def strip_search(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator('levels')
    @classmethod
    def validate_levels(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is not None and any(level < 0 for level in v):
            raise ValueError("Levels cannot be negative")
        return v

    @model_validator(mode='after')
    def validate_ranges(self) -> "UserQueryFilters":
        if self.created_after and self.created_before and self.created_after > self.created_before:
            raise ValueError("created_after must be before created_before")
        if self.last_login_after and self.last_login_before and self.last_login_after > self.last_login_before:
            raise ValueError("last_login_after must be before last_login_before")
        return self


class AccessibleUser(BaseModel):
    """A member plus how the requester reaches them."""
    id: str
    email: str
    full_name: str
    is_active: bool
    base_node_id: Optional[str] = None
    node_path: Optional[str] = None
    node_name: Optional[str] = None
    node_level: Optional[int] = None
    created_at: datetime
    last_login_at: Optional[datetime] = None
    access_level: Literal["direct", "inherited", "self"]
    accessible_through: List[str]
    effective_role: Role


class QueryAnalytics(BaseModel):
    by_node: Dict[str, int]
    by_access_level: Dict[str, int]
    by_effective_role: Dict[str, int]


class RequestorContext(BaseModel):
    actor_id: str
    accessible_node_count: int
    total_accessible_users: int
    execution_time_ms: float


class UserQueryResponse(BaseModel):
    users: List[AccessibleUser]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_previous: bool
    analytics: QueryAnalytics
    requestor_context: RequestorContext


class AutocompleteItem(BaseModel):
    id: str
    full_name: str
    email: str
    node_path: Optional[str] = None


class BulkAccessRequest(BaseModel):
    user_ids: List[str] = Field(..., min_length=1, max_length=100)


class BulkAccessResponse(BaseModel):
    results: Dict[str, Any]
    accessible_count: int
    denied_count: int
