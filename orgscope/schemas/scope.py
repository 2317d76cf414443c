"""Access scope and point-check schemas."""

from typing import List, Literal, Optional

from pydantic import BaseModel

from .grant import Role


class DirectGrantInfo(BaseModel):
    grant_id: str
    node_id: str
    node_path: str
    node_name: str
    role: Role
    inherit_to_descendants: bool


class InheritedNodeInfo(BaseModel):
    """A node reached only through an inheriting ancestor grant."""
    node_id: str
    node_path: str
    inherited_from: List[str]
    effective_role: Role


class AccessScopeResponse(BaseModel):
    actor_id: str
    accessible_node_ids: List[str]
    accessible_paths: List[str]
    direct_grants: List[DirectGrantInfo]
    inherited_nodes: List[InheritedNodeInfo]
    total_accessible_users: int


class AccessCheckResponse(BaseModel):
    """Outcome of a point check. Denial is ``can_access=False``, never an error."""
    can_access: bool
    access_level: Optional[Literal["direct", "inherited", "self"]] = None
    effective_role: Optional[Role] = None
    accessible_through: List[str] = []
    reason: str


class CanGrantResponse(BaseModel):
    can_grant: bool
    node_path: str
    requested_role: Role
