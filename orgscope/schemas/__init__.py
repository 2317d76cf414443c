"""Pydantic schemas for API validation."""

from .node import (
    NodeCreate,
    NodeUpdate,
    NodeMoveRequest,
    NodeResponse,
    NodeMoveResponse,
    NodeDeleteResponse,
    TreeNode,
    IntegrityReport,
    HierarchyStats,
)
from .grant import Role, GrantCreate, GrantUpdate, GrantResponse
from .scope import AccessScopeResponse, AccessCheckResponse, CanGrantResponse
from .query import UserQueryFilters, UserQueryResponse, AutocompleteItem, BulkAccessRequest, BulkAccessResponse
from .user import MemberCreate, MemberResponse

__all__ = [
    "NodeCreate",
    "NodeUpdate",
    "NodeMoveRequest",
    "NodeResponse",
    "NodeMoveResponse",
    "NodeDeleteResponse",
    "TreeNode",
    "IntegrityReport",
    "HierarchyStats",
    "Role",
    "GrantCreate",
    "GrantUpdate",
    "GrantResponse",
    "AccessScopeResponse",
    "AccessCheckResponse",
    "CanGrantResponse",
    "UserQueryFilters",
    "UserQueryResponse",
    "AutocompleteItem",
    "BulkAccessRequest",
    "BulkAccessResponse",
    "MemberCreate",
    "MemberResponse",
]
