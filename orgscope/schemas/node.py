"""Hierarchy node and tree schemas."""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from ..core import path_codec
from ..exceptions import InvalidCodeError

MAX_SORT_ORDER = 999999
MAX_METADATA_SIZE = 10_000
MAX_METADATA_KEY_LENGTH = 100


def _clean_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Name cannot be empty")
    return v


def _check_metadata(v: Dict[str, Any]) -> Dict[str, Any]:
    if len(json.dumps(v, default=str)) > MAX_METADATA_SIZE:
        raise ValueError(f"Metadata cannot exceed {MAX_METADATA_SIZE} characters when serialized")
    for key in v:
        if len(key) > MAX_METADATA_KEY_LENGTH:
            raise ValueError(f"Metadata keys cannot exceed {MAX_METADATA_KEY_LENGTH} characters")
    return v


class NodeCreate(BaseModel):
    """Schema for creating a node. ``parent_id=None`` creates a root."""
    name: str = Field(..., max_length=255)
    code: str
    parent_id: Optional[str] = None
    sort_order: int = Field(0, ge=0, le=MAX_SORT_ORDER)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_name(v)

    @field_validator('code')
    @classmethod
    def validate_code(cls, v: str) -> str:
        try:
            return path_codec.validate_code(v.strip())
        except InvalidCodeError as e:
            raise ValueError(e.message) from e

    @field_validator('metadata')
    @classmethod
    def validate_metadata(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        return _check_metadata(v)


class NodeUpdate(BaseModel):
    """Schema for editing a node. Code and parent change only through move."""
    name: Optional[str] = Field(None, max_length=255)
    sort_order: Optional[int] = Field(None, ge=0, le=MAX_SORT_ORDER)
    metadata: Optional[Dict[str, Any]] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_name(v) if v is not None else None

    @field_validator('metadata')
    @classmethod
    def validate_metadata(cls, v: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        return _check_metadata(v) if v is not None else None


class NodeMoveRequest(BaseModel):
    """Move a node under ``new_parent_id``; None makes it a root."""
    new_parent_id: Optional[str] = None


class NodeResponse(BaseModel):
    """Schema for node response."""
    id: str
    name: str
    code: str
    path: str
    level: int
    parent_id: Optional[str] = None
    sort_order: int
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("node_metadata", "metadata"),
    )
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class NodeMoveResponse(BaseModel):
    node: NodeResponse
    old_path: str
    new_path: str
    moved_descendants: int


class NodeDeleteResponse(BaseModel):
    node_id: str
    path: str
    deleted_count: int
    affected_users: int
    affected_user_ids: List[str]


class TreeNode(BaseModel):
    """Schema for tree navigation."""
    id: str
    name: str
    code: str
    path: str
    level: int
    sort_order: int = 0
    children: List['TreeNode'] = []


class IntegrityIssueResponse(BaseModel):
    node_id: str
    path: str
    issue_type: str
    severity: str
    message: str
    expected: Optional[str] = None
    actual: Optional[str] = None


class IntegrityReport(BaseModel):
    is_valid: bool
    error_count: int
    warning_count: int
    issues: List[IntegrityIssueResponse]
    checked_at: datetime


class HierarchyStats(BaseModel):
    total_nodes: int
    max_depth: int
    nodes_by_level: Dict[str, int]
    root_nodes: int
    leaf_nodes: int
