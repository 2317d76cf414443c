"""Node API: tree CRUD, move, delete, navigation and integrity.

Single router for all hierarchy operations. Delegates to HierarchyService
(deep module), which also performs the role checks.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import ActorContext, require_actor, require_system
from ..database import get_db
from ..exceptions import NodeNotFoundError
from ..schemas.grant import GrantResponse
from ..schemas.node import (
    HierarchyStats,
    IntegrityReport,
    NodeCreate,
    NodeDeleteResponse,
    NodeMoveRequest,
    NodeMoveResponse,
    NodeResponse,
    NodeUpdate,
    TreeNode,
)
from ..services.access_service import AccessService
from ..services.grant_service import GrantService
from ..services.hierarchy_service import HierarchyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/nodes", tags=["nodes"])


# -- Whole-tree views -----------------------------------------------------

@router.get("/tree", response_model=List[TreeNode])
def get_tree(
    root_id: Optional[str] = Query(None),
    scoped: bool = Query(False, description="Only include nodes in the caller's access scope"),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    """Nested tree of active nodes, optionally limited to a subtree or the caller's scope."""
    allowed = None
    if scoped and not actor.is_system:
        allowed = AccessService(db).compute_scope(actor.actor_id, count_users=False).accessible_paths
    return HierarchyService(db).get_tree(root_id=root_id, allowed_paths=allowed)


@router.get("/stats", response_model=HierarchyStats)
def get_statistics(
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return HierarchyService(db).statistics()


@router.get("/integrity", response_model=IntegrityReport)
def validate_integrity(
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_system),
):
    """Report orphans, level/path drift and cycles. Never repairs anything."""
    return HierarchyService(db).validate_integrity(actor)


@router.get("/by-path", response_model=NodeResponse)
def get_node_by_path(
    path: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    node = HierarchyService(db).get_node_by_path(path)
    if node is None:
        raise NodeNotFoundError(path)
    return node


@router.get("/roots", response_model=List[NodeResponse])
def list_roots(
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return HierarchyService(db).children(None)


@router.get("/leaves", response_model=List[NodeResponse])
def list_leaves(
    node_id: Optional[str] = Query(None, description="Restrict to this subtree"),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return HierarchyService(db).leaves(node_id)


@router.get("/levels/{level}", response_model=List[NodeResponse])
def list_level(
    level: int,
    node_id: Optional[str] = Query(None, description="Restrict to this subtree"),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return HierarchyService(db).at_level(level, node_id)


# -- Node CRUD ------------------------------------------------------------

@router.post("", response_model=NodeResponse, status_code=201)
def create_node(
    data: NodeCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return HierarchyService(db).create_node(data, actor)


@router.get("/{node_id}", response_model=NodeResponse)
def get_node(
    node_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return HierarchyService(db).get_node(node_id)


@router.put("/{node_id}", response_model=NodeResponse)
def update_node(
    node_id: str,
    data: NodeUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return HierarchyService(db).update_node(node_id, data, actor)


@router.post("/{node_id}/move", response_model=NodeMoveResponse)
def move_node(
    node_id: str,
    request: NodeMoveRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    """Move a node and its whole subtree. Requires manager on both ends."""
    return HierarchyService(db).move_node(node_id, request.new_parent_id, actor)


@router.delete("/{node_id}", response_model=NodeDeleteResponse)
def delete_node(
    node_id: str,
    force: bool = Query(False, description="Delete even if children or members exist"),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return HierarchyService(db).delete_node(node_id, actor, force=force)


# -- Navigation -----------------------------------------------------------

@router.get("/{node_id}/children", response_model=List[NodeResponse])
def list_children(
    node_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return HierarchyService(db).children(node_id)


@router.get("/{node_id}/descendants", response_model=List[NodeResponse])
def list_descendants(
    node_id: str,
    include_self: bool = Query(False),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return HierarchyService(db).descendants(node_id, include_self)


@router.get("/{node_id}/ancestors", response_model=List[NodeResponse])
def list_ancestors(
    node_id: str,
    include_self: bool = Query(False),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    """Ancestors root first; with include_self this is the breadcrumb trail."""
    return HierarchyService(db).ancestors(node_id, include_self)


@router.get("/{node_id}/siblings", response_model=List[NodeResponse])
def list_siblings(
    node_id: str,
    include_self: bool = Query(False),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return HierarchyService(db).siblings(node_id, include_self)


@router.get("/{node_id}/grants", response_model=List[GrantResponse])
def list_node_grants(
    node_id: str,
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return GrantService(db).list_for_node(node_id, actor, include_inactive=include_inactive)
