"""Loads access scopes and answers point checks.

AccessService is the I/O shell around permission_service: it reads the
actor's current grants and the nodes they cover, hands the snapshot to the
pure resolver, and shapes the answers. Scopes are computed fresh on every
call; nothing is cached between requests.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models.node import HierarchyNode
from ..repositories.grant_repository import GrantRepository
from ..repositories.node_repository import NodeRepository
from ..repositories.user_repository import UserRepository
from . import permission_service as ps
from .permission_service import AccessCheck, AccessScope, ScopeGrant

logger = logging.getLogger(__name__)


class AccessService:
    """Scope resolution and access checks for one session."""

    def __init__(self, db: Session):
        self.db = db
        self.node_repo = NodeRepository(db)
        self.grant_repo = GrantRepository(db)
        self.user_repo = UserRepository(db)

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    def compute_scope(self, actor_id: str, count_users: bool = True) -> AccessScope:
        """Resolve everything *actor_id* can reach right now.

        Unknown and inactive actors get an empty scope rather than an error.
        """
        actor = self.user_repo.get_by_id_optional(actor_id)
        if actor is None or not actor.is_active:
            logger.debug("Empty scope for unknown or inactive actor", extra={"actor_id": actor_id})
            return ps.empty_scope(actor_id)

        rows = self.grant_repo.find_active_by_actor_with_node_info(actor_id)
        grants = [
            ScopeGrant(
                grant_id=grant.id,
                node_id=node.id,
                node_path=node.path,
                node_name=node.name,
                role=grant.role,
                inherit_to_descendants=bool(grant.inherit_to_descendants),
            )
            for grant, node in rows
        ]
        inheriting_paths = [g.node_path for g in grants if g.inherit_to_descendants]
        covered = [(n.id, n.path) for n in self.node_repo.descendants_of_any(inheriting_paths)]

        scope = ps.compute_scope(actor_id, grants, covered)
        if count_users and not scope.is_empty:
            scope = replace(
                scope, total_accessible_users=self.user_repo.count_in_paths(scope.sorted_paths())
            )

        logger.debug(
            "Scope computed",
            extra={
                "actor_id": actor_id,
                "grants": len(grants),
                "paths": len(scope.accessible_paths),
            },
        )
        return scope

    def describe_scope(self, scope: AccessScope) -> Dict[str, Any]:
        """Scope in response shape, with inherited-only nodes spelled out."""
        direct_paths = {g.node_path for g in scope.grants}
        inherited_paths = sorted(scope.accessible_paths - direct_paths)
        inherited_nodes: List[Dict[str, Any]] = []
        if inherited_paths:
            nodes = (
                self.db.query(HierarchyNode)
                .filter(HierarchyNode.id.in_(list(scope.accessible_node_ids)))
                .filter(HierarchyNode.path.in_(inherited_paths))
                .order_by(HierarchyNode.path)
                .all()
            )
            for node in nodes:
                inherited_nodes.append({
                    "node_id": node.id,
                    "node_path": node.path,
                    "inherited_from": ps.accessible_through(node.path, scope),
                    "effective_role": ps.effective_role(node.path, scope),
                })

        return {
            "actor_id": scope.actor_id,
            "accessible_node_ids": sorted(scope.accessible_node_ids),
            "accessible_paths": scope.sorted_paths(),
            "direct_grants": [
                {
                    "grant_id": g.grant_id,
                    "node_id": g.node_id,
                    "node_path": g.node_path,
                    "node_name": g.node_name,
                    "role": g.role,
                    "inherit_to_descendants": g.inherit_to_descendants,
                }
                for g in scope.grants
            ],
            "inherited_nodes": inherited_nodes,
            "total_accessible_users": scope.total_accessible_users,
        }

    # ------------------------------------------------------------------
    # Point checks (never raise for denial)
    # ------------------------------------------------------------------

    def can_access_user(self, actor_id: str, target_user_id: str, scope: Optional[AccessScope] = None) -> AccessCheck:
        """Whether *actor_id* can reach the member *target_user_id*.

        Self-access is always at least ``read``; a grant covering the
        actor's own node can raise it.
        """
        target = self.user_repo.get_by_id_optional(target_user_id)
        if target is None or not target.is_active:
            if target_user_id == actor_id:
                return ps.self_access()
            return AccessCheck(False, "Target user not found or inactive")

        if scope is None:
            scope = self.compute_scope(actor_id, count_users=False)
        node_path = self._node_path(target.base_node_id)
        check = ps.check_path(node_path, scope)

        if target.id == actor_id:
            if not check.can_access:
                return ps.self_access()
            return AccessCheck(
                can_access=True,
                reason="Own record",
                access_level=ps.SELF,
                effective_role=ps.max_role(["read", check.effective_role]),
                accessible_through=check.accessible_through,
            )
        return check

    def can_access_node(self, actor_id: str, node_id: str, scope: Optional[AccessScope] = None) -> AccessCheck:
        node_path = self._node_path(node_id)
        if node_path is None:
            return AccessCheck(False, "Node not found or inactive")
        if scope is None:
            scope = self.compute_scope(actor_id, count_users=False)
        return ps.check_path(node_path, scope)

    def effective_role_at(self, actor_id: str, node_path: str) -> Optional[str]:
        return ps.effective_role(node_path, self.compute_scope(actor_id, count_users=False))

    def can_grant(self, actor_id: str, target_path: str, requested_role: str) -> bool:
        scope = self.compute_scope(actor_id, count_users=False)
        return ps.can_grant(scope, target_path, requested_role)

    def _node_path(self, node_id: Optional[str]) -> Optional[str]:
        if not node_id:
            return None
        node = self.node_repo.get_by_id_optional(node_id)
        return node.path if node else None
