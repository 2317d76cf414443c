"""Deep module for every change to the org tree: create, edit, move, delete.

Also owns the read-side tree operations (lookups, tree building, stats) and
the integrity report. Callers never compute paths or levels themselves.

Every mutation follows the same shape: authorize the actor from their
freshly resolved scope, then validate and write inside one unit of work,
staging the audit entry in the same transaction.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core import tree
from ..core.auth import ActorContext
from ..core.clock import utcnow
from ..core.config import settings
from ..database import unit_of_work
from ..exceptions import (
    DependentsExistError,
    DuplicateNameError,
    InsufficientPrivilegeError,
)
from ..models.node import HierarchyNode
from ..repositories.node_repository import NodeRepository
from ..repositories.user_repository import UserRepository
from ..schemas.node import NodeCreate, NodeUpdate
from . import audit_service
from . import permission_service as ps
from .access_service import AccessService
from .validation import require_uuid

logger = logging.getLogger(__name__)


class HierarchyService:
    """All hierarchy operations behind a narrow interface.

    Public methods:
        create_node        -- root (system actors) or child (manager at parent)
        get_node / get_node_by_path
        update_node        -- name / sort_order / metadata (manager at node)
        move_node          -- relocate subtree (manager at node and destination)
        delete_node        -- soft-delete subtree (admin at node)
        children / descendants / ancestors / siblings / leaves / at_level
        get_tree           -- nested TreeNode dicts, optionally scope-filtered
        validate_integrity -- report structural drift, never repair it
        statistics
    """

    def __init__(self, db: Session):
        self.db = db
        self.node_repo = NodeRepository(db)
        self.user_repo = UserRepository(db)
        self.access = AccessService(db)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def _authorize(self, actor: ActorContext, path: str, minimum: str, action: str) -> None:
        if actor.is_system:
            return
        role = self.access.effective_role_at(actor.actor_id, path)
        if not ps.role_at_least(role, minimum):
            logger.info(
                "Hierarchy operation denied",
                extra={"actor_id": actor.actor_id, "path": path, "action": action, "held_role": role},
            )
            raise InsufficientPrivilegeError(
                f"{minimum.capitalize()} role required to {action} here",
                details={"required_role": minimum},
            )

    def _require_system(self, actor: ActorContext, action: str) -> None:
        if not actor.is_system:
            raise InsufficientPrivilegeError(f"Only system actors can {action}")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_node(self, data: NodeCreate, actor: ActorContext) -> HierarchyNode:
        """Create a node with path and level derived from its parent."""
        if data.parent_id is None:
            self._require_system(actor, "create root nodes")
        else:
            require_uuid(data.parent_id, "parent_id")
            parent = self.node_repo.get_by_id_optional(data.parent_id)
            if parent is not None:
                self._authorize(actor, parent.path, "manager", "create nodes")

        with unit_of_work(self.db):
            node = self.node_repo.create(
                name=data.name,
                code=data.code,
                parent_id=data.parent_id,
                sort_order=data.sort_order,
                metadata=data.metadata,
                max_depth=settings.max_hierarchy_depth,
            )
            audit_service.log(
                self.db, actor.actor_id, audit_service.NODE_CREATED, "node", node.id,
                {"path": node.path, "level": node.level, "parent_id": node.parent_id},
            )
        self.db.refresh(node)
        return node

    def update_node(self, node_id: str, data: NodeUpdate, actor: ActorContext) -> HierarchyNode:
        node = self.get_node(node_id)
        self._authorize(actor, node.path, "manager", "edit nodes")

        changes: Dict[str, Any] = {}
        with unit_of_work(self.db):
            if data.name is not None and data.name != node.name:
                if self.node_repo.name_taken(node.parent_id, data.name, exclude_id=node.id):
                    raise DuplicateNameError(data.name)
                changes["name"] = {"old": node.name, "new": data.name}
                node.name = data.name
            if data.sort_order is not None and data.sort_order != node.sort_order:
                changes["sort_order"] = {"old": node.sort_order, "new": data.sort_order}
                node.sort_order = data.sort_order
            if data.metadata is not None:
                changes["metadata"] = True
                node.node_metadata = data.metadata
            if changes:
                audit_service.log(
                    self.db, actor.actor_id, audit_service.NODE_UPDATED, "node", node.id,
                    {"path": node.path, "changes": changes},
                )
        self.db.refresh(node)
        return node

    def move_node(self, node_id: str, new_parent_id: Optional[str], actor: ActorContext) -> Dict[str, Any]:
        """Move *node_id* and its whole subtree under *new_parent_id*.

        The node row, destination and subtree are rewritten in one
        transaction together with the grants' denormalized paths.
        """
        require_uuid(node_id, "node_id")
        node = self.get_node(node_id)
        self._authorize(actor, node.path, "manager", "move nodes")
        if new_parent_id is None:
            self._require_system(actor, "move nodes to the root level")
        else:
            require_uuid(new_parent_id, "new_parent_id")
            destination = self.node_repo.get_by_id_optional(new_parent_id)
            if destination is not None:
                self._authorize(actor, destination.path, "manager", "move nodes into this parent")

        with unit_of_work(self.db):
            moved, old_path, rewritten = self.node_repo.move_subtree(
                node_id, new_parent_id, max_depth=settings.max_hierarchy_depth
            )
            if moved.path != old_path:
                audit_service.log(
                    self.db, actor.actor_id, audit_service.NODE_MOVED, "node", moved.id,
                    {
                        "old_path": old_path,
                        "new_path": moved.path,
                        "new_parent_id": new_parent_id,
                        "descendants_rewritten": rewritten,
                    },
                )
        self.db.refresh(moved)
        logger.info(
            "Node moved",
            extra={"node_id": node_id, "old_path": old_path, "new_path": moved.path, "descendants": rewritten},
        )
        return {
            "node": moved,
            "old_path": old_path,
            "new_path": moved.path,
            "moved_descendants": rewritten,
        }

    def delete_node(self, node_id: str, actor: ActorContext, force: bool = False) -> Dict[str, Any]:
        """Soft-delete a node and its subtree.

        Without *force* the node must have no active children and no
        active members anchored at it.
        """
        node = self.get_node(node_id)
        self._authorize(actor, node.path, "admin", "delete nodes")

        with unit_of_work(self.db):
            path = self.node_repo.get_by_id(node.id, for_update=True).path
            if not force:
                child_count = self.node_repo.count_children(node.id)
                member_count = self.user_repo.count_at_node(node.id)
                if child_count or member_count:
                    raise DependentsExistError(node.id, child_count, member_count)
            affected = self.user_repo.members_under(path)
            deleted = self.node_repo.soft_delete_subtree(node.id)
            audit_service.log(
                self.db, actor.actor_id, audit_service.NODE_DELETED, "node", node.id,
                {"path": path, "deleted_count": deleted, "force": force, "affected_users": len(affected)},
            )
        return {
            "node_id": node_id,
            "path": path,
            "deleted_count": deleted,
            "affected_users": len(affected),
            "affected_user_ids": [u.id for u in affected],
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> HierarchyNode:
        require_uuid(node_id, "node_id")
        return self.node_repo.get_by_id(node_id)

    def get_node_by_path(self, path: str) -> Optional[HierarchyNode]:
        return self.node_repo.find_by_path(path)

    def children(self, node_id: Optional[str]) -> List[HierarchyNode]:
        if node_id is not None:
            self.get_node(node_id)
        return self.node_repo.children(node_id)

    def descendants(self, node_id: str, include_self: bool = False) -> List[HierarchyNode]:
        return self.node_repo.descendants(self.get_node(node_id).path, include_self)

    def ancestors(self, node_id: str, include_self: bool = False) -> List[HierarchyNode]:
        return self.node_repo.ancestors(self.get_node(node_id).path, include_self)

    def siblings(self, node_id: str, include_self: bool = False) -> List[HierarchyNode]:
        require_uuid(node_id, "node_id")
        return self.node_repo.siblings(node_id, include_self)

    def leaves(self, node_id: Optional[str] = None) -> List[HierarchyNode]:
        within = self.get_node(node_id).path if node_id else None
        return self.node_repo.leaves(within)

    def at_level(self, level: int, node_id: Optional[str] = None) -> List[HierarchyNode]:
        within = self.get_node(node_id).path if node_id else None
        return self.node_repo.at_level(level, within)

    def get_tree(
        self,
        root_id: Optional[str] = None,
        allowed_paths: Optional[frozenset] = None,
    ) -> List[Dict[str, Any]]:
        """Nested tree of active nodes.

        With *root_id* only that subtree is returned. With *allowed_paths*
        only nodes in that set are kept; a kept node whose parent was
        dropped is promoted to a root.
        """
        if root_id:
            nodes = self.node_repo.descendants(self.get_node(root_id).path, include_self=True)
        else:
            nodes = self.node_repo.find_all()
        if allowed_paths is not None:
            nodes = [n for n in nodes if n.path in allowed_paths]
        return tree.build_tree(nodes)

    def statistics(self) -> Dict[str, Any]:
        return self.node_repo.statistics()

    def validate_integrity(self, actor: ActorContext) -> Dict[str, Any]:
        """Scan the whole tree and report every issue found.

        Each finding is also emitted as an audit event. The tree itself is
        never modified.
        """
        issues = self.node_repo.integrity_report()
        errors = [i for i in issues if i.severity == tree.SEVERITY_ERROR]
        warnings = [i for i in issues if i.severity == tree.SEVERITY_WARNING]

        if issues:
            with unit_of_work(self.db):
                for issue in issues:
                    audit_service.log(
                        self.db, actor.actor_id, audit_service.INTEGRITY_ISSUE, "node",
                        issue.node_id, issue.to_dict(),
                    )
            logger.warning(
                "Hierarchy integrity issues found",
                extra={"errors": len(errors), "warnings": len(warnings)},
            )

        return {
            "is_valid": not errors,
            "error_count": len(errors),
            "warning_count": len(warnings),
            "issues": [i.to_dict() for i in issues],
            "checked_at": utcnow(),
        }
