"""Repository for hierarchy nodes: tree lookups and subtree rewrites.

Every read hides soft-deleted rows. Writes flush but never commit; the
service layer owns the transaction boundary so that a subtree move and its
audit entry land in the same commit.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Query

from ..core import path_codec, tree
from ..exceptions import (
    CircularMoveError,
    DepthLimitError,
    DuplicateCodeError,
    NodeNotFoundError,
    ParentNotFoundError,
)
from ..models.grant import Grant
from ..models.node import HierarchyNode
from .base import BaseRepository

logger = logging.getLogger(__name__)


class NodeRepository(BaseRepository[HierarchyNode]):
    """Data access layer for the org tree."""

    model_class = HierarchyNode
    not_found_error = NodeNotFoundError

    def _base_query(self) -> Query:
        return self.db.query(HierarchyNode).filter(HierarchyNode.is_active.is_(True))

    @staticmethod
    def _ordered(query: Query) -> Query:
        return query.order_by(HierarchyNode.sort_order, HierarchyNode.name)

    @staticmethod
    def _under(path: str, include_self: bool = False):
        """Filter for strict descendants of *path* (plus *path* itself if asked).

        ``autoescape`` matters: ``_`` is a legal code character and a LIKE
        wildcard.
        """
        clause = HierarchyNode.path.startswith(path_codec.subtree_prefix(path), autoescape=True)
        if include_self:
            return or_(HierarchyNode.path == path, clause)
        return clause

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_path(self, path: str) -> Optional[HierarchyNode]:
        return self._base_query().filter(HierarchyNode.path == path).first()

    def find_all(self, include_inactive: bool = False) -> List[HierarchyNode]:
        query = self.db.query(HierarchyNode) if include_inactive else self._base_query()
        return query.order_by(HierarchyNode.level, HierarchyNode.sort_order, HierarchyNode.name).all()

    def children(self, parent_id: Optional[str]) -> List[HierarchyNode]:
        """Direct children of *parent_id*; roots when it is None."""
        if parent_id is None:
            query = self._base_query().filter(HierarchyNode.parent_id.is_(None))
        else:
            query = self._base_query().filter(HierarchyNode.parent_id == parent_id)
        return self._ordered(query).all()

    def roots(self) -> List[HierarchyNode]:
        return self.children(None)

    def descendants(self, path: str, include_self: bool = False) -> List[HierarchyNode]:
        """Active nodes below *path*, shallowest first."""
        return (
            self._base_query()
            .filter(self._under(path, include_self))
            .order_by(HierarchyNode.level, HierarchyNode.sort_order, HierarchyNode.name)
            .all()
        )

    def descendants_of_any(self, paths: List[str]) -> List[HierarchyNode]:
        """Active strict descendants of any of *paths*, in one query."""
        if not paths:
            return []
        return (
            self._base_query()
            .filter(or_(*[self._under(p) for p in paths]))
            .all()
        )

    def ancestors(self, path: str, include_self: bool = False) -> List[HierarchyNode]:
        """Active ancestors of *path*, root first."""
        wanted = path_codec.ancestor_paths(path)
        if include_self:
            wanted.append(path)
        if not wanted:
            return []
        return (
            self._base_query()
            .filter(HierarchyNode.path.in_(wanted))
            .order_by(HierarchyNode.level)
            .all()
        )

    def siblings(self, node_id: str, include_self: bool = False) -> List[HierarchyNode]:
        node = self.get_by_id(node_id)
        query = self._base_query()
        if node.parent_id is None:
            query = query.filter(HierarchyNode.parent_id.is_(None))
        else:
            query = query.filter(HierarchyNode.parent_id == node.parent_id)
        if not include_self:
            query = query.filter(HierarchyNode.id != node.id)
        return self._ordered(query).all()

    def leaves(self, within_path: Optional[str] = None) -> List[HierarchyNode]:
        has_child = select(HierarchyNode.parent_id).where(
            HierarchyNode.parent_id.isnot(None), HierarchyNode.is_active.is_(True)
        )
        query = self._base_query().filter(HierarchyNode.id.notin_(has_child))
        if within_path:
            query = query.filter(self._under(within_path, include_self=True))
        return query.order_by(HierarchyNode.path).all()

    def at_level(self, level: int, within_path: Optional[str] = None) -> List[HierarchyNode]:
        query = self._base_query().filter(HierarchyNode.level == level)
        if within_path:
            query = query.filter(self._under(within_path, include_self=True))
        return self._ordered(query).all()

    def count_children(self, node_id: str) -> int:
        return self._base_query().filter(HierarchyNode.parent_id == node_id).count()

    def code_taken(self, parent_path: Optional[str], code: str, exclude_id: Optional[str] = None) -> bool:
        """True if an active sibling under *parent_path* already uses *code*."""
        query = self._base_query().filter(HierarchyNode.path == path_codec.derive(parent_path, code))
        if exclude_id:
            query = query.filter(HierarchyNode.id != exclude_id)
        return self.db.query(query.exists()).scalar()

    def name_taken(self, parent_id: Optional[str], name: str, exclude_id: Optional[str] = None) -> bool:
        query = self._base_query().filter(func.lower(HierarchyNode.name) == name.lower())
        if parent_id is None:
            query = query.filter(HierarchyNode.parent_id.is_(None))
        else:
            query = query.filter(HierarchyNode.parent_id == parent_id)
        if exclude_id:
            query = query.filter(HierarchyNode.id != exclude_id)
        return self.db.query(query.exists()).scalar()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        code: str,
        parent_id: Optional[str] = None,
        sort_order: int = 0,
        metadata: Optional[Dict[str, Any]] = None,
        max_depth: Optional[int] = None,
    ) -> HierarchyNode:
        """Insert a node under *parent_id* with path and level derived from it.

        The parent row is locked so a concurrent move of the parent cannot
        leave the new child with a stale path. Raises ParentNotFoundError,
        DuplicateCodeError, InvalidCodeError or DepthLimitError.
        """
        parent = None
        if parent_id is not None:
            parent = self.get_by_id_optional(parent_id, for_update=True)
            if parent is None:
                raise ParentNotFoundError(parent_id)

        parent_path = parent.path if parent else None
        path = path_codec.derive(parent_path, code)
        level = parent.level + 1 if parent else 0
        if max_depth is not None and level > max_depth:
            raise DepthLimitError(level, max_depth)
        if self.code_taken(parent_path, code):
            raise DuplicateCodeError(code, parent_path)

        node = HierarchyNode(
            name=name,
            code=code,
            path=path,
            level=level,
            parent_id=parent.id if parent else None,
            sort_order=sort_order,
            node_metadata=metadata or {},
        )
        return self.add(node)

    def move_subtree(
        self,
        node_id: str,
        new_parent_id: Optional[str],
        max_depth: Optional[int] = None,
    ) -> Tuple[HierarchyNode, str, int]:
        """Re-parent *node_id* and rewrite every active descendant.

        Returns ``(node, old_path, rewritten_count)``. The node, the new
        parent and the whole subtree are read with row locks, so a second
        overlapping move waits for this transaction and then sees the
        rewritten paths. Nothing is committed here.
        """
        node = self.get_by_id(node_id, for_update=True)

        new_parent = None
        if new_parent_id is not None:
            if new_parent_id == node.id:
                raise CircularMoveError(node_id, new_parent_id)
            new_parent = self.get_by_id_optional(new_parent_id, for_update=True)
            if new_parent is None:
                raise ParentNotFoundError(new_parent_id)
            if path_codec.is_descendant(new_parent.path, node.path):
                raise CircularMoveError(node_id, new_parent_id)

        if node.parent_id == new_parent_id:
            return node, node.path, 0

        new_parent_path = new_parent.path if new_parent else None
        if self.code_taken(new_parent_path, node.code, exclude_id=node.id):
            raise DuplicateCodeError(node.code, new_parent_path)

        old_path = node.path
        new_path = path_codec.derive(new_parent_path, node.code)
        new_level = new_parent.level + 1 if new_parent else 0
        delta = new_level - node.level

        subtree = (
            self._base_query()
            .filter(self._under(old_path))
            .with_for_update()
            .populate_existing()
            .all()
        )

        if max_depth is not None:
            deepest = max([node.level] + [d.level for d in subtree]) + delta
            if deepest > max_depth:
                raise DepthLimitError(deepest, max_depth)

        node.parent_id = new_parent.id if new_parent else None
        node.path = new_path
        node.level = new_level
        for descendant in subtree:
            descendant.path = path_codec.rebase(descendant.path, old_path, new_path)
            descendant.level = descendant.level + delta

        moved_ids = [node.id] + [d.id for d in subtree]
        paths_by_id = {node.id: node.path}
        paths_by_id.update({d.id: d.path for d in subtree})
        grants = self.db.query(Grant).filter(Grant.node_id.in_(moved_ids)).all()
        for grant in grants:
            grant.node_path = paths_by_id[grant.node_id]

        self.db.flush()
        logger.debug(
            "Subtree rewritten",
            extra={"old_path": old_path, "new_path": new_path, "nodes": len(moved_ids), "grants": len(grants)},
        )
        return node, old_path, len(subtree)

    def soft_delete_subtree(self, node_id: str) -> int:
        """Deactivate *node_id* and every active descendant. Returns the count.

        Sibling sort_order values are left as they are.
        """
        node = self.get_by_id(node_id, for_update=True)
        subtree = self._base_query().filter(self._under(node.path)).with_for_update().populate_existing().all()
        for row in [node] + subtree:
            row.is_active = False
        self.db.flush()
        return 1 + len(subtree)

    # ------------------------------------------------------------------
    # Whole-tree reports
    # ------------------------------------------------------------------

    def integrity_report(self) -> List[tree.IntegrityIssue]:
        return tree.find_integrity_issues(self.db.query(HierarchyNode).all())

    def statistics(self) -> Dict[str, Any]:
        return tree.statistics(self._base_query().all())
