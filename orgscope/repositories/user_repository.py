"""Repository for members and the scoped member search."""

from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Query

from ..core import path_codec
from ..exceptions import ActorNotFoundError, DuplicateEmailError
from ..models.node import HierarchyNode
from ..models.user import User
from ..schemas.query import UserQueryFilters
from ..schemas.user import MemberCreate
from .base import BaseRepository

_SORT_COLUMNS = {
    "name": User.full_name,
    "email": User.email,
    "node_path": HierarchyNode.path,
    "created_at": User.created_at,
}


class UserRepository(BaseRepository[User]):
    """Data access layer for members."""

    model_class = User
    not_found_error = ActorNotFoundError

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.lower()).first()

    def create(self, data: MemberCreate) -> User:
        if self.find_by_email(data.email):
            raise DuplicateEmailError(data.email)
        user = User(
            email=data.email,
            full_name=data.full_name,
            base_node_id=data.base_node_id,
            attributes=data.attributes,
            is_active=data.is_active,
        )
        return self.add(user)

    def _with_node(self) -> Query:
        return (
            self.db.query(User, HierarchyNode)
            .join(HierarchyNode, User.base_node_id == HierarchyNode.id)
            .filter(HierarchyNode.is_active.is_(True))
        )

    def count_in_paths(self, paths: List[str]) -> int:
        """Active members anchored at any of *paths*."""
        if not paths:
            return 0
        return (
            self._with_node()
            .filter(HierarchyNode.path.in_(paths), User.is_active.is_(True))
            .with_entities(func.count(User.id))
            .scalar()
        ) or 0

    def members_under(self, path: str) -> List[User]:
        """Active members anchored at *path* or anywhere below it."""
        rows = (
            self._with_node()
            .filter(
                or_(
                    HierarchyNode.path == path,
                    HierarchyNode.path.startswith(path_codec.subtree_prefix(path), autoescape=True),
                ),
                User.is_active.is_(True),
            )
            .all()
        )
        return [user for user, _ in rows]

    def count_at_node(self, node_id: str) -> int:
        return (
            self.db.query(User)
            .filter(User.base_node_id == node_id, User.is_active.is_(True))
            .count()
        )

    # ------------------------------------------------------------------
    # Scoped search
    # ------------------------------------------------------------------

    def _scoped(
        self,
        allowed_paths: List[str],
        filters: UserQueryFilters,
        node_path: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> Query:
        """Members whose node path is in *allowed_paths*, narrowed by *filters*.

        An empty *allowed_paths* matches nothing.
        """
        if not allowed_paths:
            return self._with_node().filter(User.id.is_(None))

        query = self._with_node().filter(HierarchyNode.path.in_(allowed_paths))

        if filters.search:
            term = filters.search
            query = query.filter(or_(
                User.full_name.icontains(term, autoescape=True),
                User.email.icontains(term, autoescape=True),
                HierarchyNode.name.icontains(term, autoescape=True),
            ))
        if filters.is_active is not None:
            query = query.filter(User.is_active.is_(filters.is_active))
        if node_path is not None:
            if filters.include_descendants:
                query = query.filter(or_(
                    HierarchyNode.path == node_path,
                    HierarchyNode.path.startswith(path_codec.subtree_prefix(node_path), autoescape=True),
                ))
            else:
                query = query.filter(HierarchyNode.path == node_path)
        if filters.levels:
            query = query.filter(HierarchyNode.level.in_(filters.levels))
        if filters.created_after:
            query = query.filter(User.created_at >= filters.created_after)
        if filters.created_before:
            query = query.filter(User.created_at <= filters.created_before)
        if filters.last_login_after:
            query = query.filter(User.last_login_at >= filters.last_login_after)
        if filters.last_login_before:
            query = query.filter(User.last_login_at <= filters.last_login_before)
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        return query

    def search(
        self,
        allowed_paths: List[str],
        filters: UserQueryFilters,
        limit: int,
        offset: int,
        node_path: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> Tuple[List[Tuple[User, HierarchyNode]], int, Dict[str, int]]:
        """Return ``(page_rows, total, counts_by_node_path)``."""
        query = self._scoped(allowed_paths, filters, node_path, exclude_id)

        counts = dict(
            query.with_entities(HierarchyNode.path, func.count(User.id))
            .group_by(HierarchyNode.path)
            .all()
        )
        total = sum(counts.values())

        column = _SORT_COLUMNS[filters.sort_by]
        ordering = column.desc() if filters.sort_order == "desc" else column.asc()
        rows = query.order_by(ordering, User.id).offset(offset).limit(limit).all()
        return [(user, node) for user, node in rows], total, counts

    def autocomplete(self, allowed_paths: List[str], term: str, limit: int) -> List[Tuple[User, HierarchyNode]]:
        if not allowed_paths:
            return []
        rows = (
            self._with_node()
            .filter(
                HierarchyNode.path.in_(allowed_paths),
                User.is_active.is_(True),
                or_(
                    User.full_name.icontains(term, autoescape=True),
                    User.email.icontains(term, autoescape=True),
                ),
            )
            .order_by(User.full_name)
            .limit(limit)
            .all()
        )
        return [(user, node) for user, node in rows]
