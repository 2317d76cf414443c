"""Scoped member queries: "list everything I may see".

The requester's scope is resolved first; every filter then narrows it in
SQL. Nothing a filter does can reach a member outside the scope. Each row
comes back annotated with how it was reached.
"""

import logging
import math
import time
from collections import Counter
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.auth import ActorContext
from ..core.clock import as_utc
from ..core.config import settings
from ..exceptions import ValidationError
from ..repositories.node_repository import NodeRepository
from ..repositories.user_repository import UserRepository
from ..schemas.query import UserQueryFilters
from . import permission_service as ps
from .access_service import AccessService
from .validation import require_uuid

logger = logging.getLogger(__name__)

AUTOCOMPLETE_MIN_TERM = 2
AUTOCOMPLETE_MAX_LIMIT = 20
BULK_CHECK_MAX = 100


class QueryService:
    """Member search and bulk access checks within an actor's scope."""

    def __init__(self, db: Session):
        self.db = db
        self.access = AccessService(db)
        self.user_repo = UserRepository(db)
        self.node_repo = NodeRepository(db)

    def _page_size(self, requested: Optional[int]) -> int:
        if requested is None:
            return min(settings.default_page_size, settings.max_page_size)
        return max(1, min(requested, settings.max_page_size))

    def query_accessible_users(self, actor: ActorContext, filters: UserQueryFilters) -> Dict[str, Any]:
        """One page of members inside *actor*'s scope, with provenance."""
        started = time.monotonic()
        scope = self.access.compute_scope(actor.actor_id)

        allowed = scope.sorted_paths()
        if filters.require_minimum_role:
            allowed = ps.paths_with_minimum_role(scope, filters.require_minimum_role)

        node_path = None
        if filters.node_id:
            require_uuid(filters.node_id, "node_id")
            node_path = self.node_repo.get_by_id(filters.node_id).path

        filters = filters.model_copy(update={
            "created_after": as_utc(filters.created_after),
            "created_before": as_utc(filters.created_before),
            "last_login_after": as_utc(filters.last_login_after),
            "last_login_before": as_utc(filters.last_login_before),
        })

        limit = self._page_size(filters.limit)
        offset = (filters.page - 1) * limit
        rows, total, counts_by_path = self.user_repo.search(
            allowed,
            filters,
            limit=limit,
            offset=offset,
            node_path=node_path,
            exclude_id=actor.actor_id if filters.exclude_self else None,
        )

        users = [self._annotate(user, node, scope) for user, node in rows]
        total_pages = math.ceil(total / limit) if total else 0
        elapsed_ms = round((time.monotonic() - started) * 1000, 1)

        logger.info(
            "Scoped user query",
            extra={
                "actor_id": actor.actor_id,
                "scope_paths": len(scope.accessible_paths),
                "total": total,
                "page": filters.page,
                "duration_ms": elapsed_ms,
            },
        )
        return {
            "users": users,
            "total": total,
            "page": filters.page,
            "limit": limit,
            "total_pages": total_pages,
            "has_next": filters.page < total_pages,
            "has_previous": filters.page > 1,
            "analytics": self._analytics(counts_by_path, scope),
            "requestor_context": {
                "actor_id": actor.actor_id,
                "accessible_node_count": len(scope.accessible_node_ids),
                "total_accessible_users": scope.total_accessible_users,
                "execution_time_ms": elapsed_ms,
            },
        }

    @staticmethod
    def _annotate(user, node, scope: ps.AccessScope) -> Dict[str, Any]:
        return {
            "id": user.id,
            "email": user.email,
            "full_name": user.full_name,
            "is_active": user.is_active,
            "base_node_id": user.base_node_id,
            "node_path": node.path,
            "node_name": node.name,
            "node_level": node.level,
            "created_at": user.created_at,
            "last_login_at": user.last_login_at,
            "access_level": ps.access_level(node.path, scope),
            "accessible_through": ps.accessible_through(node.path, scope),
            "effective_role": ps.effective_role(node.path, scope),
        }

    @staticmethod
    def _analytics(counts_by_path: Dict[str, int], scope: ps.AccessScope) -> Dict[str, Dict[str, int]]:
        """Breakdown of the whole filtered result set, not just this page."""
        by_level: Counter = Counter()
        by_role: Counter = Counter()
        for path, count in counts_by_path.items():
            by_level[ps.access_level(path, scope)] += count
            by_role[ps.effective_role(path, scope)] += count
        return {
            "by_node": dict(sorted(counts_by_path.items())),
            "by_access_level": dict(by_level),
            "by_effective_role": dict(by_role),
        }

    def autocomplete(self, actor: ActorContext, term: str, limit: int = 10) -> List[Dict[str, Any]]:
        term = (term or "").strip()
        if len(term) < AUTOCOMPLETE_MIN_TERM:
            raise ValidationError(
                f"Search term must be at least {AUTOCOMPLETE_MIN_TERM} characters", field="q"
            )
        limit = max(1, min(limit, AUTOCOMPLETE_MAX_LIMIT))
        scope = self.access.compute_scope(actor.actor_id, count_users=False)
        rows = self.user_repo.autocomplete(scope.sorted_paths(), term, limit)
        return [
            {"id": u.id, "full_name": u.full_name, "email": u.email, "node_path": n.path}
            for u, n in rows
        ]

    def bulk_check(self, actor: ActorContext, user_ids: List[str]) -> Dict[str, Any]:
        """Point-check many members against one scope computation."""
        if len(user_ids) > BULK_CHECK_MAX:
            raise ValidationError(f"At most {BULK_CHECK_MAX} user ids per request", field="user_ids")
        scope = self.access.compute_scope(actor.actor_id, count_users=False)
        results = {}
        for user_id in dict.fromkeys(user_ids):
            check = self.access.can_access_user(actor.actor_id, user_id, scope=scope)
            results[user_id] = {
                "can_access": check.can_access,
                "access_level": check.access_level,
                "effective_role": check.effective_role,
                "accessible_through": list(check.accessible_through),
                "reason": check.reason,
            }
        accessible = sum(1 for r in results.values() if r["can_access"])
        return {
            "results": results,
            "accessible_count": accessible,
            "denied_count": len(results) - accessible,
        }
