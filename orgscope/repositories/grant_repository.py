"""Repository for grants: the persisted half of every access decision."""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query

from ..core.clock import as_utc, utcnow
from ..exceptions import (
    AlreadyInactiveError,
    DuplicateGrantError,
    GrantNotFoundError,
    InvalidExpiryError,
)
from ..models.grant import Grant
from ..models.node import HierarchyNode
from .base import BaseRepository

logger = logging.getLogger(__name__)


class GrantRepository(BaseRepository[Grant]):
    """Data access layer for grants.

    "Unexpired" below means ``is_active`` and not past ``valid_until``;
    "current" additionally requires ``valid_from`` to have passed. An
    expired grant keeps ``is_active`` until it is revoked or replaced, so
    history queries can tell "expired" from "revoked".
    """

    model_class = Grant
    not_found_error = GrantNotFoundError

    @staticmethod
    def _unexpired(now: datetime):
        return and_(
            Grant.is_active.is_(True),
            or_(Grant.valid_until.is_(None), Grant.valid_until > now),
        )

    @classmethod
    def _current(cls, now: datetime):
        return and_(cls._unexpired(now), Grant.valid_from <= now)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_active_for_pair(self, actor_id: str, node_id: str) -> Optional[Grant]:
        """The row holding the active slot for (actor, node), expired or not."""
        return (
            self.db.query(Grant)
            .filter(Grant.actor_id == actor_id, Grant.node_id == node_id, Grant.is_active.is_(True))
            .first()
        )

    def find_by_actor(self, actor_id: str, include_expired: bool = False) -> List[Grant]:
        """Unexpired grants for *actor_id*, or the full history with *include_expired*.

        Grants whose ``valid_from`` is still ahead are listed too.
        """
        query = self.db.query(Grant).filter(Grant.actor_id == actor_id)
        if not include_expired:
            query = query.filter(self._unexpired(utcnow()))
        return query.order_by(Grant.node_path, Grant.created_at.desc()).all()

    def find_by_node(self, node_id: str, include_inactive: bool = False) -> List[Grant]:
        query = self.db.query(Grant).filter(Grant.node_id == node_id)
        if not include_inactive:
            query = query.filter(self._unexpired(utcnow()))
        return query.order_by(Grant.created_at).all()

    def find_active_by_actor_with_node_info(self, actor_id: str) -> List[Tuple[Grant, HierarchyNode]]:
        """Current grants joined to their nodes, skipping soft-deleted nodes.

        The node's own path is authoritative; ``Grant.node_path`` is only a
        denormalized copy.
        """
        rows: Query = (
            self.db.query(Grant, HierarchyNode)
            .join(HierarchyNode, Grant.node_id == HierarchyNode.id)
            .filter(self._current(utcnow()), HierarchyNode.is_active.is_(True))
            .filter(Grant.actor_id == actor_id)
            .order_by(HierarchyNode.path)
        )
        return [(grant, node) for grant, node in rows.all()]

    # ------------------------------------------------------------------
    # Writes (flush only; the caller commits)
    # ------------------------------------------------------------------

    def create(
        self,
        actor_id: str,
        node: HierarchyNode,
        role: str,
        inherit_to_descendants: bool = True,
        valid_from: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
        granted_by: Optional[str] = None,
    ) -> Grant:
        """Insert a grant. Raises InvalidExpiryError or DuplicateGrantError.

        A row that still holds the active slot but has expired is retired
        first, so re-granting after expiry does not need an explicit revoke.
        """
        now = utcnow()
        valid_until = as_utc(valid_until)
        if valid_until is not None and valid_until <= now:
            raise InvalidExpiryError()
        valid_from = as_utc(valid_from) or now
        if valid_until is not None and valid_until <= valid_from:
            raise InvalidExpiryError("valid_until must be after valid_from")

        existing = self.find_active_for_pair(actor_id, node.id)
        if existing is not None:
            if not existing.is_expired(now):
                raise DuplicateGrantError(actor_id, node.id)
            self._retire(existing, granted_by, now)
            logger.info(
                "Retired expired grant before re-grant",
                extra={"grant_id": existing.id, "actor_id": actor_id, "node_id": node.id},
            )

        grant = Grant(
            actor_id=actor_id,
            node_id=node.id,
            node_path=node.path,
            role=role,
            inherit_to_descendants=inherit_to_descendants,
            valid_from=valid_from,
            valid_until=valid_until,
            granted_by=granted_by,
        )
        try:
            return self.add(grant)
        except IntegrityError as e:
            # Lost a race with a concurrent grant for the same pair.
            raise DuplicateGrantError(actor_id, node.id) from e

    def revoke(self, grant: Grant, revoked_by: Optional[str]) -> Grant:
        if not grant.is_active:
            raise AlreadyInactiveError(grant.id)
        self._retire(grant, revoked_by, utcnow())
        return grant

    def update(
        self,
        grant: Grant,
        role: Optional[str] = None,
        inherit_to_descendants: Optional[bool] = None,
        valid_until: Optional[datetime] = None,
        clear_expiry: bool = False,
    ) -> Grant:
        """Apply the given changes. The expiry is checked before anything is set.

        A new ``valid_until`` must be in the future and after the grant's
        ``valid_from``, the same window ``create`` enforces.
        """
        if not grant.is_active:
            raise AlreadyInactiveError(grant.id)

        if not clear_expiry and valid_until is not None:
            valid_until = as_utc(valid_until)
            if valid_until <= utcnow():
                raise InvalidExpiryError()
            valid_from = as_utc(grant.valid_from)
            if valid_from is not None and valid_until <= valid_from:
                raise InvalidExpiryError("valid_until must be after valid_from")

        if role is not None:
            grant.role = role
        if inherit_to_descendants is not None:
            grant.inherit_to_descendants = inherit_to_descendants
        if clear_expiry:
            grant.valid_until = None
        elif valid_until is not None:
            grant.valid_until = valid_until

        self.db.flush()
        return grant

    def _retire(self, grant: Grant, by: Optional[str], now: datetime) -> None:
        grant.is_active = False
        grant.revoked_at = now
        grant.revoked_by = by
        self.db.flush()
