"""Grant lifecycle: authorize, write, audit.

A non-system actor may only hand out roles inside what they already control:
they need manager or admin reaching the target node, and cannot grant a role
above their own there. Holders may always give up their own grant; anyone
else revoking must be its creator or able to create it themselves.
"""

import logging
from typing import List

from sqlalchemy.orm import Session

from ..core.auth import ActorContext
from ..database import unit_of_work
from ..exceptions import (
    ActorNotFoundError,
    AlreadyInactiveError,
    InsufficientPrivilegeError,
    NodeNotFoundError,
)
from ..models.grant import Grant
from ..repositories.grant_repository import GrantRepository
from ..repositories.node_repository import NodeRepository
from ..repositories.user_repository import UserRepository
from ..schemas.grant import GrantCreate, GrantUpdate
from . import audit_service
from .access_service import AccessService
from .validation import require_uuid

logger = logging.getLogger(__name__)


class GrantService:
    """Grant, revoke and update with authorization and audit."""

    def __init__(self, db: Session):
        self.db = db
        self.grant_repo = GrantRepository(db)
        self.node_repo = NodeRepository(db)
        self.user_repo = UserRepository(db)
        self.access = AccessService(db)

    def _require_can_grant(self, actor: ActorContext, node_path: str, role: str) -> None:
        if actor.is_system:
            return
        if not self.access.can_grant(actor.actor_id, node_path, role):
            logger.info(
                "Grant authorization denied",
                extra={"actor_id": actor.actor_id, "path": node_path, "requested_role": role},
            )
            raise InsufficientPrivilegeError(
                "Insufficient privileges to grant this role on this node",
                details={"requested_role": role},
            )

    def grant(self, data: GrantCreate, actor: ActorContext) -> Grant:
        """Create a grant after checking the granter controls the target."""
        require_uuid(data.actor_id, "actor_id")
        require_uuid(data.node_id, "node_id")

        node = self.node_repo.get_by_id_optional(data.node_id)
        if node is None:
            raise NodeNotFoundError(data.node_id)
        grantee = self.user_repo.get_by_id_optional(data.actor_id)
        if grantee is None or not grantee.is_active:
            raise ActorNotFoundError(data.actor_id)

        self._require_can_grant(actor, node.path, data.role)

        with unit_of_work(self.db):
            grant = self.grant_repo.create(
                actor_id=data.actor_id,
                node=node,
                role=data.role,
                inherit_to_descendants=data.inherit_to_descendants,
                valid_from=data.valid_from,
                valid_until=data.valid_until,
                granted_by=actor.actor_id,
            )
            audit_service.log(
                self.db, actor.actor_id, audit_service.GRANT_CREATED, "grant", grant.id,
                {
                    "actor_id": data.actor_id,
                    "node_id": node.id,
                    "node_path": node.path,
                    "role": data.role,
                    "inherit_to_descendants": data.inherit_to_descendants,
                    "valid_until": data.valid_until,
                },
            )
        self.db.refresh(grant)
        return grant

    def revoke(self, grant_id: str, actor: ActorContext) -> Grant:
        require_uuid(grant_id, "grant_id")
        grant = self.grant_repo.get_by_id(grant_id)
        if not grant.is_active:
            raise AlreadyInactiveError(grant.id)
        if actor.actor_id not in (grant.actor_id, grant.granted_by):
            self._require_can_grant(actor, grant.node_path, grant.role)

        with unit_of_work(self.db):
            self.grant_repo.revoke(grant, revoked_by=actor.actor_id)
            audit_service.log(
                self.db, actor.actor_id, audit_service.GRANT_REVOKED, "grant", grant.id,
                {"actor_id": grant.actor_id, "node_path": grant.node_path, "role": grant.role},
            )
        self.db.refresh(grant)
        return grant

    def update(self, grant_id: str, data: GrantUpdate, actor: ActorContext) -> Grant:
        """Change role, inheritance or expiry.

        The actor must be able to grant the current role, and the new one
        when it changes.
        """
        require_uuid(grant_id, "grant_id")
        grant = self.grant_repo.get_by_id(grant_id)
        if not grant.is_active:
            raise AlreadyInactiveError(grant.id)

        self._require_can_grant(actor, grant.node_path, grant.role)
        if data.role is not None and data.role != grant.role:
            self._require_can_grant(actor, grant.node_path, data.role)

        before = {
            "role": grant.role,
            "inherit_to_descendants": grant.inherit_to_descendants,
            "valid_until": grant.valid_until,
        }
        with unit_of_work(self.db):
            self.grant_repo.update(
                grant,
                role=data.role,
                inherit_to_descendants=data.inherit_to_descendants,
                valid_until=data.valid_until,
                clear_expiry=data.clear_expiry,
            )
            audit_service.log(
                self.db, actor.actor_id, audit_service.GRANT_UPDATED, "grant", grant.id,
                {
                    "before": before,
                    "after": {
                        "role": grant.role,
                        "inherit_to_descendants": grant.inherit_to_descendants,
                        "valid_until": grant.valid_until,
                    },
                },
            )
        self.db.refresh(grant)
        return grant

    def get(self, grant_id: str, actor: ActorContext) -> Grant:
        """A single grant, visible to its holder and to anyone who can reach them."""
        require_uuid(grant_id, "grant_id")
        grant = self.grant_repo.get_by_id(grant_id)
        if not (actor.is_system or actor.actor_id == grant.actor_id):
            if not self.access.can_access_user(actor.actor_id, grant.actor_id).can_access:
                raise InsufficientPrivilegeError("Grant holder is outside your access scope")
        return grant

    def list_for_actor(self, actor_id: str, include_expired: bool = False) -> List[Grant]:
        return self.grant_repo.find_by_actor(actor_id, include_expired=include_expired)

    def list_for_node(self, node_id: str, actor: ActorContext, include_inactive: bool = False) -> List[Grant]:
        require_uuid(node_id, "node_id")
        self.node_repo.get_by_id(node_id)
        if not actor.is_system and not self.access.can_access_node(actor.actor_id, node_id).can_access:
            raise InsufficientPrivilegeError("Node is outside your access scope")
        return self.grant_repo.find_by_node(node_id, include_inactive=include_inactive)

    def can_grant(self, actor: ActorContext, node_id: str, role: str) -> dict:
        require_uuid(node_id, "node_id")
        node = self.node_repo.get_by_id(node_id)
        allowed = actor.is_system or self.access.can_grant(actor.actor_id, node.path, role)
        return {"can_grant": allowed, "node_path": node.path, "requested_role": role}
