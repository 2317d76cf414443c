"""Member registration and lookup."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.auth import ActorContext
from ..database import unit_of_work
from ..exceptions import InsufficientPrivilegeError, NodeNotFoundError
from ..models.user import User
from ..repositories.node_repository import NodeRepository
from ..repositories.user_repository import UserRepository
from ..schemas.user import MemberCreate
from . import audit_service
from . import permission_service as ps
from .access_service import AccessService
from .validation import require_uuid

logger = logging.getLogger(__name__)


class MemberService:

    def __init__(self, db: Session):
        self.db = db
        self.user_repo = UserRepository(db)
        self.node_repo = NodeRepository(db)
        self.access = AccessService(db)

    def create_member(self, data: MemberCreate, actor: ActorContext) -> User:
        """Register a member. Needs manager at the member's node, or a system actor."""
        node_path: Optional[str] = None
        if data.base_node_id is not None:
            require_uuid(data.base_node_id, "base_node_id")
            node = self.node_repo.get_by_id_optional(data.base_node_id)
            if node is None:
                raise NodeNotFoundError(data.base_node_id)
            node_path = node.path

        if not actor.is_system:
            role = self.access.effective_role_at(actor.actor_id, node_path) if node_path else None
            if not ps.role_at_least(role, "manager"):
                raise InsufficientPrivilegeError("Manager role required to add members here")

        with unit_of_work(self.db):
            user = self.user_repo.create(data)
            audit_service.log(
                self.db, actor.actor_id, audit_service.MEMBER_CREATED, "member", user.id,
                {"email": user.email, "base_node_id": user.base_node_id},
            )
        self.db.refresh(user)
        return user

    def get_member(self, user_id: str) -> User:
        require_uuid(user_id, "user_id")
        return self.user_repo.get_by_id(user_id)
