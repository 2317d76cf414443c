"""Grant model: a direct role assignment for one actor at one node.

Grants are never deleted. Revocation flips ``is_active`` and records who
revoked it and when, so the table doubles as the permission history.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from ..core.clock import as_utc, utcnow
from ..database import Base


class Grant(Base):
    """Role held by ``actor_id`` at ``node_id``.

    ``node_path`` is a denormalized copy of the node's path, rewritten by
    subtree moves. With ``inherit_to_descendants`` the role also applies to
    every current descendant of the node.
    """

    __tablename__ = "grants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    actor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    node_id = Column(String(36), ForeignKey("nodes.id"), nullable=False, index=True)
    node_path = Column(String(1000), nullable=False)
    role = Column(String(20), nullable=False, default="read")
    inherit_to_descendants = Column(Boolean, nullable=False, default=True)
    valid_from = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    granted_by = Column(String(100), nullable=True)
    revoked_by = Column(String(100), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    node = relationship("HierarchyNode", foreign_keys=[node_id])
    actor = relationship("User", back_populates="grants", foreign_keys=[actor_id])

    __table_args__ = (
        # At most one active grant per (actor, node). Concurrent inserts for
        # the same pair lose on this index and surface as DuplicateGrantError.
        Index(
            "uq_grants_active_actor_node",
            "actor_id",
            "node_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
        Index("ix_grants_node_path", "node_path"),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.valid_until is None:
            return False
        return as_utc(self.valid_until) <= (now or utcnow())

    def is_pending(self, now: Optional[datetime] = None) -> bool:
        if self.valid_from is None:
            return False
        return as_utc(self.valid_from) > (now or utcnow())

    def is_current(self, now: Optional[datetime] = None) -> bool:
        """Active, already started and not past its expiry."""
        now = now or utcnow()
        return bool(self.is_active) and not self.is_pending(now) and not self.is_expired(now)
