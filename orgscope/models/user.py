"""User (member) and AuditLog models.

Users are the entities the query layer returns: each belongs to one
hierarchy node, and is visible to an actor whose scope covers that node.
Credentials live in the upstream identity provider, not here.
AuditLog records every state-changing operation for accountability.
"""

import uuid

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.clock import utcnow
from ..database import Base


class User(Base):
    """Organization member and, when acting, the actor whose scope is resolved."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    base_node_id = Column(String(36), ForeignKey("nodes.id"), nullable=True, index=True)
    attributes = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    base_node = relationship("HierarchyNode", foreign_keys=[base_node_id])
    grants = relationship(
        "Grant",
        back_populates="actor",
        foreign_keys="[Grant.actor_id]",
    )


class AuditLog(Base):
    """Immutable record of state-changing operations.

    Written by the service layer inside the same transaction as the change.
    Fields:
        action        -- node.created, node.updated, node.moved, node.deleted,
                         grant.created, grant.revoked, grant.updated,
                         member.created, hierarchy.integrity_issue
        resource_type -- node, grant, member, hierarchy
        resource_id   -- ID of the affected resource
        details       -- JSON string with additional context
    """

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Not a foreign key: system actors have no users row.
    actor_id = Column(String(100), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(255), nullable=True)
    details = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
