"""HierarchyNode model: one element of the organizational tree.

The tree is stored as a materialized path (``org.eng.backend``) plus an
explicit ``parent_id`` and ``level``. The path is what every access check
compares against; ``parent_id`` and ``level`` are kept alongside it so the
integrity report can detect drift between the three.
"""

import uuid

from sqlalchemy import Column, String, DateTime, Boolean, Integer, ForeignKey, Index, JSON, text
from sqlalchemy.orm import relationship

from ..core.clock import utcnow
from ..database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class HierarchyNode(Base):
    """Org-chart node.

    Invariants maintained by HierarchyService:
        path  == parent.path + "." + code   (or code for a root)
        level == parent.level + 1           (or 0 for a root)
        path is unique among active nodes, so code is unique among active siblings
    """

    __tablename__ = "nodes"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    code = Column(String(50), nullable=False)
    path = Column(String(1000), nullable=False)
    level = Column(Integer, nullable=False, default=0)
    parent_id = Column(String(36), ForeignKey("nodes.id"), nullable=True, index=True)
    sort_order = Column(Integer, nullable=False, default=0)
    # "metadata" is reserved on declarative classes.
    node_metadata = Column("metadata", JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    parent = relationship("HierarchyNode", remote_side=[id], foreign_keys=[parent_id])

    __table_args__ = (
        Index(
            "uq_nodes_active_path",
            "path",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
        Index("ix_nodes_path", "path"),
        Index("ix_nodes_level", "level"),
    )

    def __repr__(self) -> str:
        return f"<HierarchyNode {self.path} active={self.is_active}>"
