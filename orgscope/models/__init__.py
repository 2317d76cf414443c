"""Database models."""

from .node import HierarchyNode
from .grant import Grant
from .user import User, AuditLog

__all__ = ["HierarchyNode", "Grant", "User", "AuditLog"]
