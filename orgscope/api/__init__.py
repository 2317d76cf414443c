"""API routes."""

from .nodes import router as nodes_router
from .grants import router as grants_router
from .access import router as access_router
from .users import router as users_router, audit_router

__all__ = [
    "nodes_router",
    "grants_router",
    "access_router",
    "users_router",
    "audit_router",
]
