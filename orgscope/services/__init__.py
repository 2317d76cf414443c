"""Business logic services."""

from .access_service import AccessService
from .grant_service import GrantService
from .hierarchy_service import HierarchyService
from .member_service import MemberService
from .query_service import QueryService

__all__ = ["AccessService", "GrantService", "HierarchyService", "MemberService", "QueryService"]
