"""Data access repositories."""

from .base import BaseRepository
from .node_repository import NodeRepository
from .grant_repository import GrantRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "NodeRepository",
    "GrantRepository",
    "UserRepository",
]
