"""Access-scope resolution as pure functions.

This is the one place where the rules that turn grants into access are
defined. Everything here works on an immutable snapshot (the actor's
current grants plus the node rows they cover); loading that snapshot is
AccessService's job.

Rules:
    - Roles are ordered: read < manager < admin
    - A grant reaches its own node, and, with inheritance, every strict
      descendant of it
    - The effective role at a path is the highest role among all grants
      that reach it. A narrower grant never masks a broader one.
    - Granting at a path needs manager or admin reaching that path, and
      the granted role may not exceed the granter's own role there
    - An actor can always read their own record
    - No reaching grant = no access
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from ..core import path_codec

ROLE_RANK: dict[str, int] = {
    "read": 1,
    "manager": 2,
    "admin": 3,
}
ROLES: tuple[str, ...] = tuple(sorted(ROLE_RANK, key=ROLE_RANK.get))
GRANTING_ROLES = frozenset({"manager", "admin"})

DIRECT = "direct"
INHERITED = "inherited"
SELF = "self"


def role_rank(role: Optional[str]) -> int:
    """Rank of *role*; 0 for None or unknown roles."""
    return ROLE_RANK.get(role or "", 0)


def max_role(roles: Iterable[str]) -> Optional[str]:
    best: Optional[str] = None
    for role in roles:
        if role_rank(role) > role_rank(best):
            best = role
    return best


def role_at_least(role: Optional[str], minimum: str) -> bool:
    return role_rank(role) >= role_rank(minimum)


@dataclass(frozen=True)
class ScopeGrant:
    """One current grant, flattened with its node's current path."""

    grant_id: str
    node_id: str
    node_path: str
    node_name: str
    role: str
    inherit_to_descendants: bool

    def reaches(self, path: str) -> bool:
        if path == self.node_path:
            return True
        return self.inherit_to_descendants and path_codec.is_ancestor(self.node_path, path)


@dataclass(frozen=True)
class AccessScope:
    """Everything one actor can reach, as of the moment it was computed."""

    actor_id: str
    grants: Tuple[ScopeGrant, ...] = ()
    accessible_paths: frozenset = frozenset()
    accessible_node_ids: frozenset = frozenset()
    total_accessible_users: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.accessible_paths

    def sorted_paths(self) -> List[str]:
        return sorted(self.accessible_paths)


@dataclass(frozen=True)
class AccessCheck:
    """Outcome of a point check. ``can_access=False`` is a normal answer."""

    can_access: bool
    reason: str
    access_level: Optional[str] = None
    effective_role: Optional[str] = None
    accessible_through: Tuple[str, ...] = field(default_factory=tuple)


def empty_scope(actor_id: str) -> AccessScope:
    return AccessScope(actor_id=actor_id)


def compute_scope(
    actor_id: str,
    grants: Iterable[ScopeGrant],
    covered_nodes: Iterable[Tuple[str, str]],
) -> AccessScope:
    """Union every grant's reach into one scope.

    Args:
        actor_id: Whose scope this is.
        grants: The actor's current grants on active nodes.
        covered_nodes: ``(node_id, path)`` for active nodes below any
            inheriting grant. Nodes no grant reaches are ignored.
    """
    grants = tuple(sorted(grants, key=lambda g: g.node_path))
    paths = {g.node_path for g in grants}
    node_ids = {g.node_id for g in grants}

    inheriting = [g for g in grants if g.inherit_to_descendants]
    if inheriting:
        for node_id, path in covered_nodes:
            if any(path_codec.is_ancestor(g.node_path, path) for g in inheriting):
                paths.add(path)
                node_ids.add(node_id)

    return AccessScope(
        actor_id=actor_id,
        grants=grants,
        accessible_paths=frozenset(paths),
        accessible_node_ids=frozenset(node_ids),
    )


def reaching_grants(target_path: str, scope: AccessScope) -> List[ScopeGrant]:
    return [g for g in scope.grants if g.reaches(target_path)]


def is_path_accessible(target_path: str, scope: AccessScope) -> bool:
    """True iff some grant sits on *target_path* or inherits down to it."""
    return any(g.reaches(target_path) for g in scope.grants)


def effective_role(target_path: str, scope: AccessScope) -> Optional[str]:
    """Highest role among every grant that reaches *target_path*."""
    return max_role(g.role for g in reaching_grants(target_path, scope))


def accessible_through(target_path: str, scope: AccessScope) -> List[str]:
    """Grant paths that make *target_path* reachable, root-most first."""
    return sorted({g.node_path for g in reaching_grants(target_path, scope)})


def access_level(target_path: str, scope: AccessScope) -> Optional[str]:
    """``direct`` if a grant sits exactly on the path, else ``inherited``."""
    through = reaching_grants(target_path, scope)
    if not through:
        return None
    if any(g.node_path == target_path for g in through):
        return DIRECT
    return INHERITED


def can_grant(scope: AccessScope, target_path: str, requested_role: str) -> bool:
    """Whether the scope's owner may hand out *requested_role* at *target_path*.

    Only grants that reach the target count: one on the target itself, or
    an inheriting grant on a strict ancestor. The best such role must be
    manager or admin and at least *requested_role*.
    """
    if requested_role not in ROLE_RANK:
        return False
    held = effective_role(target_path, scope)
    if held not in GRANTING_ROLES:
        return False
    return role_rank(held) >= role_rank(requested_role)


def paths_with_minimum_role(scope: AccessScope, minimum: str) -> List[str]:
    """Accessible paths where the effective role is at least *minimum*."""
    return sorted(
        p for p in scope.accessible_paths
        if role_at_least(effective_role(p, scope), minimum)
    )


def check_path(target_path: Optional[str], scope: AccessScope) -> AccessCheck:
    if not target_path:
        return AccessCheck(False, "Target is not attached to any node")
    through = reaching_grants(target_path, scope)
    if not through:
        return AccessCheck(False, "No active grant covers the target's node")
    level = DIRECT if any(g.node_path == target_path for g in through) else INHERITED
    return AccessCheck(
        can_access=True,
        reason=f"Access granted through {len(through)} grant(s)",
        access_level=level,
        effective_role=max_role(g.role for g in through),
        accessible_through=tuple(sorted({g.node_path for g in through})),
    )


def self_access() -> AccessCheck:
    return AccessCheck(
        can_access=True,
        reason="Actors can always read their own record",
        access_level=SELF,
        effective_role="read",
    )
