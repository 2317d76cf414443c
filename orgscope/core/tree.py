"""Whole-tree computations over a snapshot of node rows.

Everything here is a pure function over a list of objects exposing the node
columns (``id``, ``parent_id``, ``code``, ``path``, ``level``, ``name``,
``sort_order``, ``is_active``). The repository loads the rows; these
functions never touch the session.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Optional

from . import path_codec

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

ORPHANED = "orphaned"
LEVEL_MISMATCH = "level_mismatch"
PATH_MISMATCH = "path_mismatch"
DUPLICATE_PATH = "duplicate_path"
CYCLE = "cycle"


@dataclass(frozen=True)
class IntegrityIssue:
    node_id: str
    path: str
    issue_type: str
    severity: str
    message: str
    expected: Optional[str] = None
    actual: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _walks_into_cycle(node, by_id: Dict[str, Any]) -> bool:
    seen = {node.id}
    current = node
    while current.parent_id is not None:
        if current.parent_id in seen:
            return True
        seen.add(current.parent_id)
        current = by_id.get(current.parent_id)
        if current is None:
            return False
    return False


def find_integrity_issues(nodes: Iterable[Any]) -> List[IntegrityIssue]:
    """Scan active nodes for structural drift.

    *nodes* should include inactive rows too, so that a parent pointing at a
    soft-deleted node is reported as orphaned rather than missing. Cycles
    are errors; everything else is a warning. Nothing is repaired.
    """
    all_nodes = list(nodes)
    by_id = {n.id: n for n in all_nodes}
    active = [n for n in all_nodes if n.is_active]
    issues: List[IntegrityIssue] = []

    path_counts = Counter(n.path for n in active)

    for node in sorted(active, key=lambda n: (n.level, n.path)):
        if path_counts[node.path] > 1:
            issues.append(IntegrityIssue(
                node.id, node.path, DUPLICATE_PATH, SEVERITY_WARNING,
                f"Path is shared by {path_counts[node.path]} active nodes",
            ))

        if _walks_into_cycle(node, by_id):
            issues.append(IntegrityIssue(
                node.id, node.path, CYCLE, SEVERITY_ERROR,
                "Parent chain loops back on itself",
            ))
            continue

        if node.parent_id is None:
            if node.level != 0:
                issues.append(IntegrityIssue(
                    node.id, node.path, LEVEL_MISMATCH, SEVERITY_WARNING,
                    "Root node must have level 0",
                    expected="0", actual=str(node.level),
                ))
            if node.path != node.code:
                issues.append(IntegrityIssue(
                    node.id, node.path, PATH_MISMATCH, SEVERITY_WARNING,
                    "Root node path must equal its code",
                    expected=node.code, actual=node.path,
                ))
            continue

        parent = by_id.get(node.parent_id)
        if parent is None or not parent.is_active:
            issues.append(IntegrityIssue(
                node.id, node.path, ORPHANED, SEVERITY_WARNING,
                "Parent is missing" if parent is None else "Parent is inactive",
            ))
            continue

        if node.path == parent.path or path_codec.is_ancestor(node.path, parent.path):
            issues.append(IntegrityIssue(
                node.id, node.path, CYCLE, SEVERITY_ERROR,
                "Node path contains its own parent's path",
                expected=f"{parent.path}.{node.code}", actual=node.path,
            ))
            continue

        if node.level != parent.level + 1:
            issues.append(IntegrityIssue(
                node.id, node.path, LEVEL_MISMATCH, SEVERITY_WARNING,
                "Level does not follow parent level",
                expected=str(parent.level + 1), actual=str(node.level),
            ))

        expected_path = f"{parent.path}{path_codec.SEPARATOR}{node.code}"
        if node.path != expected_path:
            issues.append(IntegrityIssue(
                node.id, node.path, PATH_MISMATCH, SEVERITY_WARNING,
                "Path does not match parent path and code",
                expected=expected_path, actual=node.path,
            ))

    return issues


def _sort_key(node) -> tuple:
    return (node.sort_order or 0, node.name or "")


def build_tree(nodes: Iterable[Any]) -> List[Dict[str, Any]]:
    """Nest flat rows into ``{..., "children": [...]}`` dicts.

    Siblings are ordered by sort_order then name. A node whose parent is
    not in *nodes* becomes a root, so a subtree passed on its own renders
    with its top node first.
    """
    rows = sorted(nodes, key=_sort_key)
    ids = {n.id for n in rows}
    children: Dict[Optional[str], List[Any]] = defaultdict(list)
    for n in rows:
        key = n.parent_id if n.parent_id in ids else None
        children[key].append(n)

    def _render(node) -> Dict[str, Any]:
        return {
            "id": node.id,
            "name": node.name,
            "code": node.code,
            "path": node.path,
            "level": node.level,
            "sort_order": node.sort_order,
            "children": [_render(c) for c in children.get(node.id, [])],
        }

    return [_render(root) for root in children.get(None, [])]


def statistics(nodes: Iterable[Any]) -> Dict[str, Any]:
    active = [n for n in nodes if n.is_active]
    parents = {n.parent_id for n in active if n.parent_id}
    by_level = Counter(n.level for n in active)
    return {
        "total_nodes": len(active),
        "max_depth": max(by_level) if by_level else 0,
        "nodes_by_level": {str(k): by_level[k] for k in sorted(by_level)},
        "root_nodes": sum(1 for n in active if n.parent_id is None),
        "leaf_nodes": sum(1 for n in active if n.id not in parents),
    }
