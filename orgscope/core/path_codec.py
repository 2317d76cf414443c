"""Materialized-path arithmetic.

A path is the dot-joined list of node codes from the root down to the node
itself, e.g. ``org.eng.backend``. Every ancestor/descendant question in the
system reduces to string prefix tests on these values, so this module is the
single place those rules live. All functions are pure.
"""

import re
from typing import List, Optional

from ..exceptions import InvalidCodeError, InvalidPathError

SEPARATOR = "."
MAX_CODE_LENGTH = 50

_CODE_RE = re.compile(r"^[A-Za-z0-9_]+$")


def validate_code(code: str) -> str:
    """Return *code* unchanged or raise InvalidCodeError."""
    if not code:
        raise InvalidCodeError("Code cannot be empty")
    if len(code) > MAX_CODE_LENGTH:
        raise InvalidCodeError(f"Code cannot exceed {MAX_CODE_LENGTH} characters")
    if not _CODE_RE.match(code):
        raise InvalidCodeError("Code may only contain letters, digits and underscores")
    return code


def is_valid_path(path: Optional[str]) -> bool:
    if not path:
        return False
    return all(
        0 < len(segment) <= MAX_CODE_LENGTH and _CODE_RE.match(segment)
        for segment in path.split(SEPARATOR)
    )


def _require_path(path: Optional[str]) -> str:
    if not is_valid_path(path):
        raise InvalidPathError("Path is empty or malformed")
    return path


def derive(parent_path: Optional[str], code: str) -> str:
    """Build a child path from its parent's path and its own code.

    A falsy *parent_path* means the node is a root.
    """
    validate_code(code)
    if not parent_path:
        return code
    return f"{parent_path}{SEPARATOR}{code}"


def level(path: str) -> int:
    """Depth of *path*: 0 for a root."""
    return _require_path(path).count(SEPARATOR)


def parent_of(path: str) -> Optional[str]:
    """Strip the last segment. Roots have no parent."""
    _require_path(path)
    if SEPARATOR not in path:
        return None
    return path.rsplit(SEPARATOR, 1)[0]


def code_of(path: str) -> str:
    return _require_path(path).rsplit(SEPARATOR, 1)[-1]


def subtree_prefix(path: str) -> str:
    """Prefix shared by every strict descendant of *path*."""
    return path + SEPARATOR


def is_ancestor(candidate: Optional[str], path: Optional[str]) -> bool:
    """True iff *candidate* is a strict ancestor of *path*.

    The separator in the comparison keeps ``org.en`` from matching
    ``org.eng``; a path is never its own ancestor.
    """
    if not candidate or not path:
        return False
    return path.startswith(subtree_prefix(candidate))


def is_descendant(path: Optional[str], candidate: Optional[str]) -> bool:
    return is_ancestor(candidate, path)


def ancestor_paths(path: str) -> List[str]:
    """Every strict ancestor of *path*, root first."""
    segments = _require_path(path).split(SEPARATOR)
    return [SEPARATOR.join(segments[:i]) for i in range(1, len(segments))]


def rebase(path: str, old_prefix: str, new_prefix: str) -> str:
    """Replace *old_prefix* at the head of *path* with *new_prefix*.

    *path* must be *old_prefix* itself or one of its descendants; the
    remaining suffix is preserved.
    """
    if path == old_prefix:
        return new_prefix
    if not is_ancestor(old_prefix, path):
        raise InvalidPathError("Path is not within the subtree being rebased")
    return new_prefix + path[len(old_prefix):]
