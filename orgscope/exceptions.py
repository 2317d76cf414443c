"""Custom exception hierarchy for orgscope.

Five families, each mapped to one HTTP status by the exception handler:
validation (400), not found (404), conflict (409), business rule (422) and
authorization (401/403). Access denial in point checks is not an error and
never goes through this module.
"""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_CODE = "INVALID_CODE"
    INVALID_PATH = "INVALID_PATH"
    INVALID_EXPIRY = "INVALID_EXPIRY"

    # Lookup errors
    NODE_NOT_FOUND = "NODE_NOT_FOUND"
    PARENT_NOT_FOUND = "PARENT_NOT_FOUND"
    GRANT_NOT_FOUND = "GRANT_NOT_FOUND"
    ACTOR_NOT_FOUND = "ACTOR_NOT_FOUND"

    # Conflicts
    DUPLICATE_CODE = "DUPLICATE_CODE"
    DUPLICATE_NAME = "DUPLICATE_NAME"
    DUPLICATE_GRANT = "DUPLICATE_GRANT"
    DUPLICATE_EMAIL = "DUPLICATE_EMAIL"

    # Business rules
    CIRCULAR_MOVE = "CIRCULAR_MOVE"
    ALREADY_INACTIVE = "ALREADY_INACTIVE"
    DEPENDENTS_EXIST = "DEPENDENTS_EXIST"
    DEPTH_LIMIT_EXCEEDED = "DEPTH_LIMIT_EXCEEDED"

    # Auth & rate limiting
    UNAUTHORIZED = "UNAUTHORIZED"
    INSUFFICIENT_PRIVILEGE = "INSUFFICIENT_PRIVILEGE"
    RATE_LIMITED = "RATE_LIMITED"

    # Database errors
    DATABASE_ERROR = "DATABASE_ERROR"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class OrgScopeError(Exception):
    """
    Base exception for all orgscope errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


# ---------------------------------------------------------------------------
# Validation (400)
# ---------------------------------------------------------------------------

class ValidationError(OrgScopeError):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None,
                 error_code: ErrorCode = ErrorCode.VALIDATION_ERROR):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            error_code,
            status_code=400,
            details=details
        )


class InvalidCodeError(ValidationError):
    """Node code is empty, too long, or contains characters outside [A-Za-z0-9_]."""

    def __init__(self, message: str):
        super().__init__(message, field="code", error_code=ErrorCode.INVALID_CODE)


class InvalidPathError(ValidationError):
    """Materialized path is empty or malformed."""

    def __init__(self, message: str):
        super().__init__(message, field="path", error_code=ErrorCode.INVALID_PATH)


class InvalidExpiryError(ValidationError):
    """Grant expiry is not in the future."""

    def __init__(self, message: str = "valid_until must be in the future"):
        super().__init__(message, field="valid_until", error_code=ErrorCode.INVALID_EXPIRY)


# ---------------------------------------------------------------------------
# Not found (404)
# ---------------------------------------------------------------------------

class NotFoundError(OrgScopeError):
    """Base for missing entities."""

    def __init__(self, resource: str, resource_id: str, error_code: ErrorCode):
        super().__init__(
            f"{resource} not found: {resource_id}",
            error_code,
            status_code=404,
            details={f"{resource.lower()}_id": resource_id}
        )


class NodeNotFoundError(NotFoundError):
    """Hierarchy node does not exist or is inactive."""

    def __init__(self, node_id: str):
        super().__init__("Node", node_id, ErrorCode.NODE_NOT_FOUND)


class ParentNotFoundError(NotFoundError):
    """Requested parent node does not exist or is inactive."""

    def __init__(self, parent_id: str):
        super().__init__("Parent", parent_id, ErrorCode.PARENT_NOT_FOUND)


class GrantNotFoundError(NotFoundError):
    """Grant not found in database."""

    def __init__(self, grant_id: str):
        super().__init__("Grant", grant_id, ErrorCode.GRANT_NOT_FOUND)


class ActorNotFoundError(NotFoundError):
    """Actor (member) not found in database."""

    def __init__(self, actor_id: str):
        super().__init__("Actor", actor_id, ErrorCode.ACTOR_NOT_FOUND)


# ---------------------------------------------------------------------------
# Conflict (409)
# ---------------------------------------------------------------------------

class ConflictError(OrgScopeError):
    """Request conflicts with existing state."""

    def __init__(self, message: str, error_code: ErrorCode, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            error_code,
            status_code=409,
            details=details
        )


class DuplicateCodeError(ConflictError):
    """Another active sibling already uses this code."""

    def __init__(self, code: str, parent_path: Optional[str] = None):
        where = f"under '{parent_path}'" if parent_path else "at the root level"
        super().__init__(
            f"Code '{code}' already exists {where}",
            ErrorCode.DUPLICATE_CODE,
            details={"code": code, "parent_path": parent_path}
        )


class DuplicateNameError(ConflictError):
    """Another active sibling already uses this name."""

    def __init__(self, name: str):
        super().__init__(
            f"Name '{name}' already exists at this level",
            ErrorCode.DUPLICATE_NAME,
            details={"name": name}
        )


class DuplicateGrantError(ConflictError):
    """An active grant already exists for this (actor, node) pair."""

    def __init__(self, actor_id: str, node_id: str):
        super().__init__(
            "Actor already has an active grant on this node",
            ErrorCode.DUPLICATE_GRANT,
            details={"actor_id": actor_id, "node_id": node_id}
        )


class DuplicateEmailError(ConflictError):
    """Email is already registered to another member."""

    def __init__(self, email: str):
        super().__init__(
            "Email is already registered",
            ErrorCode.DUPLICATE_EMAIL,
            details={"email": email}
        )


# ---------------------------------------------------------------------------
# Business rules (422)
# ---------------------------------------------------------------------------

class BusinessRuleError(OrgScopeError):
    """Operation is well-formed but violates a hierarchy or grant rule."""

    def __init__(self, message: str, error_code: ErrorCode, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            error_code,
            status_code=422,
            details=details
        )


class CircularMoveError(BusinessRuleError):
    """Target parent is the node itself or one of its descendants."""

    def __init__(self, node_id: str, new_parent_id: str):
        super().__init__(
            "Cannot move a node under itself or one of its descendants",
            ErrorCode.CIRCULAR_MOVE,
            details={"node_id": node_id, "new_parent_id": new_parent_id}
        )


class AlreadyInactiveError(BusinessRuleError):
    """Grant is already revoked."""

    def __init__(self, grant_id: str):
        super().__init__(
            f"Grant is already inactive: {grant_id}",
            ErrorCode.ALREADY_INACTIVE,
            details={"grant_id": grant_id}
        )


class DependentsExistError(BusinessRuleError):
    """Node still has children or members and force was not requested."""

    def __init__(self, node_id: str, child_count: int, member_count: int):
        super().__init__(
            "Node has active children or members; pass force=true to delete the whole subtree",
            ErrorCode.DEPENDENTS_EXIST,
            details={
                "node_id": node_id,
                "child_count": child_count,
                "member_count": member_count,
            }
        )


class DepthLimitError(BusinessRuleError):
    """Operation would place a node deeper than the configured maximum."""

    def __init__(self, level: int, max_depth: int):
        super().__init__(
            f"Maximum hierarchy depth of {max_depth} exceeded (level {level})",
            ErrorCode.DEPTH_LIMIT_EXCEEDED,
            details={"level": level, "max_depth": max_depth}
        )


# ---------------------------------------------------------------------------
# Authentication / authorization
# ---------------------------------------------------------------------------

class AuthenticationError(OrgScopeError):
    """Request does not identify an actor."""

    def __init__(self, message: str = "Missing actor identity"):
        super().__init__(
            message,
            ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class InsufficientPrivilegeError(OrgScopeError):
    """Actor lacks the role required for the requested operation."""

    def __init__(self, message: str = "You do not have permission to perform this action",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            ErrorCode.INSUFFICIENT_PRIVILEGE,
            status_code=403,
            details=details
        )


class DatabaseError(OrgScopeError):
    """Database operation failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details["original_error"] = type(original_error).__name__

        super().__init__(
            message,
            ErrorCode.DATABASE_ERROR,
            status_code=500,
            details=details
        )
