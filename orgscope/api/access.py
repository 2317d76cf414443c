"""Access API: scopes, point checks and scoped member queries.

Denials from point checks come back as ``can_access: false`` with a reason,
not as error responses.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import ActorContext, require_actor
from ..database import get_db
from ..exceptions import InsufficientPrivilegeError, ValidationError
from ..schemas.grant import GrantResponse
from ..schemas.query import (
    AutocompleteItem,
    BulkAccessRequest,
    BulkAccessResponse,
    UserQueryFilters,
    UserQueryResponse,
)
from ..schemas.scope import AccessCheckResponse, AccessScopeResponse
from ..services.access_service import AccessService
from ..services.grant_service import GrantService
from ..services.query_service import QueryService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["access"])


def _require_visibility(db: Session, actor: ActorContext, target_actor_id: str) -> None:
    """Callers may inspect themselves, or anyone they can reach."""
    if actor.is_system or actor.actor_id == target_actor_id:
        return
    check = AccessService(db).can_access_user(actor.actor_id, target_actor_id)
    if not check.can_access:
        raise InsufficientPrivilegeError("Target actor is outside your access scope")


# -- Scopes ---------------------------------------------------------------

@router.get("/api/actors/{actor_id}/scope", response_model=AccessScopeResponse)
def get_actor_scope(
    actor_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    """Everything *actor_id* can reach, recomputed on every call."""
    _require_visibility(db, actor, actor_id)
    service = AccessService(db)
    return service.describe_scope(service.compute_scope(actor_id))


@router.get("/api/actors/{actor_id}/grants", response_model=List[GrantResponse])
def get_actor_grants(
    actor_id: str,
    include_expired: bool = Query(False, description="Include expired and revoked grants"),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    _require_visibility(db, actor, actor_id)
    return GrantService(db).list_for_actor(actor_id, include_expired=include_expired)


# -- Point checks ---------------------------------------------------------

@router.get("/api/access/check", response_model=AccessCheckResponse)
def check_access(
    user_id: Optional[str] = Query(None),
    node_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    """Can the caller reach a member (``user_id``) or a node (``node_id``)?"""
    if bool(user_id) == bool(node_id):
        raise ValidationError("Pass exactly one of user_id or node_id")
    service = AccessService(db)
    if user_id:
        check = service.can_access_user(actor.actor_id, user_id)
    else:
        check = service.can_access_node(actor.actor_id, node_id)
    return {
        "can_access": check.can_access,
        "access_level": check.access_level,
        "effective_role": check.effective_role,
        "accessible_through": list(check.accessible_through),
        "reason": check.reason,
    }


# -- Scoped member queries ------------------------------------------------

@router.post("/api/access/users/search", response_model=UserQueryResponse)
def query_accessible_users(
    filters: UserQueryFilters,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return QueryService(db).query_accessible_users(actor, filters)


@router.get("/api/access/users/autocomplete", response_model=List[AutocompleteItem])
def autocomplete_users(
    q: str = Query(...),
    limit: int = Query(10),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return QueryService(db).autocomplete(actor, q, limit)


@router.post("/api/access/users/bulk-check", response_model=BulkAccessResponse)
def bulk_check(
    request: BulkAccessRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return QueryService(db).bulk_check(actor, request.user_ids)
