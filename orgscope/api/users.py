"""Member API and audit trail."""

import json
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import ActorContext, require_actor, require_system
from ..database import get_db
from ..exceptions import InsufficientPrivilegeError
from ..schemas.user import MemberCreate, MemberResponse
from ..services import audit_service
from ..services.access_service import AccessService
from ..services.member_service import MemberService

router = APIRouter(prefix="/api/users", tags=["users"])
audit_router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.post("", response_model=MemberResponse, status_code=201)
def create_member(
    data: MemberCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return MemberService(db).create_member(data, actor)


@router.get("/{user_id}", response_model=MemberResponse)
def get_member(
    user_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    member = MemberService(db).get_member(user_id)
    if not actor.is_system:
        check = AccessService(db).can_access_user(actor.actor_id, user_id)
        if not check.can_access:
            raise InsufficientPrivilegeError(check.reason)
    return member


@audit_router.get("", response_model=List[dict])
def list_audit_entries(
    resource_type: Optional[str] = Query(None),
    resource_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_system),
):
    """Recent audit entries, optionally for one resource. System actors only."""
    if resource_type and resource_id:
        entries = audit_service.get_by_resource(db, resource_type, resource_id, limit=limit)
    else:
        entries = audit_service.get_recent(db, limit=limit)
    return [
        {
            "id": e.id,
            "actor_id": e.actor_id,
            "action": e.action,
            "resource_type": e.resource_type,
            "resource_id": e.resource_id,
            "details": json.loads(e.details) if e.details else {},
            "created_at": e.created_at,
        }
        for e in entries
    ]
