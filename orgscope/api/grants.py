"""Grant API: grant, revoke, update, inspect."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import ActorContext, require_actor
from ..database import get_db
from ..schemas.grant import GrantCreate, GrantResponse, GrantUpdate, Role
from ..schemas.scope import CanGrantResponse
from ..services.grant_service import GrantService

router = APIRouter(prefix="/api/grants", tags=["grants"])


@router.post("", response_model=GrantResponse, status_code=201)
def create_grant(
    data: GrantCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    """Grant a role at a node. The caller needs manager or admin reaching that node."""
    return GrantService(db).grant(data, actor)


@router.get("/can-grant", response_model=CanGrantResponse)
def can_grant(
    node_id: str = Query(...),
    role: Role = Query(...),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return GrantService(db).can_grant(actor, node_id, role)


@router.get("/{grant_id}", response_model=GrantResponse)
def get_grant(
    grant_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return GrantService(db).get(grant_id, actor)


@router.put("/{grant_id}", response_model=GrantResponse)
def update_grant(
    grant_id: str,
    data: GrantUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    return GrantService(db).update(grant_id, data, actor)


@router.delete("/{grant_id}", response_model=GrantResponse)
def revoke_grant(
    grant_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_actor),
):
    """Revoke a grant. The row is kept with revoked_at/revoked_by set."""
    return GrantService(db).revoke(grant_id, actor)
