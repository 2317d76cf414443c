"""Actor identity: FastAPI dependencies exposing who is calling.

Public interface:
    ``require_actor``  -- returns ActorContext or raises 401.
    ``require_system`` -- returns ActorContext, raises 403 unless it is a
                          system actor.

orgscope sits behind an identity gateway that has already authenticated the
caller and forwards the actor id in ``settings.actor_header``. Nothing here
verifies credentials.
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, Request

from .config import settings
from .logging_config import actor_id_var
from ..exceptions import AuthenticationError, InsufficientPrivilegeError

logger = logging.getLogger(__name__)

MAX_ACTOR_ID_LENGTH = 100


@dataclass(frozen=True)
class ActorContext:
    """The caller of an operation.

    System actors bypass grant checks in the services. Everyone else is
    authorized from their resolved access scope.
    """

    actor_id: str
    is_system: bool = False

    @classmethod
    def for_actor(cls, actor_id: str) -> "ActorContext":
        return cls(actor_id=actor_id, is_system=actor_id in settings.get_system_actor_ids())

    @classmethod
    def system(cls, actor_id: str = "system") -> "ActorContext":
        return cls(actor_id=actor_id, is_system=True)


async def require_actor(request: Request) -> ActorContext:
    """Read the actor id forwarded by the gateway. Raises 401 when absent."""
    actor_id = (request.headers.get(settings.actor_header) or "").strip()
    if not actor_id:
        raise AuthenticationError(f"Missing {settings.actor_header} header")
    if len(actor_id) > MAX_ACTOR_ID_LENGTH:
        raise AuthenticationError("Actor id is too long")

    actor_id_var.set(actor_id)
    return ActorContext.for_actor(actor_id)


async def require_system(actor: ActorContext = Depends(require_actor)) -> ActorContext:
    """Require a system actor. Raises 403 otherwise."""
    if not actor.is_system:
        raise InsufficientPrivilegeError("System actor required")
    return actor
