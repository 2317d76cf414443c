"""Input checks shared by the services.

Payloads usually arrive already validated by the API schemas, but the
services are also called directly, so identifiers are checked again here.
"""

import uuid
from typing import Optional

from ..exceptions import ValidationError


def require_uuid(value: Optional[str], field: str) -> str:
    if not value:
        raise ValidationError(f"{field} is required", field=field)
    try:
        uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be a UUID", field=field) from None
    return str(value)
