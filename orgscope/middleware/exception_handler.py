"""Exception handlers producing structured error responses."""

import logging
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from ..exceptions import ErrorCode, OrgScopeError

logger = logging.getLogger(__name__)


async def orgscope_exception_handler(request: Request, exc: OrgScopeError) -> JSONResponse:
    """
    Convert an OrgScopeError into its JSON body and status code.

    Client errors are logged at warning level, server errors at error level.
    """
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"OrgScopeError: {exc.error_code.value}",
        extra={
            "error_code": exc.error_code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
            "status_code": exc.status_code
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render payload validation failures in the same shape as OrgScopeError.

    Only the location and message of each error are returned; the raw
    input is not echoed back.
    """
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    logger.warning(
        "Request validation failed",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )
    return JSONResponse(
        status_code=400,
        content={
            "error": ErrorCode.VALIDATION_ERROR.value,
            "message": "Request validation failed",
            "details": {"errors": errors},
        },
    )
