"""
Maps domain errors to HTTP responses.

    NOT_FOUND -> 404   CONFLICT -> 409   INVALID -> 400
    UNAUTHORIZED -> 403   UPSTREAM -> 502
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from boxoffice.core.errors import DomainError, ErrorKind
from boxoffice.core.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.UPSTREAM: status.HTTP_502_BAD_GATEWAY,
}


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code = STATUS_BY_KIND[exc.kind]
    log = logger.error if exc.kind is ErrorKind.UPSTREAM else logger.info
    log("domain_error", error=exc.code.value, status_code=status_code)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
