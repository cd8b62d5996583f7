"""Maps service failures and access denials onto HTTP responses."""
from fastapi import status
from fastapi.responses import JSONResponse

from docshare.services.access_service import AccessDecision, DenyReason
from docshare.services.errors import ErrorKind, ServiceError

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.STATE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(error: ServiceError) -> int:
    if error.kind == ErrorKind.STATE_CONFLICT and error.code == "Expired":
        return status.HTTP_410_GONE
    return STATUS_BY_KIND[error.kind]


def error_response(error: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=status_for(error), content={"error": error.code, "detail": error.reason})


def denial_response(decision: AccessDecision) -> JSONResponse:
    code = status.HTTP_404_NOT_FOUND if decision.reason == DenyReason.NOT_FOUND else status.HTTP_403_FORBIDDEN
    return JSONResponse(status_code=code, content={"error": decision.reason.value, "detail": decision.message})


def unavailable_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": ErrorKind.UNAVAILABLE.value, "detail": "Storage temporarily unavailable"},
    )
