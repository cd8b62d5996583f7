"""Typed failure values returned by the share, OTP and document services.

Services hand these back instead of raising so callers branch on ``kind``
and ``code``; the HTTP layer maps them to status codes in one place.
Store failures are the exception: SQLAlchemy errors propagate and are
reported as ``Unavailable``.
"""
import enum
from dataclasses import dataclass


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "NotFound"
    FORBIDDEN = "Forbidden"
    CONFLICT = "Conflict"
    INVALID_INPUT = "InvalidInput"
    STATE_CONFLICT = "StateConflict"
    RATE_LIMITED = "RateLimited"
    UNAVAILABLE = "Unavailable"


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    code: str
    reason: str


def not_found(reason: str = "Not found") -> ServiceError:
    return ServiceError(ErrorKind.NOT_FOUND, "NotFound", reason)


def invalid_input(code: str, reason: str) -> ServiceError:
    return ServiceError(ErrorKind.INVALID_INPUT, code, reason)


def forbidden(code: str, reason: str) -> ServiceError:
    return ServiceError(ErrorKind.FORBIDDEN, code, reason)


def state_conflict(code: str, reason: str) -> ServiceError:
    return ServiceError(ErrorKind.STATE_CONFLICT, code, reason)


REVOKED = state_conflict("Revoked", "Share revoked")
EXPIRED = state_conflict("Expired", "Share expired")
