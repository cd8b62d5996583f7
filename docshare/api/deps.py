from datetime import datetime
from functools import lru_cache
from typing import Callable

import jwt
from fastapi import Depends, Header, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from docshare.core.config import Settings, get_settings
from docshare.core.security import decode_token
from docshare.core.time import utcnow
from docshare.db.session import SessionLocal
from docshare.services.access_service import ANONYMOUS, AccessResolver, AuthIdentity
from docshare.services.document_service import DocumentStore
from docshare.services.notifier import Notifier, build_notifier
from docshare.services.otp_service import OtpService
from docshare.services.share_service import ShareManager

bearer_scheme = HTTPBearer(auto_error=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_app_settings() -> Settings:
    return get_settings()


@lru_cache(maxsize=1)
def _default_notifier() -> Notifier:
    return build_notifier(get_settings())


def get_notifier() -> Notifier:
    return _default_notifier()


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_identity(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> AuthIdentity:
    """Anonymous unless a valid bearer token is presented."""
    if credentials is None:
        return ANONYMOUS
    try:
        payload = decode_token(credentials.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    if payload.get("type") != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")
    return AuthIdentity(user_id=payload["sub"], email=payload.get("email"))


def require_user(identity: AuthIdentity = Depends(get_identity)) -> AuthIdentity:
    if not identity.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    return identity


def get_claimed_email(
    x_user_email: str | None = Header(None, alias="X-User-Email"),
    email: str | None = Query(None),
) -> str | None:
    return x_user_email or email


def get_share_manager(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ShareManager:
    return ShareManager(db, notifier, settings=settings, clock=clock)


def get_otp_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> OtpService:
    return OtpService(db, notifier, settings=settings, clock=clock)


def get_access_resolver(
    db: Session = Depends(get_db), clock: Callable[[], datetime] = Depends(get_clock)
) -> AccessResolver:
    return AccessResolver(db, clock=clock)


def get_document_store(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> DocumentStore:
    return DocumentStore(db, settings=settings, clock=clock)
