import secrets
from datetime import timedelta
from typing import Any, Dict

import jwt

from .config import get_settings
from .time import utcnow

ALGORITHM = "HS256"


def create_token(payload: Dict[str, Any], expires_minutes: int) -> str:
    settings = get_settings()
    now = utcnow()
    expire = now + timedelta(minutes=expires_minutes)
    claims = {
        **payload,
        "iss": settings.jwt_issuer,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret,
        issuer=settings.jwt_issuer,
        algorithms=[ALGORITHM],
        options={"require": ["iss", "iat", "exp", "sub"]},
    )


def create_access_token(user_id: str, email: str | None = None) -> str:
    settings = get_settings()
    return create_token({"sub": user_id, "email": email, "type": "access"}, settings.access_token_exp_minutes)


def generate_share_token() -> str:
    """Opaque link token; independent of the share id."""
    return secrets.token_urlsafe(get_settings().share_token_bytes)


def codes_match(expected: str, presented: str) -> bool:
    return secrets.compare_digest(expected.encode("utf-8"), presented.encode("utf-8"))
