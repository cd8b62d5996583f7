import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func
from sqlalchemy.orm import Session

from docshare.models import Share, User
from docshare.models.share import build_dedupe_key

logger = logging.getLogger(__name__)


def normalize_email(email: str | None) -> str:
    return (email or "").strip()


def is_valid_email(email: str) -> bool:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def find_user_by_email(db: Session, email: str | None) -> User | None:
    email = normalize_email(email)
    if not email:
        return None
    return db.query(User).filter(func.lower(User.email) == email.lower()).first()


def get_user(db: Session, user_id: str | None) -> User | None:
    if not user_id:
        return None
    return db.query(User).filter(User.user_id == user_id).first()


def claim_pending_shares(db: Session, user: User) -> int:
    """Bind shares addressed to ``user.email`` to the now-registered user id."""
    pending = (
        db.query(Share)
        .filter(Share.to_user_id.is_(None), func.lower(Share.to_user_email) == user.email.lower())
        .all()
    )
    for share in pending:
        share.to_user_id = user.user_id
        share.to_user_email = None
        if share.dedupe_key is not None:
            share.dedupe_key = build_dedupe_key(share.document_id, share.from_user_id, share.recipient_identity, share.access)
        db.add(share)
    return len(pending)


def register_user(db: Session, email: str, full_name: str | None = None) -> User:
    """Insert a user record; credential handling belongs to the auth service."""
    user = User(email=normalize_email(email), full_name=full_name)
    db.add(user)
    db.flush()
    claimed = claim_pending_shares(db, user)
    db.commit()
    db.refresh(user)
    if claimed:
        logger.info(f"User {user.user_id} claimed {claimed} pending share(s)")
    return user
