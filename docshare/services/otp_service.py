"""One-time codes that prove control of a recipient's e-mail for a private share.

A verified challenge is not consumed: access checks keep honouring it until
its ``expiry_time``, which makes verification a time-boxed access window.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from docshare.core.config import Settings, get_settings
from docshare.core.otp import generate_otp_code
from docshare.core.security import codes_match
from docshare.core.time import as_utc, utcnow
from docshare.models import AccessAction, OtpChallenge, Share, ShareAccess, User
from docshare.models.otp_challenge import build_pending_key
from . import errors
from .audit_service import append_access_log
from .errors import ErrorKind, ServiceError
from .notifier import Notifier, deliver
from .share_service import recipient_matches
from .user_service import find_user_by_email, normalize_email

logger = logging.getLogger(__name__)

SEND_ATTEMPTS = 2


@dataclass(frozen=True)
class OtpIssued:
    challenge_id: str
    expires_at: datetime
    delivered: bool


class OtpService:
    def __init__(
        self,
        db: Session,
        notifier: Notifier,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.clock = clock

    def _load_private_share(self, share_id: str, lock: bool = False) -> Share | ServiceError:
        query = self.db.query(Share).filter(Share.share_id == share_id)
        if lock:
            query = query.with_for_update()
        share = query.first()
        if not share:
            return errors.not_found("Share not found")
        if share.is_revoked:
            return errors.REVOKED
        if share.is_expired(self.clock()):
            return errors.EXPIRED
        if share.access != ShareAccess.PRIVATE:
            return errors.invalid_input("NotApplicable", "OTP not required for public shares")
        return share

    def _resolve_recipient(self, share: Share, claimed_email: str | None) -> User | ServiceError:
        email = normalize_email(claimed_email)
        if not email:
            return errors.invalid_input("InvalidEmail", "Email required")
        user = find_user_by_email(self.db, email)
        if user is None:
            return errors.forbidden("RecipientUnregistered", "User must register first")
        if not recipient_matches(share, user):
            return errors.forbidden("WrongRecipient", "This private share is restricted to a different recipient")
        return user

    def send(self, share_id: str, claimed_email: str | None) -> OtpIssued | ServiceError:
        for attempt in range(SEND_ATTEMPTS):
            share = self._load_private_share(share_id, lock=True)
            if isinstance(share, ServiceError):
                return share
            user = self._resolve_recipient(share, claimed_email)
            if isinstance(user, ServiceError):
                return user

            try:
                challenge, code = self._issue(share, user)
                self.db.commit()
            except IntegrityError:
                # a concurrent send took the pending slot first; supersede it
                self.db.rollback()
                logger.info(f"OTP issue for share {share_id} raced (attempt {attempt + 1})")
                continue
            break
        else:
            return ServiceError(ErrorKind.CONFLICT, "Conflict", "Could not issue a code; retry")

        expires_at = as_utc(challenge.expiry_time)
        logger.info(f"Issued OTP {challenge.otp_id} for share {share.share_id} to user {user.user_id}")
        subject = "Your OTP code"
        body = (
            f"Your one-time code is: {code}\n"
            f"It expires at: {expires_at.isoformat()}\n"
        )
        delivered = deliver(self.notifier, user.email, subject, body)
        return OtpIssued(challenge_id=challenge.otp_id, expires_at=expires_at, delivered=delivered)

    def _issue(self, share: Share, user: User) -> tuple[OtpChallenge, str]:
        now = self.clock()
        key = build_pending_key(user.user_id, share.share_id)

        prior = (
            self.db.query(OtpChallenge)
            .filter(
                OtpChallenge.user_id == user.user_id,
                OtpChallenge.share_id == share.share_id,
                OtpChallenge.is_verified.is_(False),
                or_(OtpChallenge.pending_key == key, OtpChallenge.expiry_time > now),
            )
            .all()
        )
        for old in prior:
            # clamp so the superseded code is neither active nor verifiable
            if not old.is_expired(now):
                old.expiry_time = now
            old.pending_key = None
            self.db.add(old)
        self.db.flush()

        code = generate_otp_code()
        challenge = OtpChallenge(
            user_id=user.user_id,
            share_id=share.share_id,
            otp_code=code,
            expiry_time=now + timedelta(minutes=self.settings.otp_valid_minutes),
            is_verified=False,
            created_at=now,
            pending_key=key,
        )
        self.db.add(challenge)
        self.db.flush()
        append_access_log(
            self.db,
            AccessAction.OTP_REQUEST,
            document_id=share.document_id,
            share_id=share.share_id,
            viewer_user_id=user.user_id,
            meta={"otp_id": challenge.otp_id, "superseded": len(prior)},
            at=now,
        )
        return challenge, code

    def verify(self, share_id: str, claimed_email: str | None, code: str) -> OtpChallenge | ServiceError:
        share = self._load_private_share(share_id)
        if isinstance(share, ServiceError):
            return share
        user = self._resolve_recipient(share, claimed_email)
        if isinstance(user, ServiceError):
            return user

        now = self.clock()
        presented = (code or "").strip()
        candidates = (
            self.db.query(OtpChallenge)
            .filter(
                OtpChallenge.user_id == user.user_id,
                OtpChallenge.share_id == share.share_id,
                OtpChallenge.is_verified.is_(False),
                OtpChallenge.expiry_time > now,
            )
            .order_by(OtpChallenge.created_at.desc())
            .all()
        )
        match = next((c for c in candidates if codes_match(c.otp_code, presented)), None)
        if match is None:
            logger.warning(f"Rejected OTP for share {share.share_id} and user {user.user_id}")
            return errors.invalid_input("InvalidOrExpiredCode", "Invalid or expired code")

        match.is_verified = True
        match.pending_key = None
        self.db.add(match)
        append_access_log(
            self.db,
            AccessAction.OTP_VERIFY,
            document_id=share.document_id,
            share_id=share.share_id,
            viewer_user_id=user.user_id,
            meta={"otp_id": match.otp_id},
            at=now,
        )
        self.db.commit()
        self.db.refresh(match)
        logger.info(f"OTP {match.otp_id} verified for share {share.share_id}")
        return match

    def status(self, share_id: str, claimed_email: str | None) -> bool:
        """Only the bound recipient of a private share can have an open window."""
        share = self.db.query(Share).filter(Share.share_id == share_id).first()
        if share is None or share.access != ShareAccess.PRIVATE or not share.is_active(self.clock()):
            return False
        user = find_user_by_email(self.db, claimed_email)
        if user is None or not recipient_matches(share, user):
            return False
        return has_verified_window(self.db, share_id, user.user_id, self.clock())


def has_verified_window(db: Session, share_id: str, user_id: str, now: datetime) -> bool:
    """True while a verified, unexpired challenge exists for the pair."""
    return (
        db.query(OtpChallenge.otp_id)
        .filter(
            OtpChallenge.share_id == share_id,
            OtpChallenge.user_id == user_id,
            OtpChallenge.is_verified.is_(True),
            OtpChallenge.expiry_time > now,
        )
        .first()
        is not None
    )
