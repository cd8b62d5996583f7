"""Decides whether a view or download of a document is allowed.

Consulted before every file view/download. The resolver only reads the
store; recording the access is left to the caller.
"""
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from docshare.core.time import utcnow
from docshare.models import Document, Share, ShareAccess
from .otp_service import has_verified_window
from .share_service import recipient_matches
from .user_service import find_user_by_email, normalize_email


class DenyReason(str, enum.Enum):
    MISSING_REFERENCE = "MissingReference"
    NOT_FOUND = "NotFound"
    REVOKED = "Revoked"
    EXPIRED = "Expired"
    PUBLIC_VIEW_ONLY = "PublicViewOnly"
    IDENTITY_REQUIRED = "IdentityRequired"
    UNREGISTERED = "Unregistered"
    WRONG_RECIPIENT = "WrongRecipient"
    OTP_REQUIRED = "OtpRequired"


DENY_MESSAGES = {
    DenyReason.MISSING_REFERENCE: "Missing share reference",
    DenyReason.NOT_FOUND: "Share not found",
    DenyReason.REVOKED: "Share revoked",
    DenyReason.EXPIRED: "Share expired",
    DenyReason.PUBLIC_VIEW_ONLY: "Public shares are view-only",
    DenyReason.IDENTITY_REQUIRED: "Email required for private share",
    DenyReason.UNREGISTERED: "User must register first",
    DenyReason.WRONG_RECIPIENT: "Not the intended recipient",
    DenyReason.OTP_REQUIRED: "OTP verification required",
}


@dataclass(frozen=True)
class AuthIdentity:
    """Who the surrounding HTTP layer authenticated, if anyone."""

    user_id: str | None = None
    email: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


ANONYMOUS = AuthIdentity()


@dataclass(frozen=True)
class ShareReference:
    share_id: str | None = None
    share_token: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.share_id and not self.share_token


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: DenyReason | None = None
    viewer_user_id: str | None = None
    document: Document | None = None
    share: Share | None = None

    @property
    def message(self) -> str:
        if self.allowed:
            return "Allowed"
        return DENY_MESSAGES[self.reason]


def allow(document: Document, share: Share | None = None, viewer_user_id: str | None = None) -> AccessDecision:
    return AccessDecision(True, viewer_user_id=viewer_user_id, document=document, share=share)


def deny(reason: DenyReason, document: Document | None = None, share: Share | None = None) -> AccessDecision:
    return AccessDecision(False, reason=reason, document=document, share=share)


class AccessResolver:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def resolve(
        self,
        document_id: str,
        reference: ShareReference | None,
        identity: AuthIdentity = ANONYMOUS,
        claimed_email: str | None = None,
        want_download: bool = False,
    ) -> AccessDecision:
        document = self.db.query(Document).filter(Document.document_id == document_id).first()
        if document is None:
            return deny(DenyReason.NOT_FOUND)

        if identity.is_authenticated and identity.user_id == document.owner_user_id:
            return allow(document, viewer_user_id=identity.user_id)

        if reference is None or reference.is_empty:
            return deny(DenyReason.MISSING_REFERENCE, document)

        share = self._load_share(reference)
        if share is None or share.document_id != document.document_id:
            return deny(DenyReason.NOT_FOUND, document)
        if share.is_revoked:
            return deny(DenyReason.REVOKED, document, share)
        now = self.clock()
        if share.is_expired(now):
            return deny(DenyReason.EXPIRED, document, share)

        if share.access == ShareAccess.PUBLIC:
            if want_download:
                return deny(DenyReason.PUBLIC_VIEW_ONLY, document, share)
            return allow(document, share, viewer_user_id=identity.user_id)

        email = normalize_email(claimed_email)
        if not email:
            return deny(DenyReason.IDENTITY_REQUIRED, document, share)
        viewer = find_user_by_email(self.db, email)
        if viewer is None:
            return deny(DenyReason.UNREGISTERED, document, share)
        if not recipient_matches(share, viewer):
            return deny(DenyReason.WRONG_RECIPIENT, document, share)
        if not has_verified_window(self.db, share.share_id, viewer.user_id, now):
            return deny(DenyReason.OTP_REQUIRED, document, share)
        return allow(document, share, viewer_user_id=viewer.user_id)

    def _load_share(self, reference: ShareReference) -> Share | None:
        if reference.share_id:
            return self.db.query(Share).filter(Share.share_id == reference.share_id).first()
        return self.db.query(Share).filter(Share.share_token == reference.share_token).first()
