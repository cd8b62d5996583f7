"""Share lifecycle: create (idempotent), revoke, expiry changes, delete."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from docshare.core.config import Settings, get_settings
from docshare.core.security import generate_share_token
from docshare.core.time import as_utc, utcnow
from docshare.models import AccessAction, Document, Share, ShareAccess, User
from docshare.models.share import build_dedupe_key
from . import errors
from .audit_service import append_access_log
from .errors import ErrorKind, ServiceError
from .notifier import Notifier, deliver
from .qr_service import build_share_link, qr_data_uri
from .user_service import find_user_by_email, is_valid_email, normalize_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShareResult:
    share: Share
    reused: bool = False
    recipient_registered: bool = False


def recipient_matches(share: Share, user: User) -> bool:
    """Bound user id wins; otherwise compare the pending email case-insensitively."""
    if share.to_user_id:
        return share.to_user_id == user.user_id
    if share.to_user_email:
        return share.to_user_email.lower() == user.email.lower()
    return False


class ShareManager:
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

    # ── creation ──────────────────────────────────────────────────────

    def create(
        self,
        document_id: str,
        creator_id: str,
        recipient_email: str | None = None,
        requested_access: ShareAccess | None = None,
        expiry: datetime | None = None,
    ) -> ShareResult | ServiceError:
        document = (
            self.db.query(Document)
            .filter(Document.document_id == document_id, Document.owner_user_id == creator_id)
            .first()
        )
        if not document:
            return errors.not_found("Document not found")

        now = self.clock()
        expiry = as_utc(expiry)
        if expiry is not None and expiry <= now:
            return errors.invalid_input("InvalidExpiry", "Expiry must be in the future")

        email = normalize_email(recipient_email)
        if email and not is_valid_email(email):
            return errors.invalid_input("InvalidEmail", "Invalid recipient email")
        recipient = find_user_by_email(self.db, email) if email else None

        if requested_access == ShareAccess.PRIVATE:
            if not email:
                return errors.invalid_input("RecipientRequired", "A recipient email is required for private shares")
            if recipient is None and not self.settings.allow_pending_private_recipients:
                return errors.invalid_input("RecipientUnregistered", "Recipient must register first")
            access = ShareAccess.PRIVATE
        elif requested_access == ShareAccess.PUBLIC:
            access = ShareAccess.PUBLIC
        else:
            access = ShareAccess.PRIVATE if recipient else ShareAccess.PUBLIC

        to_user_id = None
        to_user_email = None
        if access == ShareAccess.PRIVATE:
            if recipient:
                to_user_id = recipient.user_id
            else:
                to_user_email = email
        recipient_identity = to_user_id or (to_user_email or "").lower()
        key = build_dedupe_key(document.document_id, creator_id, recipient_identity, access)

        occupant = self.db.query(Share).filter(Share.dedupe_key == key).with_for_update().first()
        if occupant is not None:
            if occupant.is_active(now):
                logger.info(f"Reusing active share {occupant.share_id} for document {document_id}")
                if email and occupant.access == ShareAccess.PUBLIC:
                    # public links bind no recipient, so every named recipient is sent the link
                    self.db.commit()
                    self._send_share_notification(occupant, document, email, recipient is not None)
                return ShareResult(occupant, reused=True, recipient_registered=recipient is not None)
            # expired occupant gives up the slot
            occupant.dedupe_key = None
            self.db.add(occupant)
            self.db.flush()

        share = Share(
            share_token=generate_share_token(),
            document_id=document.document_id,
            from_user_id=creator_id,
            to_user_id=to_user_id,
            to_user_email=to_user_email,
            access=access,
            expiry_time=expiry,
            is_revoked=False,
            created_at=now,
            dedupe_key=key,
        )
        try:
            self.db.add(share)
            self.db.flush()
            append_access_log(
                self.db,
                AccessAction.SHARE_CREATE,
                document_id=document.document_id,
                share_id=share.share_id,
                viewer_user_id=creator_id,
                meta={"access": access.value, "recipient_registered": recipient is not None},
                at=now,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return self._resolve_create_race(key, recipient is not None)

        self.db.refresh(share)
        logger.info(f"Created {access.value} share {share.share_id} for document {document_id}")

        if email:
            self._send_share_notification(share, document, email, recipient is not None)
        return ShareResult(share, reused=False, recipient_registered=recipient is not None)

    def _resolve_create_race(self, key: str, recipient_registered: bool) -> ShareResult | ServiceError:
        """A concurrent identical create won the slot; hand its row back as reused."""
        winner = self.db.query(Share).filter(Share.dedupe_key == key).first()
        if winner is not None and winner.is_active(self.clock()):
            logger.info(f"Create lost race; returning winning share {winner.share_id}")
            return ShareResult(winner, reused=True, recipient_registered=recipient_registered)
        logger.warning(f"Create conflict on slot {key!r} could not be resolved")
        return ServiceError(ErrorKind.CONFLICT, "Conflict", "A conflicting share was created concurrently; retry")

    # ── notification ──────────────────────────────────────────────────

    def _send_share_notification(self, share: Share, document: Document, to_email: str, registered: bool) -> bool:
        sender = self.db.query(User).filter(User.user_id == share.from_user_id).first()
        sender_label = sender.email if sender else "Someone"
        link = build_share_link(share.share_token, self.settings)

        if share.access == ShareAccess.PRIVATE:
            if registered:
                instructions = "PRIVATE: log in with your registered email; you'll receive a one-time code to view or download."
            else:
                instructions = "PRIVATE: register first with this email, then complete the one-time code step to view or download."
        else:
            instructions = "PUBLIC: anyone with the link can view (download is disabled)."

        subject = f"Document shared with you: {document.file_name}"
        body = "\n".join(
            [
                "<html><body>",
                "<p>Hi,</p>",
                f'<p>{sender_label} shared a document with you: "{document.file_name}".</p>',
                f'<p>Access link: <a href="{link}">{link}</a><br>Access type: {share.access.value.upper()}</p>',
                f"<p>{instructions}</p>",
                f'<p>You can also scan this QR code:<br><img src="{qr_data_uri(link)}" alt="share QR code"></p>',
                "<p>Thanks,<br>DocShare</p>",
                "</body></html>",
            ]
        )
        return deliver(self.notifier, to_email, subject, body)

    def notify_recipient(self, share_id: str, requesting_user_id: str) -> bool | ServiceError:
        share = self._owned(share_id, requesting_user_id)
        if isinstance(share, ServiceError):
            return share
        to_email = share.to_user_email
        if not to_email and share.to_user_id:
            bound = self.db.query(User).filter(User.user_id == share.to_user_id).first()
            to_email = bound.email if bound else None
        if not to_email:
            return errors.invalid_input("RecipientRequired", "No recipient email on this share")
        return self._send_share_notification(share, share.document, to_email, share.to_user_id is not None)

    # ── lookups ───────────────────────────────────────────────────────

    def get(self, share_id: str) -> Share | None:
        return self.db.query(Share).filter(Share.share_id == share_id).first()

    def get_owned(self, share_id: str, requesting_user_id: str) -> Share | ServiceError:
        return self._owned(share_id, requesting_user_id)

    def _owned(self, share_id: str, requesting_user_id: str) -> Share | ServiceError:
        share = (
            self.db.query(Share)
            .options(joinedload(Share.document))
            .filter(Share.share_id == share_id, Share.from_user_id == requesting_user_id)
            .first()
        )
        if not share:
            return errors.not_found("Share not found")
        return share

    def get_by_token(self, share_token: str) -> Share | ServiceError:
        share = self.db.query(Share).filter(Share.share_token == share_token).first()
        if not share:
            return errors.not_found("Share not found")
        return share

    def resolve_token(self, share_token: str, document_id: str) -> Share | ServiceError:
        share = (
            self.db.query(Share)
            .filter(Share.share_token == share_token, Share.document_id == document_id)
            .first()
        )
        if not share:
            return errors.not_found("Share not found")
        if share.is_revoked:
            return errors.REVOKED
        if share.is_expired(self.clock()):
            return errors.EXPIRED
        return share

    def list_mine(self, user_id: str) -> list[Share]:
        return (
            self.db.query(Share)
            .options(joinedload(Share.document))
            .filter(Share.from_user_id == user_id)
            .order_by(Share.created_at.desc())
            .all()
        )

    def list_received(self, user: User) -> list[Share]:
        return (
            self.db.query(Share)
            .options(joinedload(Share.document))
            .filter(
                or_(
                    Share.to_user_id == user.user_id,
                    func.lower(Share.to_user_email) == user.email.lower(),
                )
            )
            .order_by(Share.created_at.desc())
            .all()
        )

    # ── state transitions ─────────────────────────────────────────────

    def revoke(self, share_id: str, requesting_user_id: str) -> Share | ServiceError:
        share = self._owned(share_id, requesting_user_id)
        if isinstance(share, ServiceError):
            return share
        if share.is_revoked:
            return share

        now = self.clock()
        share.is_revoked = True
        share.revoked_at = now
        share.dedupe_key = None
        self.db.add(share)
        append_access_log(
            self.db,
            AccessAction.SHARE_REVOKE,
            document_id=share.document_id,
            share_id=share.share_id,
            viewer_user_id=requesting_user_id,
            at=now,
        )
        self.db.commit()
        self.db.refresh(share)
        logger.info(f"Share {share.share_id} revoked by {requesting_user_id}")
        return share

    def set_expiry(
        self, share_id: str, requesting_user_id: str, new_expiry: datetime | None
    ) -> Share | ServiceError:
        share = self._owned(share_id, requesting_user_id)
        if isinstance(share, ServiceError):
            return share

        now = self.clock()
        if share.is_revoked:
            return errors.REVOKED
        if share.is_expired(now):
            return errors.EXPIRED
        new_expiry = as_utc(new_expiry)
        if new_expiry is not None and new_expiry <= now:
            return errors.invalid_input("InvalidExpiry", "Expiry must be in the future")
        return self._apply_expiry(share, new_expiry, requesting_user_id, now)

    def expire_now(self, share_id: str, requesting_user_id: str) -> Share | ServiceError:
        share = self._owned(share_id, requesting_user_id)
        if isinstance(share, ServiceError):
            return share

        now = self.clock()
        if share.is_revoked:
            return errors.REVOKED
        if share.is_expired(now):
            return share
        return self._apply_expiry(share, now, requesting_user_id, now)

    def _apply_expiry(self, share: Share, expiry: datetime | None, actor_id: str, now: datetime) -> Share:
        previous = as_utc(share.expiry_time)
        share.expiry_time = expiry
        self.db.add(share)
        append_access_log(
            self.db,
            AccessAction.SHARE_EXPIRY_UPDATE,
            document_id=share.document_id,
            share_id=share.share_id,
            viewer_user_id=actor_id,
            meta={"previous": previous, "expiry_time": expiry},
            at=now,
        )
        self.db.commit()
        self.db.refresh(share)
        logger.info(f"Share {share.share_id} expiry set to {expiry.isoformat() if expiry else 'never'}")
        return share

    def delete(self, share_id: str, requesting_user_id: str) -> bool | ServiceError:
        share = self._owned(share_id, requesting_user_id)
        if isinstance(share, ServiceError):
            return share

        append_access_log(
            self.db,
            AccessAction.SHARE_DELETE,
            document_id=share.document_id,
            share_id=share.share_id,
            viewer_user_id=requesting_user_id,
            at=self.clock(),
        )
        self.db.delete(share)
        self.db.commit()
        logger.info(f"Share {share_id} deleted by {requesting_user_id}")
        return True
