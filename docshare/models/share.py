"""Share grants: one document, public or bound to a single recipient."""
import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import relationship

from docshare.core.time import as_utc, utcnow
from docshare.db.base import Base


class ShareAccess(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class Share(Base):
    __tablename__ = "shares"

    share_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    share_token = Column(String(128), unique=True, nullable=False, index=True)
    document_id = Column(String(36), ForeignKey("documents.document_id", ondelete="CASCADE"), nullable=False, index=True)
    from_user_id = Column(String(36), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    to_user_id = Column(String(36), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True, index=True)
    to_user_email = Column(String(255), nullable=True)
    access = Column(Enum(ShareAccess, values_callable=lambda obj: [e.value for e in obj]), nullable=False)
    expiry_time = Column(DateTime(timezone=True), nullable=True)
    is_revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # document|creator|recipient|access while the share may still be active;
    # NULL once revoked or retired, so the unique index only spans live rows.
    dedupe_key = Column(String(512), unique=True, nullable=True)

    document = relationship("Document", back_populates="shares")
    otp_challenges = relationship(
        "OtpChallenge", back_populates="share", cascade="all, delete-orphan"
    )

    @property
    def recipient_identity(self) -> str:
        if self.to_user_id:
            return self.to_user_id
        if self.to_user_email:
            return self.to_user_email.lower()
        return ""

    def is_expired(self, now: datetime) -> bool:
        expiry = as_utc(self.expiry_time)
        return expiry is not None and expiry <= now

    def is_active(self, now: datetime) -> bool:
        return not self.is_revoked and not self.is_expired(now)


def build_dedupe_key(document_id: str, from_user_id: str, recipient_identity: str, access: ShareAccess) -> str:
    return "|".join([document_id, from_user_id, recipient_identity, access.value])
