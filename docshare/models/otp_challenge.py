"""One-time passcode bound to a (user, share) pair."""
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from docshare.core.time import as_utc, utcnow
from docshare.db.base import Base


class OtpChallenge(Base):
    __tablename__ = "otp_verifications"

    otp_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    share_id = Column(String(36), ForeignKey("shares.share_id", ondelete="CASCADE"), nullable=False, index=True)
    otp_code = Column(String(10), nullable=False)
    expiry_time = Column(DateTime(timezone=True), nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # user|share while the code is pending; at most one pending row per pair
    pending_key = Column(String(80), unique=True, nullable=True)

    share = relationship("Share", back_populates="otp_challenges")

    def is_expired(self, now: datetime) -> bool:
        return as_utc(self.expiry_time) <= now


def build_pending_key(user_id: str, share_id: str) -> str:
    return f"{user_id}|{share_id}"
