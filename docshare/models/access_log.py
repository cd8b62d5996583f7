"""Append-only audit trail of share and document activity."""
import enum
import uuid

from sqlalchemy import Column, DateTime, Enum, String, Text

from docshare.core.time import utcnow
from docshare.db.base import Base


class AccessAction(str, enum.Enum):
    VIEW = "view"
    DOWNLOAD = "download"
    OTP_REQUEST = "otp_request"
    OTP_VERIFY = "otp_verify"
    SHARE_CREATE = "share_create"
    SHARE_REVOKE = "share_revoke"
    SHARE_EXPIRY_UPDATE = "share_expiry_update"
    SHARE_DELETE = "share_delete"
    DOCUMENT_DELETE = "document_delete"


class AccessLogEntry(Base):
    __tablename__ = "access_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # plain columns: entries outlive the shares and documents they describe
    share_id = Column(String(36), nullable=True, index=True)
    document_id = Column(String(36), nullable=False, index=True)
    viewer_user_id = Column(String(36), nullable=True)
    action = Column(Enum(AccessAction, values_callable=lambda obj: [e.value for e in obj]), nullable=False)
    meta = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
