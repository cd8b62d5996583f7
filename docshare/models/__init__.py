from .user import User
from .document import Document
from .share import Share, ShareAccess
from .otp_challenge import OtpChallenge
from .access_log import AccessAction, AccessLogEntry

__all__ = [
    "User",
    "Document",
    "Share",
    "ShareAccess",
    "OtpChallenge",
    "AccessAction",
    "AccessLogEntry",
]
