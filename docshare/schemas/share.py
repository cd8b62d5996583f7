from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from docshare.core.time import as_utc
from docshare.models.share import ShareAccess


class CreateShareRequest(BaseModel):
    document_id: str = Field(..., min_length=1)
    to_user_email: Optional[EmailStr] = None
    access: Optional[ShareAccess] = Field(None, description="Defaults to private when the recipient is registered")
    expiry_time: Optional[datetime] = None


class UpdateExpiryRequest(BaseModel):
    expiry_time: Optional[datetime] = Field(None, description="Null clears the expiry")


class ShareOut(BaseModel):
    share_id: str
    share_token: str
    document_id: str
    from_user_id: str
    to_user_id: Optional[str]
    to_user_email: Optional[str]
    access: ShareAccess
    expiry_time: Optional[datetime]
    is_revoked: bool
    revoked_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("expiry_time", "revoked_at", "created_at", mode="before")
    @classmethod
    def assume_utc(cls, v):
        if isinstance(v, datetime):
            return as_utc(v)
        return v


class ShareListItem(ShareOut):
    file_name: Optional[str] = None


class CreateShareResponse(BaseModel):
    share: ShareOut
    reused: bool
    recipient_registered: bool
    share_link: str


class ShareMinimal(BaseModel):
    share_id: str
    document_id: str
    access: ShareAccess
    expiry_time: Optional[datetime]
    is_active: bool


class ResolveShareResponse(BaseModel):
    access: ShareAccess
    document_id: str
