from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class SendOtpRequest(BaseModel):
    share_id: str = Field(..., min_length=1)
    email: EmailStr


class SendOtpResponse(BaseModel):
    message: str = "OTP created. Check your email."
    otp_id: str
    expiry_time: datetime
    delivered: bool


class VerifyOtpRequest(BaseModel):
    share_id: str = Field(..., min_length=1)
    email: EmailStr
    otp_code: str = Field(..., min_length=4, max_length=10)


class VerifyOtpResponse(BaseModel):
    success: bool = True
    verified_until: datetime


class OtpStatusResponse(BaseModel):
    verified: bool
