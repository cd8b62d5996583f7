from fastapi import APIRouter, Depends, Query

from docshare.api.deps import get_otp_service
from docshare.api.errors import error_response
from docshare.core.time import as_utc
from docshare.schemas.otp import (
    OtpStatusResponse,
    SendOtpRequest,
    SendOtpResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from docshare.services.errors import ServiceError
from docshare.services.otp_service import OtpService

router = APIRouter(prefix="/otp", tags=["otp"])


@router.post("/send", response_model=SendOtpResponse)
def send_otp(payload: SendOtpRequest, otp: OtpService = Depends(get_otp_service)):
    issued = otp.send(payload.share_id, payload.email)
    if isinstance(issued, ServiceError):
        return error_response(issued)
    return SendOtpResponse(otp_id=issued.challenge_id, expiry_time=issued.expires_at, delivered=issued.delivered)


@router.post("/verify", response_model=VerifyOtpResponse)
def verify_otp(payload: VerifyOtpRequest, otp: OtpService = Depends(get_otp_service)):
    challenge = otp.verify(payload.share_id, payload.email, payload.otp_code)
    if isinstance(challenge, ServiceError):
        return error_response(challenge)
    return VerifyOtpResponse(verified_until=as_utc(challenge.expiry_time))


@router.get("/status", response_model=OtpStatusResponse)
def otp_status(
    share_id: str = Query(..., min_length=1),
    email: str = Query(..., min_length=1),
    otp: OtpService = Depends(get_otp_service),
):
    return OtpStatusResponse(verified=otp.status(share_id, email))
