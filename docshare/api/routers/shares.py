from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from docshare.api.deps import get_share_manager, require_user
from docshare.api.errors import error_response
from docshare.core.time import as_utc
from docshare.schemas.share import (
    CreateShareRequest,
    CreateShareResponse,
    ShareListItem,
    ShareMinimal,
    ShareOut,
    UpdateExpiryRequest,
)
from docshare.services.access_service import AuthIdentity
from docshare.services.errors import ServiceError
from docshare.services.qr_service import build_share_link, render_qr_png
from docshare.services.share_service import ShareManager
from docshare.services.user_service import get_user

router = APIRouter(prefix="/shares", tags=["shares"])


def _list_item(share) -> ShareListItem:
    item = ShareOut.model_validate(share).model_dump()
    return ShareListItem(**item, file_name=share.document.file_name if share.document else None)


def _minimal(share, manager: ShareManager) -> ShareMinimal:
    return ShareMinimal(
        share_id=share.share_id,
        document_id=share.document_id,
        access=share.access,
        expiry_time=as_utc(share.expiry_time),
        is_active=share.is_active(manager.clock()),
    )


@router.post("/create", response_model=CreateShareResponse)
def create_share(
    payload: CreateShareRequest,
    identity: AuthIdentity = Depends(require_user),
    manager: ShareManager = Depends(get_share_manager),
):
    result = manager.create(
        document_id=payload.document_id,
        creator_id=identity.user_id,
        recipient_email=payload.to_user_email,
        requested_access=payload.access,
        expiry=payload.expiry_time,
    )
    if isinstance(result, ServiceError):
        return error_response(result)
    return CreateShareResponse(
        share=ShareOut.model_validate(result.share),
        reused=result.reused,
        recipient_registered=result.recipient_registered,
        share_link=build_share_link(result.share.share_token, manager.settings),
    )


@router.get("/mine", response_model=List[ShareListItem])
def list_my_shares(
    identity: AuthIdentity = Depends(require_user),
    manager: ShareManager = Depends(get_share_manager),
):
    return [_list_item(s) for s in manager.list_mine(identity.user_id)]


@router.get("/received", response_model=List[ShareListItem])
def list_received_shares(
    identity: AuthIdentity = Depends(require_user),
    manager: ShareManager = Depends(get_share_manager),
):
    user = get_user(manager.db, identity.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return [_list_item(s) for s in manager.list_received(user)]


@router.get("/by-token/{share_token}", response_model=ShareMinimal)
def get_share_by_token(share_token: str, manager: ShareManager = Depends(get_share_manager)):
    """Resolves the token carried by a share link to the ids the OTP and file routes take."""
    share = manager.get_by_token(share_token)
    if isinstance(share, ServiceError):
        return error_response(share)
    return _minimal(share, manager)


@router.get("/{share_id}", response_model=ShareOut)
def get_share(
    share_id: str,
    identity: AuthIdentity = Depends(require_user),
    manager: ShareManager = Depends(get_share_manager),
):
    share = manager.get_owned(share_id, identity.user_id)
    if isinstance(share, ServiceError):
        return error_response(share)
    return share


@router.get("/{share_id}/minimal", response_model=ShareMinimal)
def get_share_minimal(share_id: str, manager: ShareManager = Depends(get_share_manager)):
    """Public projection used by the share landing page; never exposes the token."""
    share = manager.get(share_id)
    if not share:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Share not found")
    return _minimal(share, manager)


@router.get("/{share_id}/qr.png")
def get_share_qr(
    share_id: str,
    identity: AuthIdentity = Depends(require_user),
    manager: ShareManager = Depends(get_share_manager),
):
    share = manager.get_owned(share_id, identity.user_id)
    if isinstance(share, ServiceError):
        return error_response(share)
    png = render_qr_png(build_share_link(share.share_token, manager.settings))
    return Response(content=png, media_type="image/png", headers={"Cache-Control": "no-store"})


@router.post("/{share_id}/notify")
def notify_share_recipient(
    share_id: str,
    identity: AuthIdentity = Depends(require_user),
    manager: ShareManager = Depends(get_share_manager),
):
    result = manager.notify_recipient(share_id, identity.user_id)
    if isinstance(result, ServiceError):
        return error_response(result)
    return {"delivered": result}


@router.post("/{share_id}/revoke", response_model=ShareOut)
def revoke_share(
    share_id: str,
    identity: AuthIdentity = Depends(require_user),
    manager: ShareManager = Depends(get_share_manager),
):
    share = manager.revoke(share_id, identity.user_id)
    if isinstance(share, ServiceError):
        return error_response(share)
    return share


@router.patch("/{share_id}/expiry", response_model=ShareOut)
def update_share_expiry(
    share_id: str,
    payload: UpdateExpiryRequest,
    identity: AuthIdentity = Depends(require_user),
    manager: ShareManager = Depends(get_share_manager),
):
    share = manager.set_expiry(share_id, identity.user_id, payload.expiry_time)
    if isinstance(share, ServiceError):
        return error_response(share)
    return share


@router.post("/{share_id}/expire-now", response_model=ShareOut)
def expire_share_now(
    share_id: str,
    identity: AuthIdentity = Depends(require_user),
    manager: ShareManager = Depends(get_share_manager),
):
    share = manager.expire_now(share_id, identity.user_id)
    if isinstance(share, ServiceError):
        return error_response(share)
    return share


@router.delete("/{share_id}")
def delete_share(
    share_id: str,
    identity: AuthIdentity = Depends(require_user),
    manager: ShareManager = Depends(get_share_manager),
):
    result = manager.delete(share_id, identity.user_id)
    if isinstance(result, ServiceError):
        return error_response(result)
    return {"deleted": True, "share_id": share_id}
