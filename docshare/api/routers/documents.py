import logging
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse

from docshare.api.deps import (
    get_access_resolver,
    get_claimed_email,
    get_document_store,
    get_identity,
    get_share_manager,
    require_user,
)
from docshare.api.errors import denial_response, error_response
from docshare.models import AccessAction
from docshare.schemas.document import DocumentOut
from docshare.schemas.share import ResolveShareResponse
from docshare.services.access_service import AccessResolver, AuthIdentity, ShareReference
from docshare.services.audit_service import append_access_log
from docshare.services.document_service import DocumentStore
from docshare.services.errors import ServiceError
from docshare.services.share_service import ShareManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("", response_model=List[DocumentOut])
def list_documents(
    identity: AuthIdentity = Depends(require_user),
    store: DocumentStore = Depends(get_document_store),
):
    return store.list_for_owner(identity.user_id)


@router.post("/upload", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
def upload_document(
    file: UploadFile = File(...),
    identity: AuthIdentity = Depends(require_user),
    store: DocumentStore = Depends(get_document_store),
):
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")
    return store.save_upload(identity.user_id, file.filename, file.file, file.content_type)


@router.get("/resolve-share", response_model=ResolveShareResponse)
def resolve_share_token(
    token: str = Query(..., min_length=1),
    doc: str = Query(..., min_length=1),
    manager: ShareManager = Depends(get_share_manager),
):
    share = manager.resolve_token(token, doc)
    if isinstance(share, ServiceError):
        return error_response(share)
    return ResolveShareResponse(access=share.access, document_id=share.document_id)


def _serve(
    document_id: str,
    share_id: str | None,
    token: str | None,
    identity: AuthIdentity,
    claimed_email: str | None,
    resolver: AccessResolver,
    store: DocumentStore,
    download: bool,
):
    decision = resolver.resolve(
        document_id,
        ShareReference(share_id=share_id, share_token=token),
        identity=identity,
        claimed_email=claimed_email,
        want_download=download,
    )
    action = AccessAction.DOWNLOAD if download else AccessAction.VIEW
    if not decision.allowed:
        logger.warning(f"Denied {action.value} of document {document_id}: {decision.reason.value}")
        return denial_response(decision)

    document = decision.document
    path = store.path_for(document)
    if not path.is_file():
        logger.error(f"File for document {document_id} missing on disk")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File missing on server")

    append_access_log(
        resolver.db,
        action,
        document_id=document.document_id,
        share_id=decision.share.share_id if decision.share else None,
        viewer_user_id=decision.viewer_user_id,
        at=resolver.clock(),
        commit=True,
    )
    return FileResponse(
        path,
        media_type=document.mime_type or "application/octet-stream",
        filename=document.file_name,
        content_disposition_type="attachment" if download else "inline",
        headers={"Cache-Control": "private, max-age=0, must-revalidate"},
    )


@router.get("/view/{document_id}")
def view_document(
    document_id: str,
    share_id: str | None = Query(None),
    token: str | None = Query(None),
    identity: AuthIdentity = Depends(get_identity),
    claimed_email: str | None = Depends(get_claimed_email),
    resolver: AccessResolver = Depends(get_access_resolver),
    store: DocumentStore = Depends(get_document_store),
):
    return _serve(document_id, share_id, token, identity, claimed_email, resolver, store, download=False)


@router.get("/download/{document_id}")
def download_document(
    document_id: str,
    share_id: str | None = Query(None),
    token: str | None = Query(None),
    identity: AuthIdentity = Depends(get_identity),
    claimed_email: str | None = Depends(get_claimed_email),
    resolver: AccessResolver = Depends(get_access_resolver),
    store: DocumentStore = Depends(get_document_store),
):
    return _serve(document_id, share_id, token, identity, claimed_email, resolver, store, download=True)


@router.delete("/{document_id}")
def delete_document(
    document_id: str,
    identity: AuthIdentity = Depends(require_user),
    store: DocumentStore = Depends(get_document_store),
):
    result = store.delete(document_id, identity.user_id)
    if isinstance(result, ServiceError):
        return error_response(result)
    return {"deleted": True, "document_id": document_id}
