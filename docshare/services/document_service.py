import logging
import os
import secrets
import shutil
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Callable

from sqlalchemy.orm import Session

from docshare.core.config import Settings, get_settings
from docshare.core.time import utcnow
from docshare.models import AccessAction, Document
from . import errors
from .audit_service import append_access_log
from .errors import ServiceError

logger = logging.getLogger(__name__)


class DocumentStore:
    """Document records plus their bytes on local disk under ``file_root``."""

    def __init__(self, db: Session, settings: Settings | None = None, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock
        self.root = Path(self.settings.file_root)

    def path_for(self, document: Document) -> Path:
        return self.root / document.file_path

    def save_upload(
        self, owner_user_id: str, file_name: str, stream: BinaryIO, mime_type: str | None = None
    ) -> Document:
        self.root.mkdir(parents=True, exist_ok=True)
        disk_name = f"{secrets.token_hex(16)}{Path(file_name).suffix}"
        target = self.root / disk_name
        with open(target, "wb") as out:
            shutil.copyfileobj(stream, out)
        return self.register(owner_user_id, file_name, disk_name, mime_type, target.stat().st_size)

    def register(
        self,
        owner_user_id: str,
        file_name: str,
        file_path: str,
        mime_type: str | None = None,
        file_size_bytes: int | None = None,
    ) -> Document:
        document = Document(
            owner_user_id=owner_user_id,
            file_name=file_name,
            file_path=file_path,
            mime_type=mime_type,
            file_size_bytes=file_size_bytes,
            created_at=self.clock(),
        )
        self.db.add(document)
        self.db.commit()
        self.db.refresh(document)
        logger.info(f"Registered document {document.document_id} for owner {owner_user_id}")
        return document

    def list_for_owner(self, owner_user_id: str) -> list[Document]:
        return (
            self.db.query(Document)
            .filter(Document.owner_user_id == owner_user_id)
            .order_by(Document.created_at.desc())
            .all()
        )

    def delete(self, document_id: str, owner_user_id: str) -> bool | ServiceError:
        """Remove a document; its shares and their OTP challenges go with it."""
        document = (
            self.db.query(Document)
            .filter(Document.document_id == document_id, Document.owner_user_id == owner_user_id)
            .first()
        )
        if not document:
            return errors.not_found("Document not found")

        path = self.path_for(document)
        append_access_log(
            self.db,
            AccessAction.DOCUMENT_DELETE,
            document_id=document.document_id,
            viewer_user_id=owner_user_id,
            meta={"shares": len(document.shares)},
            at=self.clock(),
        )
        self.db.delete(document)
        self.db.commit()
        logger.info(f"Document {document_id} deleted by {owner_user_id}")

        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove file for document {document_id}: {e}")
        return True
