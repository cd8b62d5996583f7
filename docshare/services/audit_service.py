import json
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from docshare.core.time import utcnow
from docshare.models import AccessAction, AccessLogEntry


def _normalize_meta(meta: Any) -> str | None:
    if meta is None:
        return None
    if isinstance(meta, str):
        return json.dumps({"message": meta})
    try:
        return json.dumps(meta, default=str)
    except TypeError:
        return json.dumps({"repr": repr(meta)})


def append_access_log(
    db: Session,
    action: AccessAction,
    document_id: str,
    share_id: str | None = None,
    viewer_user_id: str | None = None,
    meta: Any = None,
    at: datetime | None = None,
    commit: bool = False,
) -> AccessLogEntry:
    """Add an audit row to the current transaction.

    Mutating services leave ``commit`` off so the entry lands atomically with
    the change it describes; routers recording a view/download pass ``commit=True``.
    """
    entry = AccessLogEntry(
        action=action,
        document_id=document_id,
        share_id=share_id,
        viewer_user_id=viewer_user_id,
        meta=_normalize_meta(meta),
        created_at=at or utcnow(),
    )
    db.add(entry)
    if commit:
        db.commit()
    return entry
