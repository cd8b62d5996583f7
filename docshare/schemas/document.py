from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from docshare.core.time import as_utc


class DocumentOut(BaseModel):
    document_id: str
    owner_user_id: str
    file_name: str
    mime_type: Optional[str]
    file_size_bytes: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("created_at", mode="before")
    @classmethod
    def assume_utc(cls, v):
        if isinstance(v, datetime):
            return as_utc(v)
        return v
