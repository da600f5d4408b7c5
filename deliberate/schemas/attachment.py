"""Upload and attachment schemas."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from deliberate.schemas.base import CamelModel

AttachmentContext = Literal["decision", "judgment", "comment", "coaching"]


class UploadOut(CamelModel):
    """POST /api/uploads response - feeds AttachmentCreate."""

    file_name: str
    object_path: str
    file_type: str
    file_size: int


class AttachmentCreate(CamelModel):
    """POST /api/decisions/{id}/attachments request."""

    file_name: str = Field(min_length=1)
    file_type: str = Field(min_length=1)
    file_size: int = Field(gt=0)
    object_path: str = Field(min_length=1)
    context: AttachmentContext = "decision"


class AttachmentOut(CamelModel):
    id: int
    decision_id: int | None = None
    user_id: str
    file_name: str
    file_type: str
    file_size: int
    object_path: str
    context: str
    created_at: datetime | None = None


class AttachmentText(CamelModel):
    extracted_text: str
