"""Decision and comment schemas."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from deliberate.schemas.base import CamelModel

DecisionStatus = Literal["draft", "open", "closed"]


class DecisionCreate(CamelModel):
    """POST /api/decisions request."""

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    category: str = Field(min_length=1, max_length=100)
    status: DecisionStatus = "draft"
    deadline: datetime | None = None
    outcome: str | None = None


class DecisionUpdate(CamelModel):
    """PUT /api/decisions/{id} request - every field optional."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1)
    category: str | None = Field(default=None, min_length=1, max_length=100)
    status: DecisionStatus | None = None
    deadline: datetime | None = None
    outcome: str | None = None
    consensus_reached: bool | None = None


class DecisionOut(CamelModel):
    id: int
    title: str
    description: str
    category: str
    status: str
    deadline: datetime | None = None
    author_id: str | None = None
    outcome: str | None = None
    consensus_reached: bool = False
    is_demo: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CommentCreate(CamelModel):
    """POST /api/decisions/{id}/comments request."""

    content: str = Field(min_length=1, max_length=5000)


class CommentOut(CamelModel):
    id: int
    decision_id: int
    user_id: str
    content: str
    is_ai_generated: bool = False
    created_at: datetime | None = None


class AuditLogOut(CamelModel):
    id: int
    user_id: str | None = None
    action: str
    entity_type: str
    entity_id: int
    details: dict | None = None
    created_at: datetime | None = None
