"""AI coaching schemas."""

from pydantic import Field

from deliberate.schemas.base import CamelModel


class CoachChatRequest(CamelModel):
    """POST /api/coaching/chat request."""

    message: str = Field(min_length=1, max_length=8000)
    decision_id: int | None = None
    provider: str | None = None
    lookup_eins: bool = False


class ProviderInfo(CamelModel):
    id: str
    name: str
    model: str
