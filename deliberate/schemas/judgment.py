"""Judgment and noise schemas."""

from datetime import datetime

from pydantic import Field

from deliberate.schemas.base import CamelModel


class JudgmentCreate(CamelModel):
    """POST /api/decisions/{id}/judgments request."""

    score: int = Field(ge=1, le=10, strict=True)
    rationale: str = Field(min_length=20)


class JudgmentOut(CamelModel):
    """A judgment as visible to the requester."""

    id: int
    decision_id: int
    user_id: str
    score: int
    rationale: str
    submitted_at: datetime | None = None


class VarianceResult(CamelModel):
    """Dispersion of a decision's scores. Derived, never persisted."""

    mean: float
    std_dev: float
    cv: float
    is_high_noise: bool
    score_count: int
