"""Judgment endpoints - sealed submission and gated listing."""

from fastapi import APIRouter, status

from deliberate.api.deps import LifecycleDep
from deliberate.auth.middleware import UserDep
from deliberate.schemas.judgment import JudgmentCreate, JudgmentOut

router = APIRouter()


@router.post(
    "/decisions/{decision_id}/judgments",
    response_model=JudgmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def submit_judgment(
    decision_id: int, body: JudgmentCreate, user: UserDep, lifecycle: LifecycleDep
):
    """Submit the caller's one judgment for this decision."""
    return await lifecycle.submit_judgment(
        decision_id, user.id, score=body.score, rationale=body.rationale
    )


@router.get("/decisions/{decision_id}/judgments", response_model=list[JudgmentOut])
async def list_judgments(decision_id: int, user: UserDep, lifecycle: LifecycleDep):
    """Every judgment once closed, otherwise only the caller's own."""
    return await lifecycle.list_judgments(decision_id, requesting_user_id=user.id)
