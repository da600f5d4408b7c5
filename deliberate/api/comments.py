"""Comment endpoints."""

from fastapi import APIRouter, status

from deliberate.api.deps import LifecycleDep
from deliberate.auth.middleware import UserDep
from deliberate.schemas.decision import CommentCreate, CommentOut

router = APIRouter()


@router.get("/decisions/{decision_id}/comments", response_model=list[CommentOut])
async def list_comments(decision_id: int, user: UserDep, lifecycle: LifecycleDep):
    return await lifecycle.list_comments(decision_id)


@router.post(
    "/decisions/{decision_id}/comments",
    response_model=CommentOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    decision_id: int, body: CommentCreate, user: UserDep, lifecycle: LifecycleDep
):
    return await lifecycle.add_comment(decision_id, user.id, body.content)
