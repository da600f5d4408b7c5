"""Decision endpoints - CRUD, status transitions, noise."""

from fastapi import APIRouter, status

from deliberate.api.deps import LifecycleDep
from deliberate.auth.middleware import UserDep
from deliberate.config import settings
from deliberate.engine.governance import is_admin_by_email
from deliberate.errors import Forbidden
from deliberate.schemas.decision import DecisionCreate, DecisionOut, DecisionUpdate
from deliberate.schemas.judgment import VarianceResult

router = APIRouter()


@router.get("/decisions", response_model=list[DecisionOut])
async def list_decisions(user: UserDep, lifecycle: LifecycleDep):
    return await lifecycle.list_decisions()


@router.post("/decisions", response_model=DecisionOut, status_code=status.HTTP_201_CREATED)
async def create_decision(body: DecisionCreate, user: UserDep, lifecycle: LifecycleDep):
    return await lifecycle.create_decision(
        title=body.title,
        description=body.description,
        category=body.category,
        author_id=user.id,
        status=body.status,
        deadline=body.deadline,
        outcome=body.outcome,
    )


@router.get("/decisions/{decision_id}", response_model=DecisionOut)
async def get_decision(decision_id: int, user: UserDep, lifecycle: LifecycleDep):
    return await lifecycle.get_decision(decision_id)


@router.put("/decisions/{decision_id}", response_model=DecisionOut)
async def update_decision(
    decision_id: int, body: DecisionUpdate, user: UserDep, lifecycle: LifecycleDep
):
    """Partial update. Setting status to closed reveals every judgment."""
    return await lifecycle.update_decision(
        decision_id, body.model_dump(exclude_unset=True), user_id=user.id
    )


@router.delete("/decisions/{decision_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_decision(decision_id: int, user: UserDep, lifecycle: LifecycleDep):
    """Authors and admins only."""
    decision = await lifecycle.get_decision(decision_id)
    if decision.author_id != user.id and not is_admin_by_email(user.email, settings.admin_emails):
        raise Forbidden()
    await lifecycle.delete_decision(decision_id)


@router.get("/decisions/{decision_id}/variance", response_model=VarianceResult)
async def get_variance(decision_id: int, user: UserDep, lifecycle: LifecycleDep):
    return await lifecycle.compute_noise(decision_id)
