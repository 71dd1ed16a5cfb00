"""Summary, transaction and savings goal endpoints."""

from fastapi import APIRouter, Depends, status

from moneyminder.api.dependencies import get_components, get_current_user
from moneyminder.api.schemas import ContributionRequest, GoalCreate, TransactionCreate
from moneyminder.models.finance import GoalPatch, SummaryPatch
from moneyminder.models.user import UserProfile
from moneyminder.orchestrator import AppComponents


router = APIRouter(prefix="/api", tags=["finance"])


# =============================================================================
# Summary
# =============================================================================

@router.get("/summary")
async def get_summary(
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    summary = await components.ledger.get_summary(user.id)
    return {"summary": summary.to_json()}


@router.patch("/summary")
async def update_summary(
    body: SummaryPatch,
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    updated = await components.ledger.update_summary(user.id, body)
    summary = await components.ledger.get_summary(user.id)
    return {"success": updated, "summary": summary.to_json()}


# =============================================================================
# Transactions
# =============================================================================

@router.get("/transactions")
async def list_transactions(
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    transactions = await components.ledger.list_transactions(user.id)
    return {"transactions": [t.to_json() for t in transactions]}


@router.post("/transactions", status_code=status.HTTP_201_CREATED)
async def add_transaction(
    body: TransactionCreate,
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    transaction = await components.ledger.add_transaction(
        user.id,
        date=body.date,
        description=body.description,
        amount=body.amount,
        category=body.category,
    )
    return {"transaction": transaction.to_json()}


# =============================================================================
# Savings goals
# =============================================================================

@router.get("/goals")
async def list_goals(
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    goals = await components.ledger.list_savings_goals(user.id)
    return {"goals": [goal.to_json() for goal in goals]}


@router.post("/goals", status_code=status.HTTP_201_CREATED)
async def add_goal(
    body: GoalCreate,
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    goal = await components.ledger.add_savings_goal(
        user.id,
        name=body.name,
        target=body.target,
        deadline=body.deadline,
    )
    return {"goal": goal.to_json()}


@router.patch("/goals/{goal_id}")
async def update_goal(
    goal_id: str,
    body: GoalPatch,
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    updated = await components.ledger.update_goal(goal_id, user.id, body)
    goal = await components.ledger.get_savings_goal(goal_id, user.id)
    return {"success": updated, "goal": goal.to_json()}


@router.post("/goals/{goal_id}/contribute")
async def contribute(
    goal_id: str,
    body: ContributionRequest,
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    goal = await components.ledger.contribute_to_goal(goal_id, user.id, body.amount)
    return {"success": True, "goal": goal.to_json()}
