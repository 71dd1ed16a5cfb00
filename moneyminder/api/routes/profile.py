"""Profile endpoints for the signed-in user."""

from fastapi import APIRouter, Depends, Query, Response

from moneyminder.api.dependencies import clear_session_cookie, get_components, get_current_user
from moneyminder.models.user import UserPatch, UserProfile
from moneyminder.orchestrator import AppComponents


router = APIRouter(prefix="/api/profile", tags=["profile"])


@router.get("")
async def get_profile(user: UserProfile = Depends(get_current_user)):
    return {"user": user.to_json()}


@router.patch("")
async def update_profile(
    body: UserPatch,
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    updated = await components.auth.update_profile(user.id, body)
    profile = await components.auth.get_user(user.id)
    return {"success": updated, "user": profile.to_json()}


@router.delete("")
async def delete_profile(
    response: Response,
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    deleted = await components.auth.delete_account(user.id)
    clear_session_cookie(response)
    return {"success": deleted}


@router.get("/activity")
async def activity(
    limit: int = Query(default=50, ge=1, le=200),
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    events = await components.audit.recent_for_user(user.id, limit=limit)
    return {"events": [event.to_json() for event in events]}
