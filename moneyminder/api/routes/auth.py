"""Registration, verification, login and two-factor endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import JSONResponse

from moneyminder.api.dependencies import (
    clear_session_cookie,
    get_components,
    get_current_user,
    get_optional_user,
    set_session_cookie,
)
from moneyminder.api.schemas import (
    CodeRequest,
    LoginRequest,
    RegisterRequest,
    ResendVerificationRequest,
    TwoFactorLoginRequest,
)
from moneyminder.errors import InvalidVerificationTokenError
from moneyminder.models.user import SessionGrant, UserProfile
from moneyminder.orchestrator import AppComponents


router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    components: AppComponents = Depends(get_components),
):
    user = await components.auth.register(
        name=body.name,
        email=body.email,
        password=body.password,
        currency=body.currency,
    )
    return {"user": user.to_json()}


@router.post("/login")
async def login(
    body: LoginRequest,
    response: Response,
    components: AppComponents = Depends(get_components),
):
    result = await components.auth.login(body.email, body.password)
    if isinstance(result, SessionGrant):
        set_session_cookie(response, result, components)
    return result.to_json()


@router.post("/logout")
async def logout(response: Response):
    clear_session_cookie(response)
    return {"success": True}


@router.get("/me")
async def me(user: Optional[UserProfile] = Depends(get_optional_user)):
    if user is None:
        return JSONResponse({"authenticated": False}, status_code=status.HTTP_401_UNAUTHORIZED)
    return {"authenticated": True, "user": user.to_json()}


@router.get("/verify-email")
async def verify_email(
    token: Optional[str] = Query(default=None),
    components: AppComponents = Depends(get_components),
):
    if not token:
        return JSONResponse(
            {"success": False, "message": "Verification token is required"},
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    try:
        await components.auth.verify_email(token)
    except InvalidVerificationTokenError as e:
        return JSONResponse(
            {"success": False, "message": e.message},
            status_code=e.status_code,
        )
    return {"success": True}


@router.post("/resend-verification")
async def resend_verification(
    body: ResendVerificationRequest,
    components: AppComponents = Depends(get_components),
):
    sent = await components.auth.resend_verification(body.email)
    return {"success": sent}


@router.post("/two-factor/setup")
async def two_factor_setup(
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    setup = await components.auth.enable_two_factor(user.id)
    return setup.to_json()


@router.post("/two-factor/activate")
async def two_factor_activate(
    body: CodeRequest,
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    activated = await components.auth.activate_two_factor(user.id, body.code)
    return {"success": activated}


@router.post("/two-factor/verify")
async def two_factor_verify(
    body: TwoFactorLoginRequest,
    response: Response,
    components: AppComponents = Depends(get_components),
):
    grant = await components.auth.verify_two_factor_login(
        body.user_id,
        body.code,
        body.challenge_token,
    )
    set_session_cookie(response, grant, components)
    return {"user": grant.user.to_json()}


@router.post("/two-factor/disable")
async def two_factor_disable(
    body: CodeRequest,
    user: UserProfile = Depends(get_current_user),
    components: AppComponents = Depends(get_components),
):
    disabled = await components.auth.disable_two_factor(user.id, body.code)
    return {"success": disabled}
