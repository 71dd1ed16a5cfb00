"""FastAPI dependencies: the component container and the session guard."""

from typing import Optional

from fastapi import Depends, Request, Response

from moneyminder.errors import AuthError
from moneyminder.models.user import SessionGrant, UserProfile
from moneyminder.orchestrator import AppComponents


SESSION_COOKIE = "auth_token"


def get_components(request: Request) -> AppComponents:
    return request.app.state.components


def session_token(request: Request) -> Optional[str]:
    """The session token from the cookie, or a Bearer header for API clients."""
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


async def get_current_user(
    request: Request,
    components: AppComponents = Depends(get_components),
) -> UserProfile:
    """Resolve the caller or fail with 401."""
    return await components.auth.authenticate(session_token(request))


async def get_optional_user(
    request: Request,
    components: AppComponents = Depends(get_components),
) -> Optional[UserProfile]:
    try:
        return await components.auth.authenticate(session_token(request))
    except AuthError:
        return None


def set_session_cookie(response: Response, grant: SessionGrant, components: AppComponents) -> None:
    auth_settings = components.settings.auth
    response.set_cookie(
        SESSION_COOKIE,
        grant.token,
        max_age=int(components.tokens.default_ttl.total_seconds()),
        httponly=True,
        secure=auth_settings.cookie_secure,
        samesite="strict",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/", httponly=True, samesite="strict")
