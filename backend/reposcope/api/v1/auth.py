from datetime import datetime
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from reposcope.api.error_schema import error_response
from reposcope.config import settings
from reposcope.db.models import User
from reposcope.deps import get_current_user, get_db_session
from reposcope.services.github_oauth import (
    build_github_auth_url,
    exchange_code_for_access_token,
    fetch_github_user,
    generate_oauth_state,
    profile_from_github_user,
    validate_oauth_state,
)
from reposcope.services.tokens import create_access_token
from reposcope.services.user_store import upsert_user

router = APIRouter(prefix="/auth", tags=["auth"])
ME_RESPONSE_EXAMPLE = {
    "id": 1,
    "open_id": "github:123",
    "name": "The Octocat",
    "email": "octo@example.com",
    "role": "user",
    "github_username": "octocat",
    "last_signed_in": "2026-01-01T00:00:00Z",
}


class CurrentUserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    open_id: str
    name: str | None = None
    email: str | None = None
    role: str
    github_username: str | None = None
    last_signed_in: datetime | None = None


class LogoutResponse(BaseModel):
    success: bool


@router.get(
    "/github",
    summary="Start GitHub OAuth flow",
    description="Redirects the user to GitHub authorization page. Supports an optional frontend-relative `next` path.",
    responses={
        302: {"description": "Redirect to GitHub OAuth authorize endpoint"},
    },
)
def auth_github(next_path: str = Query(default="/dashboard", alias="next")) -> RedirectResponse:
    state = generate_oauth_state(next_path=next_path)
    return RedirectResponse(url=build_github_auth_url(state), status_code=status.HTTP_302_FOUND)


@router.get(
    "/callback",
    summary="Handle GitHub OAuth callback",
    description="Exchanges the OAuth code, upserts the user, then redirects to the frontend with an access token.",
    responses={
        302: {"description": "Login succeeded and redirected to frontend"},
        400: error_response("Invalid OAuth state or request"),
        502: error_response("GitHub rejected the code or returned an invalid profile"),
    },
)
def auth_callback(code: str, state: str, db: Session = Depends(get_db_session)) -> RedirectResponse:
    state_data = validate_oauth_state(state)

    github_token = exchange_code_for_access_token(code)
    profile = profile_from_github_user(fetch_github_user(github_token))
    user = upsert_user(db, profile)
    access_token = create_access_token(user.id)

    redirect_path = state_data.get("next") or "/dashboard"
    safe_redirect = redirect_path if str(redirect_path).startswith("/") else "/dashboard"
    fragment = urlencode({"access_token": access_token, "token_type": "bearer"})
    redirect_url = f"{str(settings.frontend_url).rstrip('/')}{quote(safe_redirect, safe='/:?=&')}#{fragment}"
    return RedirectResponse(url=redirect_url, status_code=status.HTTP_302_FOUND)


@router.get(
    "/me",
    response_model=CurrentUserResponse,
    summary="Fetch current authenticated user",
    responses={
        200: {"content": {"application/json": {"example": ME_RESPONSE_EXAMPLE}}},
        401: error_response("Missing or invalid bearer token"),
    },
)
def current_user_me(current_user: User = Depends(get_current_user)) -> User:
    return current_user


@router.post(
    "/logout",
    response_model=LogoutResponse,
    summary="Logout",
    description="Access tokens are stateless; the client discards its token.",
)
def logout() -> LogoutResponse:
    return LogoutResponse(success=True)
