from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Path, Query, Request, Response
from fastapi.responses import RedirectResponse

from storefront.api.error_handling import service_error_response
from storefront.api.schemas import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    UpdateRoleRequest,
    UserListResponse,
    UserResponse,
)
from storefront.service.auth import MAX_PAGE_SIZE, AuthResult
from storefront.service.errors import AuthenticationError
from storefront.service.guard import AuthContext
from storefront.service.runtime import get_runtime

router = APIRouter()


def get_principal(request: Request) -> AuthContext:
    """Caller identity established by the authorization middleware."""

    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise AuthenticationError("authentication required")
    return principal


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        user=UserResponse.from_user(result.user),
        access_token=result.tokens.access_token,
    )


@router.get("/healthz", tags=["system"])
async def health():
    return {"status": "ok"}


@router.post("/auth/register", response_model=AuthResponse, status_code=201, tags=["auth"])
async def register(body: RegisterRequest, response: Response):
    """Create a local account and start a session for it.

    Raises:
        400: If the email is already registered
    """
    runtime = get_runtime()
    result = await runtime.auth.register(body.email, body.password, body.name)
    runtime.session.attach(response, result.tokens.refresh_token)
    return _auth_response(result)


@router.post("/auth/login", response_model=AuthResponse, status_code=200, tags=["auth"])
async def login(body: LoginRequest, response: Response):
    """Exchange email and password for a token pair.

    Raises:
        404: If no account has this email
        401: If the password does not match
    """
    runtime = get_runtime()
    result = await runtime.auth.login(body.email, body.password)
    runtime.session.attach(response, result.tokens.refresh_token)
    return _auth_response(result)


@router.post("/auth/refresh", response_model=AuthResponse, status_code=201, tags=["auth"])
async def refresh(request: Request, response: Response):
    """Mint a new pair from the refresh cookie.

    The role in the new tokens is re-read from storage. A missing or invalid
    cookie answers 401 and clears the cookie.
    """
    runtime = get_runtime()
    token = request.cookies.get(runtime.session.cookie_name)
    try:
        result = await runtime.auth.refresh(token)
    except AuthenticationError as exc:
        failure = service_error_response(exc)
        runtime.session.detach(failure)
        return failure
    runtime.session.attach(response, result.tokens.refresh_token)
    return _auth_response(result)


@router.post("/auth/logout", response_model=bool, status_code=200, tags=["auth"])
async def logout(response: Response):
    # stateless tokens: only the browser copy of the refresh token is cleared
    get_runtime().session.detach(response)
    return True


@router.get("/auth/{provider}", tags=["auth"])
async def oauth_start(provider: str = Path(..., max_length=32)):
    url = await get_runtime().auth.start_oauth(provider)
    return RedirectResponse(url, status_code=307)


@router.get("/auth/{provider}/callback", tags=["auth"])
async def oauth_callback(
    provider: str = Path(..., max_length=32),
    code: Optional[str] = Query(None, max_length=512),
    state: Optional[str] = Query(None, max_length=128),
):
    """Complete a provider login and hand the access token to the client app."""
    runtime = get_runtime()
    result = await runtime.auth.complete_oauth(provider, code, state)
    query = urlencode({"accessToken": result.tokens.access_token})
    redirect = RedirectResponse(
        f"{runtime.settings.client_url.rstrip('/')}/profile?{query}", status_code=307
    )
    runtime.session.attach(redirect, result.tokens.refresh_token)
    return redirect


@router.get("/users/profile", response_model=UserResponse, tags=["users"])
async def profile(principal: AuthContext = Depends(get_principal)):
    user = get_runtime().auth.get_user(principal.user_id)
    return UserResponse.from_user(user)


@router.get("/dashboard/settings/users", response_model=UserListResponse, tags=["dashboard"])
async def dashboard_list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(MAX_PAGE_SIZE, ge=1),
):
    take = min(limit, MAX_PAGE_SIZE)
    users, total = get_runtime().auth.list_users(page=page, limit=take)
    return UserListResponse(
        total=total,
        page=page,
        limit=take,
        items=[UserResponse.from_user(user) for user in users],
    )


@router.get(
    "/dashboard/settings/users/{user_id}", response_model=UserResponse, tags=["dashboard"]
)
async def dashboard_get_user(user_id: str = Path(..., max_length=64)):
    return UserResponse.from_user(get_runtime().auth.get_user(user_id))


@router.patch(
    "/dashboard/settings/users/{user_id}", response_model=UserResponse, tags=["dashboard"]
)
async def dashboard_update_role(
    body: UpdateRoleRequest,
    user_id: str = Path(..., max_length=64),
):
    """Change a user's role. Tokens already issued keep the previous role."""
    user = get_runtime().auth.set_user_role(user_id, body.role)
    return UserResponse.from_user(user)
