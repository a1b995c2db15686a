"""
api/routes/v1/auth.py -- Account REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create account, returns user + token pair (201)
  POST /api/v1/auth/login      -- password login, returns user + token pair
  POST /api/v1/auth/refresh    -- rotate: refresh token in, brand-new pair out
  GET  /api/v1/auth/me         -- current user's safe view (requires auth)

Security:
  login is limited to 5 failed attempts per 15 minutes per IP. The window is
  checked before the handler runs and a slot is consumed only when the login
  fails, so legitimate users are never locked out by their own successes.
  register is limited to 3 per hour per IP; refresh and me share the general
  API limit.
  Unknown email and wrong password produce the identical 401 body
  (INVALID_CREDENTIALS). IdentityService equalizes the timing.
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.dependencies import cancel_token, get_identity_service
from api.limiter import enforce_api_limit, enforce_login_limit, enforce_register_limit, record_failed_login
from api.models import AuthResponse, LoginRequest, MeResponse, RefreshRequest, RegisterRequest, TokensResponse
from auth.dependencies import get_current_identity
from auth.models import Identity
from auth.service import AuthResult, IdentityService
from core.cancellation import CancellationToken
from core.errors import InvalidCredentialsError

# Auth policy:
# - POST /api/v1/auth/register: public, register rate limit
# - POST /api/v1/auth/login:    public, failed-login rate limit
# - POST /api/v1/auth/refresh:  public (the refresh token is the credential), API rate limit
# - GET  /api/v1/auth/me:       requires auth (get_current_identity), API rate limit
router = APIRouter()


def _auth_body(result: AuthResult) -> dict:
    return {
        "user": result.user.to_json(),
        "token": result.access_token,
        "refreshToken": result.refresh_token,
    }


@router.post(
    "/auth/register",
    response_model=AuthResponse,
    status_code=201,
    dependencies=[Depends(enforce_register_limit)],
)
async def register(
    body: RegisterRequest,
    response: Response,
    service: IdentityService = Depends(get_identity_service),
    cancel: CancellationToken = Depends(cancel_token),
) -> dict:
    """Create a supervisor account (or the requested role) and sign it in."""
    result = await service.register(body.email, body.name, body.password, body.role, cancel=cancel)
    response.headers["Cache-Control"] = "no-store"
    return _auth_body(result)


@router.post("/auth/login", response_model=AuthResponse, dependencies=[Depends(enforce_login_limit)])
async def login(
    request: Request,
    body: LoginRequest,
    response: Response,
    service: IdentityService = Depends(get_identity_service),
    cancel: CancellationToken = Depends(cancel_token),
) -> dict:
    """Authenticate with email and password.

    Only a failed attempt is recorded against the caller's login window.
    """
    try:
        result = await service.login(body.email, body.password, cancel=cancel)
    except InvalidCredentialsError:
        record_failed_login(request)
        raise
    response.headers["Cache-Control"] = "no-store"
    return _auth_body(result)


@router.post("/auth/refresh", response_model=TokensResponse, dependencies=[Depends(enforce_api_limit)])
async def refresh(
    body: RefreshRequest,
    response: Response,
    service: IdentityService = Depends(get_identity_service),
    cancel: CancellationToken = Depends(cancel_token),
) -> dict:
    result = await service.refresh(body.refresh_token, cancel=cancel)
    response.headers["Cache-Control"] = "no-store"
    return {"token": result.access_token, "refreshToken": result.refresh_token}


@router.get("/auth/me", response_model=MeResponse, dependencies=[Depends(enforce_api_limit)])
async def me(
    identity: Identity = Depends(get_current_identity),
    service: IdentityService = Depends(get_identity_service),
    cancel: CancellationToken = Depends(cancel_token),
) -> dict:
    """Return the safe view of the currently authenticated user."""
    user = await service.profile(identity, cancel=cancel)
    return {"user": user.to_json()}
