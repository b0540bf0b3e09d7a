"""
api/routes/v1/auth.py -- Session endpoints: register, login, refresh, logout.

Handlers are thin: they validate the body, call AuthService, and shape the
response. Every failure is a HerdCareError raised by the service, gate or
policy and rendered by api/errors.py.

Handlers are plain def, not async def: bcrypt and the database are blocking,
and FastAPI runs def endpoints in its worker thread pool.

Security controls:
  [H2] login and register are rate-limited per client address.
  [M5] Cache-Control: no-store on every response that carries a token.
  The refresh token only ever travels in the httpOnly refresh cookie; it is
  never part of a JSON body.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.errors import error_response, herdcare_error_response
from api.limiter import limiter, login_limit, register_limit
from api.models import (
    AccountResponse,
    AuthResponse,
    LoginRequest,
    LogoutAllResponse,
    MessageResponse,
    RefreshResponse,
    RegisterRequest,
    UserEnvelope,
)
from auth.dependencies import get_current_account
from auth.errors import HerdCareError
from auth.models import Account
from auth.service import AuthResult, AuthService
from auth.tokens import REFRESH_COOKIE_NAME, clear_refresh_cookie, set_refresh_cookie

# Auth policy:
# - POST /api/v1/auth/register:    public, rate-limited
# - POST /api/v1/auth/login:       public, rate-limited
# - POST /api/v1/auth/refresh:     refresh cookie only
# - POST /api/v1/auth/logout:      requires auth (get_current_account)
# - POST /api/v1/auth/logout-all:  requires auth (get_current_account)
# - GET  /api/v1/auth/me:          requires auth (get_current_account)
router = APIRouter()
logger = logging.getLogger("herdcare.api")


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _session_response(request: Request, result: AuthResult, message: str, status_code: int) -> JSONResponse:
    settings = request.app.state.settings
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            message=message,
            user=AccountResponse.from_account(result.account),
            access_token=result.access_token,
            expires_in=settings.access_token_expire_seconds,
        ).model_dump(),
    )
    set_refresh_cookie(resp, result.refresh_token, settings.refresh_token_expire_seconds, settings.secure_cookies)
    return _no_store(resp)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(register_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account with the requested role and open its first session."""
    result = _service(request).register(
        email=body.email,
        password=body.password,
        role=body.role,
        full_name=body.full_name,
        phone=body.phone,
        language=body.language,
        profile=body.profile_for_role(),
    )
    return _session_response(request, result, "User registered successfully.", 201)


@limiter.limit(login_limit)  # [H2] brute-force mitigation
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email and wrong password produce the same 401 body.
    """
    result = _service(request).login(body.email, body.password)
    return _session_response(request, result, "Login successful.", 200)


@router.post("/auth/refresh", response_model=RefreshResponse)
def refresh(request: Request) -> JSONResponse:
    """Rotate the refresh cookie and return a fresh access token.

    The presented refresh token is consumed; presenting it again fails.
    """
    settings = request.app.state.settings
    pair = _service(request).refresh(request.cookies.get(REFRESH_COOKIE_NAME))
    resp = JSONResponse(
        content=RefreshResponse(
            message="Token refreshed successfully.",
            access_token=pair.access_token,
            expires_in=settings.access_token_expire_seconds,
        ).model_dump(),
    )
    set_refresh_cookie(resp, pair.refresh_token, settings.refresh_token_expire_seconds, settings.secure_cookies)
    return _no_store(resp)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, account: Account = Depends(get_current_account)) -> JSONResponse:
    """End this device's session. Other devices stay logged in.

    Best-effort: a missing or unknown refresh cookie still succeeds, and every
    response from this endpoint clears the cookie, failures included.
    """
    try:
        _service(request).logout(account, request.cookies.get(REFRESH_COOKIE_NAME))
    except HerdCareError as exc:
        resp = herdcare_error_response(exc)
    except Exception:
        logger.exception("Logout failed for account %s", account.id)
        resp = _no_store(error_response(500, "internal_error", "An unexpected error occurred."))
    else:
        resp = _no_store(JSONResponse(content=MessageResponse(message="Logged out successfully.").model_dump()))
    clear_refresh_cookie(resp, request.app.state.settings.secure_cookies)
    return resp


@router.post("/auth/logout-all", response_model=LogoutAllResponse)
def logout_all(request: Request, account: Account = Depends(get_current_account)) -> JSONResponse:
    """Revoke every session the account holds, on every device."""
    revoked = _service(request).logout_everywhere(account)
    resp = JSONResponse(
        content=LogoutAllResponse(message="Logged out from all devices.", revoked=revoked).model_dump(),
    )
    clear_refresh_cookie(resp, request.app.state.settings.secure_cookies)
    return _no_store(resp)


@router.get("/auth/me", response_model=UserEnvelope)
def me(account: Account = Depends(get_current_account)) -> UserEnvelope:
    """Return the authenticated account."""
    return UserEnvelope(user=AccountResponse.from_account(account))
