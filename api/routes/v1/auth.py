"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create identity, return identity + token pair
  POST /api/v1/auth/login      -- email/password login, return identity + token pair
  POST /api/v1/auth/refresh    -- rotate a refresh token into a new pair
  POST /api/v1/auth/logout     -- revoke a refresh token (always 200)
  GET  /api/v1/auth/me         -- identity behind the bearer access token
  GET  /api/v1/auth/users      -- list identities (ADMIN only)

Security:
  Login and register are rate-limited per client IP (LOGIN_RATE_LIMIT).
  Login returns one generic error for unknown email and wrong password.
  Cache-Control: no-store on every response that carries tokens.
  Errors are raised as core.errors types and rendered by api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    AuthResponse,
    LoginRequest,
    LogoutResponse,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from auth.dependencies import get_bearer_token, get_identity
from auth.models import IdentityContext, Role, TokenPair
from auth.policy import AuthorizationPolicy
from auth.service import AuthResult, AuthService
from core.config import get_settings

router = APIRouter()


def _login_limit() -> str:
    return get_settings().login_rate_limit


def _tokens(pair: TokenPair) -> dict:
    return {
        "access_token": pair.access_token,
        "refresh_token": pair.refresh_token,
        "access_expires_at": pair.access_expires_at,
        "refresh_expires_at": pair.refresh_expires_at,
    }


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(user=UserResponse.from_user(result.user), **_tokens(result.tokens))


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_login_limit)
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> AuthResponse:
    """Register a new identity. 409 email_taken if the email is already registered."""
    service: AuthService = request.app.state.auth_service
    result = service.register(body.email, body.password, body.name)
    response.headers["Cache-Control"] = "no-store"
    return _auth_response(result)


@limiter.limit(_login_limit)
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, response: Response, body: LoginRequest) -> AuthResponse:
    """Authenticate with email and password. 401 invalid_credentials on any mismatch."""
    service: AuthService = request.app.state.auth_service
    result = service.login(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"
    return _auth_response(result)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: Request, response: Response, body: RefreshRequest) -> TokenResponse:
    """Rotate a refresh token. The submitted token is unusable afterwards."""
    service: AuthService = request.app.state.auth_service
    pair = service.refresh(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"
    return TokenResponse(**_tokens(pair))


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request, body: RefreshRequest) -> LogoutResponse:
    """Revoke a refresh token. Idempotent: repeated calls also return 200."""
    service: AuthService = request.app.state.auth_service
    service.logout(body.refresh_token)
    return LogoutResponse()


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
def me(request: Request, token: str = Depends(get_bearer_token)) -> UserResponse:
    """Return the identity behind the bearer access token."""
    service: AuthService = request.app.state.auth_service
    return UserResponse.from_user(service.current_identity(token))


@router.get("/auth/users", response_model=list[UserResponse])
def list_users(request: Request, identity: IdentityContext = Depends(get_identity)) -> list[UserResponse]:
    """List all identities. ADMIN only."""
    policy: AuthorizationPolicy = request.app.state.policy
    policy.assert_role(identity, Role.ADMIN)
    service: AuthService = request.app.state.auth_service
    return [UserResponse.from_user(u) for u in service.users.list_users()]
