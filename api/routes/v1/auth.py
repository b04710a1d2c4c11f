"""
api/routes/v1/auth.py -- Login, logout and identity endpoints.

Routes:
  POST /api/v1/auth/login   -- email/password login; issues a bearer token
  POST /api/v1/auth/logout  -- deletes the presented token (requires auth)
  GET  /api/v1/auth/me      -- current user info (requires auth)

Security:
  [C1] AccountManager.authenticate() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on login responses, which carry the plaintext token.
  Login returns the same "bad_credentials" error for unknown email, wrong
  password and inactive account, so it does not leak which emails exist.
  A successful login replaces any token the user already had.

Handlers are plain `def`: the store is synchronous, and FastAPI runs sync
handlers in its thread pool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import LoginRequest, MessageResponse, TokenResponse, UserResponse
from auth.accounts import AccountManager
from auth.dependencies import get_bearer_token, get_current_user
from auth.models import User
from auth.store import AuthStore
from auth.tokens import issue_token

# Auth policy:
# - POST /api/v1/auth/login:   public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:  requires auth (get_current_user)
# - GET  /api/v1/auth/me:      requires auth (get_current_user)
router = APIRouter()


@router.post("/auth/login", response_model=TokenResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a new bearer token."""
    accounts: AccountManager = request.app.state.accounts
    store: AuthStore = request.app.state.store

    user = accounts.authenticate(body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    token, plaintext = issue_token(store, user)
    resp = JSONResponse(
        status_code=200,
        content=TokenResponse(
            token=plaintext,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expiry=token.expiry,
            user_id=user.id,
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, current_user: User = Depends(get_current_user)) -> MessageResponse:
    """Delete the token used to make this request."""
    store: AuthStore = request.app.state.store
    store.delete_token_by_hash(get_bearer_token(request))
    return MessageResponse(message="Logged out.")


@router.get("/auth/me", response_model=UserResponse)
def me(request: Request, current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the currently authenticated user, with their token expiry."""
    accounts: AccountManager = request.app.state.accounts
    return UserResponse.from_user(accounts.fetch(current_user.id))
