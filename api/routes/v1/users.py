"""
api/routes/v1/users.py -- User account management endpoints.

Routes (all require a valid bearer token):
  POST   /api/v1/users                 -- create user; 409 on duplicate email
  GET    /api/v1/users                 -- list users ordered by last name
  GET    /api/v1/users/{id}            -- fetch one user; 404 if missing
  PATCH  /api/v1/users/{id}            -- update names / email / active flag
  PUT    /api/v1/users/{id}/password   -- reset password; 204
  DELETE /api/v1/users/{id}            -- delete user and (by cascade) their token; 204

NotFoundError and DuplicateEmailError raised by AccountManager are turned
into 404 / 409 by the exception handlers in api/main.py, so the handlers
below stay on the happy path.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import PasswordReset, UserCreate, UserPatch, UserResponse
from auth.accounts import AccountManager
from auth.dependencies import get_current_user
from auth.models import User

router = APIRouter()


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Create a new user account. The password is hashed before it is stored."""
    accounts: AccountManager = request.app.state.accounts
    new_user = User(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        active=body.active,
    )
    user_id = accounts.create(new_user, body.password)
    return UserResponse.from_user(accounts.fetch(user_id))


@router.get("/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> list[UserResponse]:
    accounts: AccountManager = request.app.state.accounts
    return [UserResponse.from_user(u) for u in accounts.list_all()]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: int,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    accounts: AccountManager = request.app.state.accounts
    return UserResponse.from_user(accounts.fetch(user_id))


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Update a user's names, email or active flag."""
    accounts: AccountManager = request.app.state.accounts

    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    target = accounts.fetch(user_id)
    for field, value in updates.items():
        setattr(target, field, value)
    accounts.update(target)
    return UserResponse.from_user(accounts.fetch(user_id))


@router.put("/users/{user_id}/password", status_code=204)
def reset_password(
    request: Request,
    user_id: int,
    body: PasswordReset,
    current_user: User = Depends(get_current_user),
) -> Response:
    accounts: AccountManager = request.app.state.accounts
    accounts.reset_password(user_id, body.password)
    return Response(status_code=204)


@router.delete("/users/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: int,
    current_user: User = Depends(get_current_user),
) -> Response:
    """Delete a user. Deleting an id that does not exist also returns 204."""
    accounts: AccountManager = request.app.state.accounts
    accounts.delete(user_id)
    return Response(status_code=204)
