"""
api/routes/v1/users.py -- User management REST endpoints (admin only).

Routes:
  GET    /api/v1/users        -- paginated list (?page=1&limit=25)
  GET    /api/v1/users/{id}   -- single user
  POST   /api/v1/users        -- create user
  PUT    /api/v1/users/{id}   -- update name/email/role (password ignored)
  DELETE /api/v1/users/{id}   -- delete user

Every route requires an authenticated admin: require_admin is attached at
router level, so a new route cannot be added here without the guard.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    EmptyEnvelope,
    PageLink,
    Pagination,
    PrincipalEnvelope,
    PrincipalResponse,
    UserCreate,
    UserListResponse,
    UserUpdate,
)
from auth.dependencies import require_admin
from auth.service import CredentialService

router = APIRouter(dependencies=[Depends(require_admin)])


def _service(request: Request) -> CredentialService:
    return request.app.state.credentials


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=25, ge=1, le=100),
) -> UserListResponse:
    """List users one page at a time."""
    result = _service(request).list_users(page=page, limit=limit)
    pagination = Pagination(
        next=PageLink(page=page + 1, limit=limit) if result.has_next else None,
        prev=PageLink(page=page - 1, limit=limit) if result.has_prev else None,
    )
    return UserListResponse(
        count=len(result.users),
        total=result.total,
        pagination=pagination,
        data=[PrincipalResponse.from_user(u) for u in result.users],
    )


@router.get("/users/{user_id}", response_model=PrincipalEnvelope)
def get_user(request: Request, user_id: str) -> PrincipalEnvelope:
    user = _service(request).get_user(user_id)
    return PrincipalEnvelope(data=PrincipalResponse.from_user(user))


@router.post("/users", response_model=PrincipalEnvelope, status_code=201)
def create_user(request: Request, body: UserCreate) -> PrincipalEnvelope:
    """Create a user account without starting a session for it."""
    user = _service(request).create_user(body.name, body.email, body.password, body.role)
    return PrincipalEnvelope(data=PrincipalResponse.from_user(user))


@router.put("/users/{user_id}", response_model=PrincipalEnvelope)
def update_user(request: Request, user_id: str, body: UserUpdate) -> PrincipalEnvelope:
    user = _service(request).update_user(user_id, body.model_dump(exclude_none=True))
    return PrincipalEnvelope(data=PrincipalResponse.from_user(user))


@router.delete("/users/{user_id}", response_model=EmptyEnvelope)
def delete_user(request: Request, user_id: str) -> EmptyEnvelope:
    _service(request).delete_user(user_id)
    return EmptyEnvelope()
