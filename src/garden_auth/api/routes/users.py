"""User and session management routes."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from garden_auth.api.routes.auth import UserResponse, clear_session_cookie, user_response
from garden_auth.auth.dependencies import get_auth_services, get_current_principal, require_admin
from garden_auth.auth.principal import Principal
from garden_auth.auth.services import AuthServices

router = APIRouter()


class SessionResponse(BaseModel):
    """One active session, without its token."""

    provider: str
    created_at: datetime
    last_accessed_at: datetime
    expires_at: datetime
    user_agent: str | None
    ip_address: str | None
    current: bool


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]


class AdminUserResponse(BaseModel):
    """User row as seen by administrators."""

    id: int
    email: str
    name: str
    host_status: str
    role: str
    created_at: datetime


class UserListResponse(BaseModel):
    """User list response."""

    users: list[AdminUserResponse]


class RevokedResponse(BaseModel):
    revoked: int


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    principal: Principal = Depends(get_current_principal),
    services: AuthServices = Depends(get_auth_services),
) -> UserResponse:
    """Get the current user's profile."""
    return user_response(services, principal)


@router.get("/me/sessions", response_model=SessionListResponse)
async def list_my_sessions(
    principal: Principal = Depends(get_current_principal),
    services: AuthServices = Depends(get_auth_services),
) -> SessionListResponse:
    """List the current user's active sessions."""
    sessions = await services.sessions.list_for_user(principal.user_id)
    return SessionListResponse(
        sessions=[
            SessionResponse(
                provider=s.provider,
                created_at=s.created_at,
                last_accessed_at=s.last_accessed_at,
                expires_at=s.expires_at,
                user_agent=s.user_agent,
                ip_address=s.ip_address,
                current=s.id == principal.session_id,
            )
            for s in sessions
        ]
    )


@router.delete("/me/sessions", response_model=RevokedResponse)
async def revoke_my_sessions(
    response: Response,
    principal: Principal = Depends(get_current_principal),
    services: AuthServices = Depends(get_auth_services),
) -> RevokedResponse:
    """Log out everywhere, including the current session."""
    revoked = await services.sessions.delete_all_for_user(principal.user_id)
    clear_session_cookie(services).apply(response)
    return RevokedResponse(revoked=revoked)


# Admin routes


@router.get("/", response_model=UserListResponse)
async def list_users(
    admin: Principal = Depends(require_admin),
    services: AuthServices = Depends(get_auth_services),
    skip: int = 0,
    limit: int = 50,
) -> UserListResponse:
    """List users (admin only)."""
    users = await services.identities.list_users(skip=skip, limit=min(limit, 200))
    return UserListResponse(
        users=[
            AdminUserResponse(
                id=u.id,
                email=u.email,
                name=u.name,
                host_status=u.host_status,
                role=u.role,
                created_at=u.created_at,
            )
            for u in users
        ]
    )


@router.delete("/{user_id}/sessions", response_model=RevokedResponse)
async def revoke_user_sessions(
    user_id: int,
    admin: Principal = Depends(require_admin),
    services: AuthServices = Depends(get_auth_services),
) -> RevokedResponse:
    """Delete every session of a user (admin only)."""
    revoked = await services.sessions.delete_all_for_user(user_id)
    return RevokedResponse(revoked=revoked)
