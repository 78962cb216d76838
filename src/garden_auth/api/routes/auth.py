"""Authentication routes.

Handles the OAuth login flow and session lifecycle.

## OAuth Flow

1. GET /auth/login/{provider} - Set state cookie, redirect to the provider
2. GET|POST /auth/callback/{provider} - Validate state, exchange code,
   create the session and set the session cookie
3. GET|POST /auth/logout - Delete the session and clear the cookie
4. GET /auth/me - Current authentication status
5. GET /auth/login - Login page data: last error and available providers

Apple posts its callback as a form; Google uses a query string. Both are
accepted on either method.

## Errors

Every rejected callback redirects to the login page with a generic message.
The reason is logged, never shown, so the response does not reveal which
step failed. A storage failure during the callback answers 503. Either way
the state cookie is cleared.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse, Response
from pydantic import BaseModel

from garden_auth.api.app import service_unavailable_response

from garden_auth.auth.csrf import CookieDirective
from garden_auth.auth.dependencies import get_auth_services, get_principal_optional
from garden_auth.auth.login import CallbackParams
from garden_auth.auth.principal import Principal
from garden_auth.auth.oauth import PROVIDERS
from garden_auth.auth.resolver import extract_cookie
from garden_auth.auth.services import AuthServices
from garden_auth.errors import LoginRejected, StorageError

logger = logging.getLogger(__name__)

router = APIRouter()

LOGIN_PAGE = "/auth/login"
HOME_PAGE = "/"


class UserResponse(BaseModel):
    """User information response."""

    id: int
    email: str
    name: str
    host_status: str
    is_admin: bool
    is_host: bool


class AuthStatusResponse(BaseModel):
    """Authentication status response."""

    authenticated: bool
    provider: str | None = None
    user: UserResponse | None = None


class LoginOptionsResponse(BaseModel):
    """Login page data: the last error, if any, and where to start a login."""

    error: str | None = None
    providers: dict[str, str]


class DevLoginRequest(BaseModel):
    """Development login request."""

    user_id: int


def session_cookie(services: AuthServices, session_id: str) -> CookieDirective:
    settings = services.settings
    return CookieDirective(
        name=settings.session_cookie_name,
        value=session_id,
        max_age=settings.session_ttl_seconds,
        path="/",
        secure=settings.use_secure_cookies,
    )


def clear_session_cookie(services: AuthServices) -> CookieDirective:
    settings = services.settings
    return CookieDirective(
        name=settings.session_cookie_name,
        value="",
        max_age=0,
        path="/",
        secure=settings.use_secure_cookies,
    )


def login_error_redirect(message: str) -> RedirectResponse:
    return RedirectResponse(
        url=f"{LOGIN_PAGE}?{urlencode({'error': message})}",
        status_code=status.HTTP_302_FOUND,
    )


def client_ip(request: Request) -> str | None:
    """Best-effort client address, for auditing only."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


def user_response(services: AuthServices, principal: Principal) -> UserResponse:
    user = principal.user
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        host_status=user.host_status,
        is_admin=services.policy.is_admin(principal),
        is_host=services.policy.is_host(principal),
    )


@router.get("/login", response_model=LoginOptionsResponse)
async def login_options(
    error: str | None = None,
    services: AuthServices = Depends(get_auth_services),
) -> LoginOptionsResponse:
    """Where rejected logins land.

    Echoes the generic error message and lists the configured providers with
    their login URLs. The surrounding application renders the actual page.
    """
    providers = {}
    for name in PROVIDERS:
        config = services.provider(name)
        if config is not None and config.is_configured:
            providers[name] = f"{LOGIN_PAGE}/{name}"
    return LoginOptionsResponse(error=error, providers=providers)


@router.get("/login/{provider}")
async def login(
    provider: str,
    principal: Principal | None = Depends(get_principal_optional),
    services: AuthServices = Depends(get_auth_services),
) -> RedirectResponse:
    """Initiate an OAuth login.

    Redirects the user to the provider's consent screen. Users who are
    already logged in go straight home.
    """
    if principal is not None:
        return RedirectResponse(url=HOME_PAGE, status_code=status.HTTP_302_FOUND)

    config = services.provider(provider)
    if config is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Unknown login provider",
        )
    if not config.is_configured:
        logger.error(f"Login attempted with unconfigured provider {provider}")
        return login_error_redirect("Login provider unavailable")

    start = services.login_flow.start(config)

    redirect = RedirectResponse(url=start.authorization_url, status_code=status.HTTP_302_FOUND)
    start.state_cookie.apply(redirect)
    return redirect


@router.api_route("/callback/{provider}", methods=["GET", "POST"])
async def oauth_callback(
    provider: str,
    request: Request,
    services: AuthServices = Depends(get_auth_services),
) -> Response:
    """Handle an OAuth provider callback.

    The state cookie is cleared whatever the outcome, so a state value can
    only ever be presented once.
    """
    config = services.provider(provider)
    if config is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Unknown login provider",
        )

    values = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        values.update({k: v for k, v in form.items() if isinstance(v, str)})

    params = CallbackParams(
        code=values.get("code"),
        state=values.get("state"),
        error=values.get("error"),
    )
    cookie_state = extract_cookie(
        request.headers.get("cookie"), services.csrf.cookie_name
    )

    try:
        result = await services.login_flow.complete(
            config,
            params,
            cookie_state,
            user_agent=request.headers.get("user-agent"),
            ip_address=client_ip(request),
        )
    except LoginRejected as e:
        logger.warning(f"{provider} login rejected: {e.reason} (after {e.last_state})")
        redirect = login_error_redirect(e.user_message)
        services.csrf.clear().apply(redirect)
        return redirect
    except StorageError as e:
        logger.error(f"{provider} login failed on storage: {e}")
        response = service_unavailable_response()
        services.csrf.clear().apply(response)
        return response

    redirect = RedirectResponse(url=HOME_PAGE, status_code=status.HTTP_302_FOUND)
    session_cookie(services, result.session_id).apply(redirect)
    services.csrf.clear().apply(redirect)
    return redirect


@router.api_route("/logout", methods=["GET", "POST"])
async def logout(
    principal: Principal | None = Depends(get_principal_optional),
    services: AuthServices = Depends(get_auth_services),
) -> RedirectResponse:
    """Log out the current user.

    Deletes the server-side session and clears the session cookie.
    """
    if principal is not None:
        await services.sessions.delete(principal.session_id)
        logger.info(f"User {principal.email} logged out")

    redirect = RedirectResponse(url=HOME_PAGE, status_code=status.HTTP_302_FOUND)
    clear_session_cookie(services).apply(redirect)
    return redirect


@router.get("/me", response_model=AuthStatusResponse)
async def get_auth_status(
    principal: Principal | None = Depends(get_principal_optional),
    services: AuthServices = Depends(get_auth_services),
) -> AuthStatusResponse:
    """Get the current authentication status and user info."""
    if principal is None:
        return AuthStatusResponse(authenticated=False)

    return AuthStatusResponse(
        authenticated=True,
        provider=principal.provider,
        user=user_response(services, principal),
    )


@router.post("/dev/login")
async def dev_login(
    body: DevLoginRequest,
    request: Request,
    services: AuthServices = Depends(get_auth_services),
) -> RedirectResponse:
    """Log in as an existing user without OAuth.

    Only available outside production.
    """
    if services.settings.is_production:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    user = await services.identities.get_user_by_id(body.user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    session_id = await services.sessions.create(
        user.id,
        "mock",
        user_agent=request.headers.get("user-agent") or "Mock Login",
        ip_address=client_ip(request),
    )
    logger.info(f"Development login as {user.email}")

    redirect = RedirectResponse(url=HOME_PAGE, status_code=status.HTTP_302_FOUND)
    session_cookie(services, session_id).apply(redirect)
    return redirect
