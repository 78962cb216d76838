"""FastAPI dependencies for authentication.

These dependencies can be used in route handlers to require authentication
and get the current principal.

## Usage

```python
from fastapi import Depends
from garden_auth.auth import Capability, Principal, get_current_principal, require_permission

@app.get("/profile")
async def get_profile(principal: Principal = Depends(get_current_principal)):
    return {"email": principal.email}

@app.get("/admin/hosts")
async def list_hosts(principal: Principal = Depends(require_permission(Capability.ADMIN))):
    # Only admins can access this
    ...
```
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from fastapi import Depends, HTTPException, Request, status

from garden_auth.auth.permissions import Capability
from garden_auth.auth.principal import Principal
from garden_auth.auth.services import AuthServices

logger = logging.getLogger(__name__)


def get_auth_services(request: Request) -> AuthServices:
    """The authentication components built at startup."""
    return request.app.state.auth


async def get_principal_optional(
    request: Request,
    services: AuthServices = Depends(get_auth_services),
) -> Principal | None:
    """Get the current principal if logged in, or None.

    Use this for routes that work with or without authentication.
    """
    return await services.resolver.resolve(request)


async def get_current_principal(
    principal: Principal | None = Depends(get_principal_optional),
) -> Principal:
    """Get the current authenticated principal.

    Raises 401 if not authenticated.
    """
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    return principal


def require_permission(
    capability: Capability | str,
) -> Callable[..., Awaitable[Principal]]:
    """Build a dependency that requires a capability.

    Raises 401 if not authenticated and 403 if the capability is missing.
    """
    capability = Capability(capability)

    async def dependency(
        principal: Principal = Depends(get_current_principal),
        services: AuthServices = Depends(get_auth_services),
    ) -> Principal:
        if not services.policy.has_permission(principal, capability):
            logger.info(f"User {principal.user_id} denied {capability.value} access")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{capability.value.capitalize()} access required",
            )
        return principal

    return dependency


require_admin = require_permission(Capability.ADMIN)
require_host = require_permission(Capability.HOST)
