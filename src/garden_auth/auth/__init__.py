"""Session and authentication core.

Turns an inbound HTTP request into a trusted, time-bounded identity and
completes third-party OAuth logins.

## OAuth Flow

1. User clicks "Login with Google" (or Apple)
2. A random state is stored in a short-lived cookie and sent to the provider
3. Provider redirects back with an authorization code and the state
4. State is checked against the cookie, then the code is exchanged
5. User is found or created by email
6. A server-side session is created and its token set as a cookie

## Sessions

- Opaque random tokens, stored server-side with a fixed 24 hour lifetime
- At most 5 concurrent sessions per user; the least recently used is evicted
- Expired sessions are ignored on read and removed by a periodic sweep

## Security

- Cookies are HTTP-only, SameSite=Lax, and Secure in production
- OAuth codes are never retried
- Client-facing errors never reveal which login step failed
"""

from garden_auth.auth.csrf import CookieDirective, CSRFStateManager
from garden_auth.auth.dependencies import (
    get_auth_services,
    get_current_principal,
    get_principal_optional,
    require_admin,
    require_host,
    require_permission,
)
from garden_auth.auth.identity import IdentityStore
from garden_auth.auth.login import CallbackParams, LoginFlow, LoginResult, LoginState
from garden_auth.auth.oauth import (
    OAuthExchange,
    OAuthProviderConfig,
    OAuthTokens,
    RemoteIdentity,
    get_provider_config,
)
from garden_auth.auth.permissions import AuthorizationPolicy, Capability, has_permission
from garden_auth.auth.principal import Principal
from garden_auth.auth.resolver import AuthenticationResolver
from garden_auth.auth.services import AuthServices
from garden_auth.auth.session import SessionStore

__all__ = [
    "AuthServices",
    "AuthenticationResolver",
    "AuthorizationPolicy",
    "CSRFStateManager",
    "CallbackParams",
    "Capability",
    "CookieDirective",
    "IdentityStore",
    "LoginFlow",
    "LoginResult",
    "LoginState",
    "OAuthExchange",
    "OAuthProviderConfig",
    "OAuthTokens",
    "Principal",
    "RemoteIdentity",
    "SessionStore",
    "get_auth_services",
    "get_current_principal",
    "get_principal_optional",
    "get_provider_config",
    "has_permission",
    "require_admin",
    "require_host",
    "require_permission",
]
