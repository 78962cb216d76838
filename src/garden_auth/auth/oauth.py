"""OAuth 2.0 authorization code exchange.

Implements the provider-agnostic half of the login handshake: building the
consent redirect, trading the authorization code for tokens, and resolving
the remote user's identity.

## Supported Providers

### Google
- Authorization: https://accounts.google.com/o/oauth2/v2/auth
- Token: https://oauth2.googleapis.com/token
- User Info: https://www.googleapis.com/oauth2/v2/userinfo

### Apple
- Authorization: https://appleid.apple.com/auth/authorize
- Token: https://appleid.apple.com/auth/token
- Identity is read from the ``id_token`` claims; Apple has no userinfo
  endpoint. The callback arrives as a form POST (``response_mode=form_post``).

## Failure Policy

Authorization codes are single-use. Every non-success response, malformed
payload, transport error or timeout raises ``OAuthExchangeFailed`` and is
never retried; the user has to start the login over.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt

from garden_auth.config import Settings
from garden_auth.errors import OAuthExchangeFailed

logger = logging.getLogger(__name__)

# Google OAuth endpoints
GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

# Apple endpoints
APPLE_AUTHORIZE_URL = "https://appleid.apple.com/auth/authorize"
APPLE_TOKEN_URL = "https://appleid.apple.com/auth/token"

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Static configuration for one OAuth provider."""

    name: str
    client_id: str | None
    client_secret: str | None
    authorize_url: str
    token_url: str
    redirect_uri: str
    scopes: tuple[str, ...]
    userinfo_url: str | None = None
    extra_authorize_params: dict[str, str] = field(default_factory=dict)

    @property
    def is_configured(self) -> bool:
        """Check if the provider has credentials."""
        return bool(self.client_id and self.client_secret)


@dataclass
class OAuthTokens:
    """Tokens returned by a provider's token endpoint."""

    access_token: str
    id_token: str | None = None
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_at: datetime | None = None
    scope: str = ""


@dataclass
class RemoteIdentity:
    """A user as asserted by an OAuth provider."""

    provider: str
    subject: str
    email: str
    name: str
    picture: str | None = None


def google_config(settings: Settings) -> OAuthProviderConfig:
    return OAuthProviderConfig(
        name="google",
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        authorize_url=GOOGLE_AUTHORIZE_URL,
        token_url=GOOGLE_TOKEN_URL,
        redirect_uri=settings.redirect_uri("google"),
        scopes=("openid", "email", "profile"),
        userinfo_url=GOOGLE_USERINFO_URL,
    )


def apple_config(settings: Settings) -> OAuthProviderConfig:
    return OAuthProviderConfig(
        name="apple",
        client_id=settings.apple_client_id,
        client_secret=settings.apple_client_secret,
        authorize_url=APPLE_AUTHORIZE_URL,
        token_url=APPLE_TOKEN_URL,
        redirect_uri=settings.redirect_uri("apple"),
        scopes=("name", "email"),
        extra_authorize_params={"response_mode": "form_post"},
    )


PROVIDERS = {
    "google": google_config,
    "apple": apple_config,
}


def get_provider_config(name: str, settings: Settings) -> OAuthProviderConfig | None:
    """Look up a provider by name. Returns None for unknown providers."""
    factory = PROVIDERS.get(name)
    if factory is None:
        return None
    return factory(settings)


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


class OAuthExchange:
    """Stateless OAuth 2.0 authorization code client.

    Example:
        ```python
        exchange = OAuthExchange(timeout=10)
        config = google_config(get_settings())

        # Generate authorization URL
        auth_url = exchange.authorization_url(config, state="random-state")
        # Redirect user to auth_url

        # Handle callback
        tokens = await exchange.exchange_code(config, code)
        identity = await exchange.fetch_identity(config, tokens.access_token)
        ```
    """

    def __init__(
        self,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the exchange client.

        Args:
            timeout: Upper bound in seconds for each provider call
            transport: Optional httpx transport (used by tests)
        """
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def authorization_url(self, config: OAuthProviderConfig, state: str) -> str:
        """Generate the provider authorization URL.

        Args:
            config: Provider configuration
            state: CSRF state value, echoed back by the provider

        Returns:
            URL to redirect the user to
        """
        if not config.is_configured:
            raise RuntimeError(f"OAuth provider {config.name} not configured")

        params = {
            "response_type": "code",
            "client_id": config.client_id,
            "redirect_uri": config.redirect_uri,
            "scope": " ".join(config.scopes),
            "state": state,
            **config.extra_authorize_params,
        }
        return f"{config.authorize_url}?{urlencode(params)}"

    async def exchange_code(self, config: OAuthProviderConfig, code: str) -> OAuthTokens:
        """Exchange an authorization code for tokens.

        Raises:
            OAuthExchangeFailed: On any error. The code must not be reused.
        """
        if not config.is_configured:
            raise OAuthExchangeFailed(config.name, "provider not configured")
        if not code:
            raise OAuthExchangeFailed(config.name, "missing authorization code")

        data = await self._request_json(
            config,
            "token exchange",
            "POST",
            config.token_url,
            data={
                "grant_type": "authorization_code",
                "client_id": config.client_id,
                "client_secret": config.client_secret,
                "redirect_uri": config.redirect_uri,
                "code": code,
            },
        )

        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise OAuthExchangeFailed(config.name, "token response without access_token")

        expires_at = None
        expires_in = data.get("expires_in")
        if isinstance(expires_in, int | float):
            expires_at = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(
                seconds=expires_in
            )

        return OAuthTokens(
            access_token=access_token,
            id_token=data.get("id_token"),
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type", "Bearer"),
            expires_at=expires_at,
            scope=data.get("scope", ""),
        )

    async def fetch_identity(
        self,
        config: OAuthProviderConfig,
        access_token: str,
        id_token: str | None = None,
    ) -> RemoteIdentity:
        """Resolve the remote user's canonical name and email.

        Providers with a userinfo endpoint are queried with the access token;
        otherwise the identity is read from the ID token claims.

        Raises:
            OAuthExchangeFailed: If the identity cannot be resolved
        """
        if config.userinfo_url:
            if not access_token:
                raise OAuthExchangeFailed(config.name, "missing access token")
            data = await self._request_json(
                config,
                "user info",
                "GET",
                config.userinfo_url,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            if data.get("verified_email") is False or data.get("email_verified") is False:
                raise OAuthExchangeFailed(config.name, "email not verified")
            subject = data.get("id") or data.get("sub")
            return self._build_identity(config, subject, data)

        token = id_token or access_token
        if not token:
            raise OAuthExchangeFailed(config.name, "missing ID token")
        return self._identity_from_id_token(config, token)

    def _identity_from_id_token(
        self,
        config: OAuthProviderConfig,
        id_token: str,
    ) -> RemoteIdentity:
        # The token comes straight from the provider's token endpoint over
        # TLS, so its claims are read without signature verification.
        try:
            claims = jwt.get_unverified_claims(id_token)
        except JWTError as e:
            raise OAuthExchangeFailed(config.name, "malformed ID token") from e

        exp = claims.get("exp")
        if isinstance(exp, int | float) and datetime.now(timezone.utc).timestamp() >= exp:
            raise OAuthExchangeFailed(config.name, "ID token expired")

        name = claims.get("name")
        if isinstance(name, dict):
            first, last = name.get("firstName"), name.get("lastName")
            claims = {**claims, "name": f"{first} {last}" if first and last else None}

        return self._build_identity(config, claims.get("sub"), claims)

    @staticmethod
    def _build_identity(
        config: OAuthProviderConfig,
        subject: Any,
        data: dict[str, Any],
    ) -> RemoteIdentity:
        email = data.get("email")
        if not subject or not isinstance(email, str):
            raise OAuthExchangeFailed(config.name, "identity missing required fields")
        if not is_valid_email(email):
            raise OAuthExchangeFailed(config.name, "invalid email format")

        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            name = email.split("@")[0]

        return RemoteIdentity(
            provider=config.name,
            subject=str(subject),
            email=email.lower(),
            name=name.strip(),
            picture=data.get("picture"),
        )

    async def _request_json(
        self,
        config: OAuthProviderConfig,
        what: str,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Perform one provider request and decode a JSON object response."""
        try:
            async with asyncio.timeout(self.timeout):
                async with self._client() as client:
                    response = await client.request(
                        method,
                        url,
                        headers={"Accept": "application/json", **kwargs.pop("headers", {})},
                        **kwargs,
                    )
        except (httpx.HTTPError, TimeoutError) as e:
            logger.error(f"{config.name} {what} request failed: {e.__class__.__name__}")
            raise OAuthExchangeFailed(config.name, f"{what} request failed") from e

        if not response.is_success:
            logger.error(f"{config.name} {what} failed with status {response.status_code}")
            raise OAuthExchangeFailed(
                config.name,
                f"{what} failed",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise OAuthExchangeFailed(config.name, f"{what} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise OAuthExchangeFailed(config.name, f"{what} returned unexpected payload")

        return data
