"""Wiring of the authentication components.

All components are constructed once at startup from the settings and a
database handle, then shared by every request handler.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

import httpx

from garden_auth.auth.csrf import CSRFStateManager
from garden_auth.auth.identity import IdentityStore
from garden_auth.auth.login import LoginFlow
from garden_auth.auth.oauth import OAuthExchange, OAuthProviderConfig, get_provider_config
from garden_auth.auth.permissions import AuthorizationPolicy
from garden_auth.auth.resolver import AuthenticationResolver
from garden_auth.auth.session import Clock, SessionStore
from garden_auth.config import Settings
from garden_auth.database.connection import Database


@dataclass
class AuthServices:
    """The authentication core as used by the web layer."""

    settings: Settings
    database: Database
    sessions: SessionStore
    identities: IdentityStore
    resolver: AuthenticationResolver
    csrf: CSRFStateManager
    exchange: OAuthExchange
    login_flow: LoginFlow
    policy: AuthorizationPolicy

    @classmethod
    def build(
        cls,
        settings: Settings,
        database: Database,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Clock | None = None,
    ) -> AuthServices:
        """Construct every component from settings.

        Args:
            settings: Application settings
            database: Open database handle
            transport: Optional httpx transport for provider calls (tests)
            clock: Optional clock for the session store (tests)
        """
        sessions = SessionStore(
            database,
            ttl=timedelta(seconds=settings.session_ttl_seconds),
            max_sessions_per_user=settings.max_sessions_per_user,
            timeout=settings.storage_timeout_seconds,
            clock=clock,
        )
        identities = IdentityStore(database, timeout=settings.storage_timeout_seconds)
        csrf = CSRFStateManager(
            cookie_name=settings.oauth_state_cookie_name,
            max_age=settings.oauth_state_max_age_seconds,
            secure=settings.use_secure_cookies,
        )
        exchange = OAuthExchange(timeout=settings.oauth_timeout_seconds, transport=transport)

        return cls(
            settings=settings,
            database=database,
            sessions=sessions,
            identities=identities,
            resolver=AuthenticationResolver(
                sessions, identities, cookie_name=settings.session_cookie_name
            ),
            csrf=csrf,
            exchange=exchange,
            login_flow=LoginFlow(
                csrf,
                exchange,
                identities,
                sessions,
                initial_host_status=settings.oauth_initial_host_status,
            ),
            policy=AuthorizationPolicy.from_settings(settings),
        )

    def provider(self, name: str) -> OAuthProviderConfig | None:
        return get_provider_config(name, self.settings)
