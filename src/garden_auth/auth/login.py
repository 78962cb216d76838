"""OAuth login flow.

Drives a provider callback through the login state machine:

```
Anonymous -> StateIssued -> (provider redirect) -> CallbackReceived
    -> StateValidated -> CodeExchanged -> IdentityResolved -> SessionCreated
    \\-> Rejected (at any validation step)
```

A rejection is a ``LoginRejected`` carrying the last step reached; it leaves
the user anonymous. The session is the last thing created, so a rejected
flow never leaves a partial session behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from garden_auth.auth.csrf import CookieDirective, CSRFStateManager
from garden_auth.auth.identity import IdentityStore
from garden_auth.auth.oauth import OAuthExchange, OAuthProviderConfig, RemoteIdentity
from garden_auth.auth.session import SessionStore
from garden_auth.database.models import HostStatus, User
from garden_auth.errors import CSRFValidationFailed, LoginRejected, OAuthExchangeFailed

logger = logging.getLogger(__name__)


class LoginState(str, Enum):
    """Steps of the login state machine reached by a login attempt."""

    STATE_ISSUED = "state_issued"
    CALLBACK_RECEIVED = "callback_received"
    STATE_VALIDATED = "state_validated"
    CODE_EXCHANGED = "code_exchanged"
    IDENTITY_RESOLVED = "identity_resolved"
    SESSION_CREATED = "session_created"


@dataclass
class LoginStart:
    """Where to send the browser and the state cookie to set."""

    authorization_url: str
    state: str
    state_cookie: CookieDirective
    login_state: LoginState = LoginState.STATE_ISSUED


@dataclass
class CallbackParams:
    """Parameters a provider sends back to the callback endpoint."""

    code: str | None = None
    state: str | None = None
    error: str | None = None


@dataclass
class LoginResult:
    """Outcome of a successful login."""

    session_id: str
    user: User
    identity: RemoteIdentity
    user_created: bool
    state: LoginState = LoginState.SESSION_CREATED


class LoginFlow:
    """Orchestrates the OAuth login handshake.

    Example:
        ```python
        flow = LoginFlow(csrf, exchange, identities, sessions)

        start = flow.start(config)
        # set start.state_cookie, redirect to start.authorization_url

        result = await flow.complete(config, params, cookie_state, user_agent, ip)
        ```
    """

    def __init__(
        self,
        csrf: CSRFStateManager,
        exchange: OAuthExchange,
        identities: IdentityStore,
        sessions: SessionStore,
        initial_host_status: HostStatus | str = HostStatus.APPROVED,
    ):
        self.csrf = csrf
        self.exchange = exchange
        self.identities = identities
        self.sessions = sessions
        self.initial_host_status = HostStatus(initial_host_status)

    def start(self, config: OAuthProviderConfig) -> LoginStart:
        """Issue a state token and build the provider redirect."""
        state, cookie = self.csrf.issue()
        return LoginStart(
            authorization_url=self.exchange.authorization_url(config, state),
            state=state,
            state_cookie=cookie,
        )

    async def complete(
        self,
        config: OAuthProviderConfig,
        params: CallbackParams,
        cookie_state: str | None,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> LoginResult:
        """Validate a callback and create a session.

        Raises:
            LoginRejected: If any step fails; no session is created
            StorageError: If the stores are unavailable
        """
        if params.error:
            logger.warning(f"{config.name} OAuth error: {params.error}")
            raise LoginRejected(
                "provider_error",
                "Authentication cancelled",
                last_state=LoginState.CALLBACK_RECEIVED,
            )

        if not params.code or not params.state:
            raise LoginRejected(
                "missing_parameters",
                "Missing authentication parameters",
                last_state=LoginState.CALLBACK_RECEIVED,
            )

        try:
            self._validate_state(cookie_state, params.state)
        except CSRFValidationFailed as e:
            logger.warning(f"Rejected {config.name} callback: {e}")
            raise LoginRejected(
                "state_mismatch", last_state=LoginState.CALLBACK_RECEIVED
            ) from e

        try:
            tokens = await self.exchange.exchange_code(config, params.code)
        except OAuthExchangeFailed as e:
            logger.error(f"Rejected {config.name} callback: {e.reason}")
            raise LoginRejected(
                "exchange_failed", last_state=LoginState.STATE_VALIDATED
            ) from e

        try:
            identity = await self.exchange.fetch_identity(
                config, tokens.access_token, tokens.id_token
            )
        except OAuthExchangeFailed as e:
            logger.error(f"Rejected {config.name} callback: {e.reason}")
            raise LoginRejected(
                "identity_failed", last_state=LoginState.CODE_EXCHANGED
            ) from e

        user, created = await self.identities.get_or_create(
            identity.name,
            identity.email,
            status=self.initial_host_status,
        )

        session_id = await self.sessions.create(
            user.id,
            config.name,
            user_agent=user_agent,
            ip_address=ip_address,
        )

        logger.info(f"User {user.email} logged in via {config.name}")
        return LoginResult(
            session_id=session_id,
            user=user,
            identity=identity,
            user_created=created,
        )

    def _validate_state(self, cookie_state: str | None, callback_state: str | None) -> None:
        if not self.csrf.validate(cookie_state, callback_state):
            raise CSRFValidationFailed()
