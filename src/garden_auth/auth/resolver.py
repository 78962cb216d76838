"""Request authentication.

Turns an inbound request into a ``Principal`` or ``None``. Not being logged
in is the normal case and is never an error.

## Resolution Steps

1. Find the session cookie in the ``Cookie`` header (any position, other
   cookies ignored, malformed pairs skipped)
2. Look the session up; expired sessions are treated as missing
3. Record activity on the session; the principal carries the new access time
4. Load the user the session belongs to
"""

from __future__ import annotations

import logging

from starlette.requests import HTTPConnection, cookie_parser

from garden_auth.auth.identity import IdentityStore
from garden_auth.auth.principal import Principal
from garden_auth.auth.session import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_SESSION_COOKIE_NAME = "session"


def extract_cookie(cookie_header: str | None, name: str) -> str | None:
    """Get one cookie value from a raw Cookie header."""
    if not cookie_header:
        return None
    value = cookie_parser(cookie_header).get(name)
    return value or None


class AuthenticationResolver:
    """Resolves the session cookie of a request into a principal.

    Example:
        ```python
        resolver = AuthenticationResolver(session_store, identity_store)

        principal = await resolver.resolve(request)
        if principal is None:
            ...  # anonymous
        ```
    """

    def __init__(
        self,
        sessions: SessionStore,
        identities: IdentityStore,
        cookie_name: str = DEFAULT_SESSION_COOKIE_NAME,
    ):
        self.sessions = sessions
        self.identities = identities
        self.cookie_name = cookie_name

    async def resolve(self, request: HTTPConnection) -> Principal | None:
        """Resolve a request (or websocket) into a principal.

        Raises:
            StorageError: If the stores are unavailable
        """
        return await self.resolve_cookie_header(request.headers.get("cookie"))

    async def resolve_cookie_header(self, cookie_header: str | None) -> Principal | None:
        session_id = extract_cookie(cookie_header, self.cookie_name)
        if session_id is None:
            return None

        session = await self.sessions.get(session_id)
        if session is None:
            return None

        touched_at = await self.sessions.touch(session_id)
        if touched_at is not None:
            session.last_accessed_at = touched_at

        user = await self.identities.get_user_by_id(session.user_id)
        if user is None:
            logger.warning(f"Session for non-existent user: {session.user_id}")
            return None

        return Principal(user=user, session=session)
