"""Exceptions raised by the authentication core.

"Not logged in" is never an exception: missing cookies, unknown or expired
sessions and deleted users are all represented as ``None``. Only
infrastructure faults and rejected OAuth handshakes are modeled here.
"""

from __future__ import annotations


class GardenAuthError(Exception):
    """Base exception for the authentication core."""


class StorageError(GardenAuthError):
    """Raised when the session or identity storage is unavailable.

    The message is meant for logs only; it is never shown to clients.
    """


class OAuthExchangeFailed(GardenAuthError):
    """Raised when a provider exchange or identity lookup fails.

    Authorization codes are single-use, so the only recovery is to restart
    the login flow from the beginning.
    """

    def __init__(
        self,
        provider: str,
        reason: str,
        status_code: int | None = None,
    ):
        super().__init__(f"OAuth exchange with {provider} failed: {reason}")
        self.provider = provider
        self.reason = reason
        self.status_code = status_code


class CSRFValidationFailed(GardenAuthError):
    """Raised when the callback state does not match the state cookie."""

    def __init__(self, message: str = "OAuth state mismatch"):
        super().__init__(message)


class LoginRejected(GardenAuthError):
    """Raised when a login callback is rejected at any validation step.

    ``reason`` is a short machine-readable code suitable for logs. Clients
    only ever see ``user_message``. ``last_state`` is the last login step
    reached before the rejection.
    """

    user_message = "Authentication failed"

    def __init__(
        self,
        reason: str,
        user_message: str | None = None,
        last_state: str | None = None,
    ):
        super().__init__(reason)
        self.reason = reason
        self.last_state = last_state
        if user_message is not None:
            self.user_message = user_message
