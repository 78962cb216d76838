"""CSRF protection for the OAuth redirect round trip.

A random state value is placed both in a short-lived cookie and in the
``state`` query parameter of the provider redirect. When the provider sends
the user back, the callback is accepted only if the two values match.

Nothing is stored server-side: the browser carries the state, and the
cookie's ``Max-Age`` bounds how long a login attempt stays valid. The cookie
is cleared after every callback so each value is used at most once.
"""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass
from typing import Literal

from fastapi import Response

STATE_TOKEN_BYTES = 32
DEFAULT_STATE_COOKIE_NAME = "oauth_state"
DEFAULT_STATE_MAX_AGE = 600  # 10 minutes
DEFAULT_STATE_COOKIE_PATH = "/auth"


@dataclass(frozen=True)
class CookieDirective:
    """Attributes for a Set-Cookie header."""

    name: str
    value: str
    max_age: int
    path: str = "/"
    http_only: bool = True
    secure: bool = True
    same_site: Literal["lax", "strict", "none"] = "lax"

    def apply(self, response: Response) -> None:
        """Add this cookie to a response."""
        response.set_cookie(
            key=self.name,
            value=self.value,
            max_age=self.max_age,
            path=self.path,
            httponly=self.http_only,
            secure=self.secure,
            samesite=self.same_site,
        )

    def header_value(self) -> str:
        """Render as a raw Set-Cookie header value."""
        parts = [
            f"{self.name}={self.value}",
            f"Max-Age={self.max_age}",
            f"Path={self.path}",
            f"SameSite={self.same_site.capitalize()}",
        ]
        if self.http_only:
            parts.append("HttpOnly")
        if self.secure:
            parts.append("Secure")
        return "; ".join(parts)


class CSRFStateManager:
    """Issues and validates single-use OAuth state tokens."""

    def __init__(
        self,
        cookie_name: str = DEFAULT_STATE_COOKIE_NAME,
        max_age: int = DEFAULT_STATE_MAX_AGE,
        path: str = DEFAULT_STATE_COOKIE_PATH,
        secure: bool = True,
    ):
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.path = path
        self.secure = secure

    def issue(self) -> tuple[str, CookieDirective]:
        """Create a new state value and the cookie that carries it."""
        state = secrets.token_urlsafe(STATE_TOKEN_BYTES)
        return state, self._directive(state, self.max_age)

    def clear(self) -> CookieDirective:
        """Cookie directive that removes the state cookie."""
        return self._directive("", 0)

    @staticmethod
    def validate(cookie_value: str | None, callback_state_value: str | None) -> bool:
        """Check the callback state against the cookie.

        True only when both values are present and identical.
        """
        if not cookie_value or not callback_state_value:
            return False
        return hmac.compare_digest(
            cookie_value.encode("utf-8"),
            callback_state_value.encode("utf-8"),
        )

    def _directive(self, value: str, max_age: int) -> CookieDirective:
        return CookieDirective(
            name=self.cookie_name,
            value=value,
            max_age=max_age,
            path=self.path,
            http_only=True,
            secure=self.secure,
            same_site="lax",
        )
