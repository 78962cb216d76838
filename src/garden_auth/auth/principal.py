"""The authenticated principal handed to route handlers."""

from __future__ import annotations

from dataclasses import dataclass

from garden_auth.database.models import Session, User


@dataclass(frozen=True)
class Principal:
    """Who is making the request: a valid session and the user it belongs to.

    Rebuilt on every request and never persisted.
    """

    user: User
    session: Session

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def email(self) -> str:
        return self.user.email

    @property
    def provider(self) -> str:
        return self.session.provider

    @property
    def session_id(self) -> str:
        return self.session.id
