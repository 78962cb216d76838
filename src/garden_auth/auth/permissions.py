"""Authorization policy.

Capability checks operate only on an already-resolved ``Principal``. They
never query the session or identity stores, so they are side-effect free and
can be tested without a database.

## Capabilities

- ``user``: any authenticated principal
- ``host``: host status ``approved``, or admin
- ``admin``: role ``admin``, or an email listed in ``ADMIN_EMAILS``

The legacy rule that treated any email containing "admin" as an
administrator is available behind ``LEGACY_ADMIN_EMAIL_HEURISTIC`` for
existing data, and is off by default.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from garden_auth.auth.principal import Principal
from garden_auth.config import Settings
from garden_auth.database.models import HostStatus, Role


class Capability(str, Enum):
    """What a principal may be allowed to do."""

    ADMIN = "admin"
    HOST = "host"
    USER = "user"


@dataclass(frozen=True)
class AuthorizationPolicy:
    """Admin detection rules."""

    admin_emails: frozenset[str] = field(default_factory=frozenset)
    legacy_admin_email_heuristic: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> AuthorizationPolicy:
        return cls(
            admin_emails=frozenset(settings.admin_emails),
            legacy_admin_email_heuristic=settings.legacy_admin_email_heuristic,
        )

    def is_admin(self, principal: Principal) -> bool:
        user = principal.user
        if user.role == Role.ADMIN.value:
            return True
        email = user.email.lower()
        if email in self.admin_emails:
            return True
        return self.legacy_admin_email_heuristic and "admin" in email

    def is_host(self, principal: Principal) -> bool:
        return principal.user.host_status == HostStatus.APPROVED.value or self.is_admin(
            principal
        )

    def has_permission(
        self,
        principal: Principal | None,
        capability: Capability | str,
    ) -> bool:
        if principal is None:
            return False

        try:
            capability = Capability(capability)
        except ValueError:
            return False

        if capability is Capability.ADMIN:
            return self.is_admin(principal)
        if capability is Capability.HOST:
            return self.is_host(principal)
        return True


def has_permission(
    principal: Principal | None,
    capability: Capability | str,
    policy: AuthorizationPolicy | None = None,
) -> bool:
    """Check whether a principal holds a capability.

    Args:
        principal: Resolved principal, or None when not logged in
        capability: "admin", "host" or "user"
        policy: Admin detection rules. Without one only the role column
            makes an admin; pass ``AuthServices.policy`` to honour
            ``ADMIN_EMAILS``

    Returns:
        True if the capability is granted. Unknown capabilities are denied.
    """
    if policy is None:
        policy = AuthorizationPolicy()
    return policy.has_permission(principal, capability)
