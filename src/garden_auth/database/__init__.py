"""Database module for the authentication core.

This module provides:
- An explicitly constructed SQLAlchemy async ``Database`` handle
- User and session models with named-column mapping
"""

from garden_auth.database.connection import Database
from garden_auth.database.models import (
    Base,
    HostStatus,
    Role,
    Session,
    User,
)

__all__ = [
    # Connection
    "Database",
    # Models
    "Base",
    "HostStatus",
    "Role",
    "Session",
    "User",
]
