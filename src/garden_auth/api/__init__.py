"""FastAPI application and routes.

This module provides the HTTP surface of the authentication core.

## API Structure

- /auth - Login, OAuth callbacks, logout and status
- /api/users - Profile and session management

## Authentication

Protected endpoints require the session cookie set at the end of an OAuth
login. Route handlers get the caller through the dependencies in
`garden_auth.auth.dependencies`.
"""

from garden_auth.api.app import create_app

__all__ = ["create_app"]
