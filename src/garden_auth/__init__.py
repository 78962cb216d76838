"""Garden Auth.

Session and authentication core for the garden events application: server-side
sessions with expiry and per-user caps, CSRF-safe OAuth login, request
authentication and capability checks.
"""

__version__ = "0.1.0"
