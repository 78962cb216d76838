"""Command-line interface for the authentication core."""

import argparse
import asyncio
import sys
from datetime import timedelta

from garden_auth.auth.session import SessionStore
from garden_auth.config import get_settings
from garden_auth.database.connection import Database
from garden_auth.errors import StorageError
from garden_auth.logging import setup_logging


async def _create_tables() -> int:
    database = Database.from_settings(get_settings())
    try:
        await database.create_tables()
    finally:
        await database.close()
    print("Tables created.")
    return 0


async def _sweep_sessions() -> int:
    settings = get_settings()
    database = Database.from_settings(settings)
    store = SessionStore(
        database,
        ttl=timedelta(seconds=settings.session_ttl_seconds),
        max_sessions_per_user=settings.max_sessions_per_user,
        timeout=settings.storage_timeout_seconds,
    )
    try:
        removed = await store.sweep_expired()
    except StorageError as e:
        print(f"Sweep failed: {e}", file=sys.stderr)
        return 1
    finally:
        await database.close()
    print(f"Removed {removed} expired session(s).")
    return 0


def _check_config() -> int:
    report = get_settings().validate_oauth_config()
    for error in report.errors:
        print(f"error: {error}")
    for warning in report.warnings:
        print(f"warning: {warning}")
    if report.is_valid:
        print("Configuration OK.")
        return 0
    return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Garden Auth - session and authentication maintenance"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("create-tables", help="Create database tables")
    subparsers.add_parser("sweep-sessions", help="Delete expired sessions")
    subparsers.add_parser("check-config", help="Validate OAuth configuration")

    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    settings = get_settings()
    setup_logging(settings.debug)

    if args.command == "serve":
        import uvicorn

        from garden_auth.api import create_app

        uvicorn.run(
            create_app(),
            host=args.host or settings.host,
            port=args.port or settings.port,
        )
        return 0
    if args.command == "create-tables":
        return asyncio.run(_create_tables())
    if args.command == "sweep-sessions":
        return asyncio.run(_sweep_sessions())
    return _check_config()


if __name__ == "__main__":
    sys.exit(main())
