"""Command-line interface for the usergate service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from typing import Sequence


try:
    import httpx
except ImportError as exc:  # pragma: no cover - exercised in environments missing deps
    raise SystemExit(
        "The 'httpx' package is required. Execute `pip install -e .` to install dependencies."
    ) from exc

from usergate.config import load_settings_from_env
from usergate.database import Database, StoreError, resolve_database_path
from usergate.users import (
    MSG_CREATED,
    MSG_DELETED,
    DeletionEmbargoError,
    InvalidUserError,
    UserConflictError,
    UserNotFoundError,
    UserService,
)

logger = logging.getLogger("usergate.main")

_DEFAULT_SERVICE_URL = "http://127.0.0.1:8080"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="usergate user service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the user database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP user service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port for the HTTP API (default: 8080)",
    )
    serve_parser.add_argument(
        "--ssl-certfile",
        default=None,
        help="Path to the TLS certificate chain in PEM format",
    )
    serve_parser.add_argument(
        "--ssl-keyfile",
        default=None,
        help="Path to the TLS private key in PEM format",
    )

    admin_parser = subparsers.add_parser(
        "admin", help="Launch the interactive administration console"
    )
    admin_parser.add_argument(
        "--service-url",
        default=None,
        help=f"Base URL of a running user service (default: {_DEFAULT_SERVICE_URL})",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "admin", "init-db"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database() -> Database:
    db_path = resolve_database_path(os.getenv("USERGATE_DB_PATH"))
    database = Database(db_path)
    database.initialize()
    logger.info("Database initialised at %s", db_path)
    return database


def _serve(
    *,
    database: Database,
    host: str,
    port: int,
    ssl_certfile: str | None,
    ssl_keyfile: str | None,
) -> None:
    from usergate.service import create_app
    import uvicorn

    if bool(ssl_certfile) ^ bool(ssl_keyfile):
        raise SystemExit("Both --ssl-certfile and --ssl-keyfile must be provided together.")

    protocol = "https" if ssl_certfile and ssl_keyfile else "http"
    logger.info("Starting user API on %s://%s:%s", protocol, host, port)

    app = create_app(database=database)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
        ssl_certfile=ssl_certfile,
        ssl_keyfile=ssl_keyfile,
    )


def _run_admin_cli(users: UserService, *, default_service_url: str | None = None) -> None:
    """Provide an interactive console for administrators."""

    service_url = default_service_url or _DEFAULT_SERVICE_URL

    print("usergate Administration Console")
    print("Press Ctrl+C at any time to exit.\n")

    try:
        while True:
            print("Select an option:")
            print("  1) List all users")
            print("  2) Add a new user")
            print("  3) Delete a user")
            print("  4) Look up a user on the running service")
            print("  5) Exit")

            choice = input("Enter choice [1-5]: ").strip()

            if choice == "1":
                _list_users(users)
            elif choice == "2":
                _add_user(users)
            elif choice == "3":
                _delete_user(users)
            elif choice == "4":
                _lookup_remote_user(service_url)
            elif choice == "5":
                print("Goodbye!")
                return
            else:
                print("Invalid selection. Please choose a number from the menu.\n")

            print()
    except KeyboardInterrupt:
        print("\nExiting administration console.")


def _list_users(users: UserService) -> None:
    records = users.list_users()
    if not records:
        print("No users are currently registered.")
        return

    print(f"{len(records)} user(s) found:")
    print(f"{'ID':<20}  {'Name':<24}  {'Email':<32}  Created")
    print("-" * 96)
    for user in records:
        created = (
            user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z") if user.created_at else "<unknown>"
        )
        email = user.email or "<no email>"
        print(f"{user.id:<20}  {user.name:<24}  {email:<32}  {created}")


def _add_user(users: UserService) -> None:
    print("\nCreate a new user (leave the name blank to cancel).")
    name = input("Name: ").strip()
    if not name:
        print("User creation cancelled.")
        return

    email = input("Email address: ").strip()

    try:
        user = users.create_user(name, email)
    except InvalidUserError as exc:
        print(f"Failed to create user: {exc}")
        return
    except StoreError as exc:
        logger.exception("Failed to create user")
        print(f"Database error: {exc}")
        return

    print(f"Created user {user.id}: {MSG_CREATED.format(name=user.name)}")


def _delete_user(users: UserService) -> None:
    name = input("Name of the user to delete: ").strip()
    if not name:
        print("Deletion cancelled.")
        return

    try:
        user = users.delete_user(name)
    except DeletionEmbargoError as exc:
        print(f"{exc} {exc.remaining_time}")
        return
    except (InvalidUserError, UserNotFoundError, UserConflictError) as exc:
        print(f"Failed to delete user: {exc}")
        return
    except StoreError as exc:
        logger.exception("Failed to delete user")
        print(f"Database error: {exc}")
        return

    print(f"{MSG_DELETED} ({user.id})")


def _lookup_remote_user(base_url: str) -> None:
    name = input("Name to look up: ").strip()
    if not name:
        print("Lookup cancelled.")
        return

    endpoint = base_url.rstrip("/") + "/getUser"

    try:
        response = httpx.get(endpoint, params={"name": name}, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact user service: {exc}")
        return

    try:
        payload = response.json()
    except ValueError:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return

    if response.status_code != 200:
        message = payload.get("error") if isinstance(payload, dict) else None
        print(f"Service responded with {response.status_code}: {message or response.text.strip()}")
        return

    print(f"Found {len(payload)} user(s) named {name}:")
    for record in payload:
        created = record.get("createdAt") or "unknown time"
        print(f"- {record.get('id')} <{record.get('email')}> (created {created})")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    database = _initialise_database()

    if args.command == "serve":
        _serve(
            database=database,
            host=args.host,
            port=args.port,
            ssl_certfile=args.ssl_certfile,
            ssl_keyfile=args.ssl_keyfile,
        )
    elif args.command == "admin":
        _run_admin_cli(
            UserService(database, load_settings_from_env()),
            default_service_url=args.service_url,
        )
    elif args.command == "init-db":
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
