"""Command-line interface for the CRUD panel service."""

from __future__ import annotations

import argparse
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

import httpx

from panel.config import Settings, load_settings
from panel.database import Database
from panel.models import Role
from panel.passwords import PasswordHasher

logger = logging.getLogger("panel.main")

_DEFAULT_SERVICE_URL = "http://localhost:8000"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    # Accepted both before and after the sub-command.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=argparse.SUPPRESS,
        help="Path to a YAML configuration file (default: PANEL_CONFIG)",
    )

    parser = argparse.ArgumentParser(description="CRUD panel utilities", parents=[common])
    parser.set_defaults(command="serve")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-db", parents=[common], help="Initialise the panel database")

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Start the HTTP service")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: PANEL_HOST or 0.0.0.0)")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Listening port (default: PANEL_PORT or 8000)",
    )

    role_parser = subparsers.add_parser(
        "set-role", parents=[common], help="Change the role of an existing account"
    )
    role_parser.add_argument("email", help="Email address of the account")
    role_parser.add_argument("role", choices=[role.value for role in Role], help="New role")

    token_parser = subparsers.add_parser(
        "token", parents=[common], help="Log in to a running service and print a bearer token"
    )
    token_parser.add_argument(
        "--service-url",
        default=_DEFAULT_SERVICE_URL,
        help=f"Base URL of the running service (default: {_DEFAULT_SERVICE_URL})",
    )
    token_parser.add_argument("--email", required=True, help="Account email address")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = set(subparsers.choices)
    if not any(arg in known_commands for arg in args_list) and not any(
        arg in ("-h", "--help") for arg in args_list
    ):
        args_list = ["serve", *args_list]

    args = parser.parse_args(args_list)
    if not hasattr(args, "config"):
        args.config = None
    return args


def _open_database(settings: Settings) -> Database:
    database = Database(
        settings.database_path,
        hasher=PasswordHasher(rounds=settings.password_rounds),
        timeout=settings.db_timeout,
    )
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(settings: Settings, database: Database, *, host: str | None, port: int | None) -> None:
    from panel.service import create_app
    import uvicorn

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("Starting panel API on http://%s:%s", bind_host, bind_port)

    app = create_app(settings=settings, database=database)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level="info")


def _set_role(database: Database, email: str, role_name: str) -> int:
    account = database.get_account_by_email(email)
    if account is None:
        print(f"No account is registered with {email}.", file=sys.stderr)
        return 1

    updated = database.set_account_role(account.id, Role.parse(role_name))
    if updated is None:
        print(f"Account {account.id} disappeared while updating.", file=sys.stderr)
        return 1

    logger.info("Operator set role of account %s to %s", updated.id, updated.role.value)
    print(f"{updated.email} now has role '{updated.role.value}'.")
    return 0


def _fetch_token(service_url: str, email: str) -> int:
    password = getpass("Password: ")
    endpoint = service_url.rstrip("/") + "/api/auth/login"

    try:
        response = httpx.post(endpoint, json={"email": email, "password": password}, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact panel service: {exc}", file=sys.stderr)
        return 1

    if response.status_code == 401:
        print("Authentication failed. Verify the email address and password.", file=sys.stderr)
        return 1
    if response.status_code != 200:
        print(f"Service responded with {response.status_code}: {response.text.strip()}", file=sys.stderr)
        return 1

    try:
        payload = response.json()
    except ValueError:
        print("Service returned an unexpected response format.", file=sys.stderr)
        return 1

    token = payload.get("token")
    if not token:
        print("Service response did not include a token.", file=sys.stderr)
        return 1

    print(token)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)

    if args.command == "token":
        return _fetch_token(args.service_url, args.email)

    try:
        settings = load_settings(Path(args.config) if args.config else None)
    except ValueError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    database = _open_database(settings)

    if args.command == "serve":
        _serve(settings, database, host=args.host, port=args.port)
    elif args.command == "set-role":
        return _set_role(database, args.email, args.role)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
