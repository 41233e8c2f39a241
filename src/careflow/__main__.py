"""careflow command line client. Use --help for usage."""

import argparse
import asyncio
import getpass
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from careflow.config import ClientConfig, load_config
from careflow.errors import ConfigurationError, NormalizedError, user_friendly_message
from careflow.http import ApiClient, AuthService
from careflow.logging.setup import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIAL_FILE = "~/.careflow/auth.json"


def _print_json(value) -> None:
    print(json.dumps(value, indent=2, default=str))


def _parse_params(pairs: list[str] | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got: {pair!r}")
        params[key] = value
    return params


def _build_client(config: ClientConfig) -> ApiClient:
    client = ApiClient(config)
    client.on_session_ended(
        lambda error: print("Session ended, sign in again with: careflow login", file=sys.stderr)
    )
    return client


async def cmd_login(args: argparse.Namespace, config: ClientConfig) -> int:
    password = args.password or getpass.getpass("Password: ")
    async with _build_client(config) as client:
        user = await AuthService(client).login(args.email, password)
    print(f"Signed in as {(user or {}).get('email', args.email)}")
    return 0


async def cmd_logout(args: argparse.Namespace, config: ClientConfig) -> int:
    async with _build_client(config) as client:
        await AuthService(client).logout()
    print("Signed out")
    return 0


async def cmd_me(args: argparse.Namespace, config: ClientConfig) -> int:
    async with _build_client(config) as client:
        user = await AuthService(client).me()
    _print_json(user)
    return 0


async def cmd_refresh(args: argparse.Namespace, config: ClientConfig) -> int:
    async with _build_client(config) as client:
        await AuthService(client).refresh()
    print("Access token refreshed")
    return 0


async def cmd_request(args: argparse.Namespace, config: ClientConfig) -> int:
    body = json.loads(args.data) if args.data else None
    async with _build_client(config) as client:
        response = await client.request(
            args.method,
            args.path,
            params=_parse_params(args.param),
            json=body,
            retry=True if args.retry else None,
        )
    _print_json(response.body)
    return 0


def main() -> int:
    """Main CLI entry point."""
    load_dotenv(Path.cwd() / ".env")

    parser = argparse.ArgumentParser(
        prog="careflow",
        description="Authenticated client for the clinic API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Sign in (password is prompted for)
    python -m careflow login doctor@clinic.test

    # Show the signed-in user
    python -m careflow me

    # Any API call, retried on transient failures
    python -m careflow request GET /patients --param page=1 --retry

    # Create a record
    python -m careflow request POST /appointments --data '{"patientId": "p1"}'
        """,
    )
    parser.add_argument("--config", type=Path, help="Path to careflow.yaml")
    parser.add_argument("--base-url", help="API base URL (overrides config)")
    parser.add_argument("--log-level", help="Log level (overrides config)")
    parser.add_argument(
        "--log-format", choices=["console", "json"], help="Log output format"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_login = subparsers.add_parser("login", help="Sign in and store the session")
    parser_login.add_argument("email", help="Account email")
    parser_login.add_argument("--password", help="Password (prompted if omitted)")
    parser_login.set_defaults(func=cmd_login)

    parser_logout = subparsers.add_parser("logout", help="Sign out")
    parser_logout.set_defaults(func=cmd_logout)

    parser_me = subparsers.add_parser("me", help="Show the signed-in user")
    parser_me.set_defaults(func=cmd_me)

    parser_refresh = subparsers.add_parser("refresh", help="Refresh the access token")
    parser_refresh.set_defaults(func=cmd_refresh)

    parser_request = subparsers.add_parser("request", help="Send an API request")
    parser_request.add_argument("method", help="HTTP method")
    parser_request.add_argument("path", help="Path relative to the base URL")
    parser_request.add_argument("--data", help="JSON request body")
    parser_request.add_argument(
        "--param", action="append", help="Query parameter KEY=VALUE (repeatable)"
    )
    parser_request.add_argument(
        "--retry", action="store_true", help="Retry transient failures (idempotent methods)"
    )
    parser_request.set_defaults(func=cmd_request)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    overrides = {}
    if args.base_url:
        overrides["base_url"] = args.base_url
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_format:
        overrides["log_format"] = args.log_format

    try:
        config = load_config(args.config, overrides)
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    # The CLI always persists the session between invocations
    if not config.credential_file:
        config.credential_file = DEFAULT_CREDENTIAL_FILE

    setup_logging(config.log_level, config.log_format, config.log_file)

    try:
        return asyncio.run(args.func(args, config))
    except NormalizedError as e:
        logger.debug("Command failed", extra=e.to_dict())
        print(f"Error: {user_friendly_message(e)}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
