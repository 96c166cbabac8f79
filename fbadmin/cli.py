"""CLI entrypoints for key-cache, token and messaging operations."""

from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Sequence
from typing import Any

from fbadmin.admin import FirebaseAdmin
from fbadmin.config import configure_structlog, get_settings
from fbadmin.exceptions import FirebaseAdminError, TokenVerificationError
from fbadmin.schemas.message import Message, Notification


def _emit(payload: dict[str, Any]) -> None:
    """Print one JSON result line."""
    print(json.dumps(payload, default=str))


def _parse_data(pairs: Sequence[str]) -> dict[str, str]:
    """Parse repeated ``key=value`` arguments."""
    data: dict[str, str] = {}
    for pair in pairs:
        key, separator, value = pair.partition("=")
        if not separator or not key:
            raise argparse.ArgumentTypeError(f"Expected key=value, got {pair!r}.")
        data[key] = value
    return data


def _build_message(args: argparse.Namespace) -> Message:
    """Build a single-target message from ``send`` arguments."""
    notification = None
    if args.title is not None or args.body is not None:
        notification = Notification(title=args.title, body=args.body, image=args.image)
    return Message(
        token=args.token,
        topic=args.topic,
        condition=args.condition,
        notification=notification,
        data=_parse_data(args.data) or None,
    )


async def _run(args: argparse.Namespace, message: Message | None = None) -> int:
    """Run one command against a facade built from environment settings."""
    async with FirebaseAdmin.from_settings(get_settings()) as admin:
        if args.command == "verify-token":
            try:
                claims = await admin.verify_token(args.token)
            except TokenVerificationError as exc:
                _emit({"valid": False, "code": exc.code, "detail": exc.detail})
                return 1
            _emit({"valid": True, "claims": claims})
            return 0

        if args.command == "refresh-keys":
            refreshed = await admin.refresh_keys()
            _emit({"refreshed": refreshed})
            return 0 if refreshed else 1

        if args.command == "send" and message is not None:
            message_id = await admin.send_message(message)
            _emit({"message_id": message_id})
            return 0

        if args.command == "revoke-refresh-tokens":
            await admin.revoke_refresh_tokens(args.uid)
            _emit({"revoked": True, "uid": args.uid})
            return 0
    return 2


def _build_parser() -> argparse.ArgumentParser:
    """Build command-line parser for supported operational commands."""
    parser = argparse.ArgumentParser(prog="python -m fbadmin.cli")
    subcommands = parser.add_subparsers(dest="command", required=True)

    verify_parser = subcommands.add_parser("verify-token")
    verify_parser.add_argument("token", help="Firebase ID token to verify.")

    subcommands.add_parser("refresh-keys")

    send_parser = subcommands.add_parser("send")
    target = send_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--token", help="Device registration token.")
    target.add_argument("--topic", help="Topic name.")
    target.add_argument("--condition", help="Topic condition expression.")
    send_parser.add_argument("--title", default=None)
    send_parser.add_argument("--body", default=None)
    send_parser.add_argument("--image", default=None)
    send_parser.add_argument(
        "--data", action="append", default=[], metavar="KEY=VALUE", help="Data payload entry."
    )

    revoke_parser = subcommands.add_parser("revoke-refresh-tokens")
    revoke_parser.add_argument("uid", help="Firebase user id.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_structlog(get_settings())
    try:
        message = _build_message(args) if args.command == "send" else None
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
    try:
        return asyncio.run(_run(args, message))
    except (FirebaseAdminError, ValueError) as exc:
        _emit({"error": type(exc).__name__, "detail": str(exc)})
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
