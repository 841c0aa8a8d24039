# humanmark/cli.py

"""
Humanmark CLI Tool
------------------

Provides:
  - Decoding a challenge token (no network)
  - Running one verification from the terminal
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional

from humanmark.core.client import ApiClient
from humanmark.core.config import resolve_config
from humanmark.core.orchestrator import VerificationOrchestrator
from humanmark.core.presentation import ConsolePresenter
from humanmark.core.settings import get_settings
from humanmark.protocol.challenge_token import claims_to_dict, decode_challenge_token
from humanmark.protocol.errors import HumanmarkError
from humanmark.utils.timestamps import epoch_to_iso, now_ms

logger = logging.getLogger("humanmark.cli")


def _fail(error: HumanmarkError) -> int:
    print(f"Error [{error.code.value}]: {error.message}", file=sys.stderr)
    return 1


def cmd_decode(args) -> int:
    """
    Prints the claims carried by a challenge token.
    """
    try:
        claims = decode_challenge_token(args.token)
    except HumanmarkError as e:
        return _fail(e)

    data = claims_to_dict(claims)
    data["expiresAtIso"] = epoch_to_iso(claims.expires_at)
    data["expiresInMs"] = max(0, claims.expires_at_ms - now_ms())
    print(json.dumps(data, indent=2))
    return 0


async def _verify(args) -> str:
    settings = get_settings()
    config = resolve_config(
        api_key=args.api_key,
        api_secret=args.api_secret,
        domain=args.domain,
        challenge_token=args.token,
    )
    presenter = ConsolePresenter(success_display=settings.success_display)
    client = ApiClient(args.base_url, settings=settings)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, presenter.close)
    except (NotImplementedError, RuntimeError):
        # no signal handlers on this platform; Ctrl-C aborts the process
        logger.debug("SIGINT handler not installed")

    try:
        async with VerificationOrchestrator(
            config, api_client=client, presenter=presenter
        ) as orchestrator:
            return await orchestrator.start()
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


def cmd_verify(args) -> int:
    """
    Runs one verification with the console presenter and prints the receipt.
    """
    try:
        receipt = asyncio.run(_verify(args))
    except HumanmarkError as e:
        return _fail(e)

    print(receipt)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="humanmark",
        description="Humanmark verification client",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    # decode
    p_decode = sub.add_parser("decode", help="Decode a challenge token")
    p_decode.add_argument("token", help="Challenge token")
    p_decode.set_defaults(func=cmd_decode)

    # verify
    p_verify = sub.add_parser("verify", help="Run a verification")
    p_verify.add_argument("--api-key", required=True, help="Humanmark API key")
    p_verify.add_argument("--token", help="Challenge token issued by your backend (verify-only)")
    p_verify.add_argument("--api-secret", help="API secret (create-and-verify)")
    p_verify.add_argument("--domain", help="Domain the challenge is created for")
    p_verify.add_argument("--base-url", help="Override the service base URL")
    p_verify.set_defaults(func=cmd_verify)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = "DEBUG" if args.verbose else get_settings().log_level
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
