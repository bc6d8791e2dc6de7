"""CLI entry point for the Linked Profiles service.

Runs a single lookup against Meevo and prints the JSON payload the HTTP
API would return.  Handy for checking a discovery strategy against a real
location without starting the server.

Usage:
    uv run python -m linked_profiles.main --phone "+1 (555) 123-4567"
    uv run python -m linked_profiles.main --client-id C100 --strategy recency --debug
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

import httpx
from dotenv import load_dotenv

from linked_profiles.services.auth import AuthError
from linked_profiles.services.discovery import STRATEGIES
from linked_profiles.services.lookup import create_lookup_service

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        # Silence chatty HTTP loggers even if root is WARNING
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("linked_profiles").setLevel(logging.DEBUG if debug else logging.INFO)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Look up a caller and their linked profiles")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--phone", help="Caller phone number (any format)")
    target.add_argument("--client-id", help="Meevo client id of the caller")
    parser.add_argument("--location-id", help="Meevo location id (defaults to MEEVO_LOCATION_ID)")
    parser.add_argument(
        "--strategy", choices=STRATEGIES,
        help="Discovery strategy (defaults to DISCOVERY_STRATEGY)",
    )
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    return parser


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    async with httpx.AsyncClient() as http:
        service = create_lookup_service(http, strategy=args.strategy)
        return await service.lookup(
            phone=args.phone,
            client_id=args.client_id,
            location_id=args.location_id,
        )


def main(argv: list[str] | None = None) -> int:
    """Run one lookup and print the result.  Returns the exit code."""
    args = _build_parser().parse_args(argv)

    load_dotenv()
    _configure_logging(debug=args.debug)

    try:
        result = asyncio.run(_run(args))
    except AuthError as exc:
        logger.error("Authentication failed: %s", exc)
        print(json.dumps({"success": False, "error": str(exc)}, indent=2))
        return 1

    print(json.dumps(result, indent=2))
    return 0 if result.get("success") else 1


if __name__ == "__main__":
    sys.exit(main())
