"""Out-of-band API key provisioning.

Usage::
    python -m shortener.provision create --name my-client [--rate-limit 120]
    python -m shortener.provision revoke 2f6d0c5e-...

``create`` prints the raw secret exactly once; only its hash is stored.
"""

import argparse
import asyncio
import sys
import uuid

from shortener.auth import APIKeyService
from shortener.database import close_db, init_db
from shortener.dependencies import ServiceManager


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m shortener.provision", description="Manage API keys")
    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="Provision a new API key")
    create.add_argument("--name", required=True, help="Human-readable owner of the key")
    create.add_argument("--rate-limit", type=positive_int, default=None, help="Requests per minute for this key")

    revoke = commands.add_parser("revoke", help="Deactivate an API key")
    revoke.add_argument("key_id", type=uuid.UUID, help="Identifier printed at creation time")

    return parser


async def run(args: argparse.Namespace) -> int:
    await init_db()
    manager = ServiceManager()
    await manager.initialize()
    service = APIKeyService.from_context(manager)
    try:
        if args.command == "create":
            raw_key, key = await service.provision(args.name, args.rate_limit)
            print(f"id:         {key.id}")
            print(f"name:       {key.name}")
            print(f"rate_limit: {key.rate_limit}/min")
            print(f"api_key:    {raw_key}")
            print("Store this key now; it cannot be shown again.")
            return 0

        if await service.revoke(args.key_id):
            print(f"Revoked {args.key_id}")
            return 0
        print(f"No active key with id {args.key_id}", file=sys.stderr)
        return 1
    finally:
        await manager.cleanup()
        await close_db()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
