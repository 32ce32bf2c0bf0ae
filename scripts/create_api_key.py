#!/usr/bin/env python3
"""Create a service account for a technical caller and print a fresh API key."""

from __future__ import annotations

import argparse
import asyncio
import sys

from principalsync.auth.middleware import (
    create_api_key_for_account,
    get_or_create_service_account,
)
from principalsync.db.base import close_db, get_session, init_db


async def _create(account_id: str, name: str, key_name: str) -> str:
    await init_db()
    try:
        async with get_session() as session:
            account = await get_or_create_service_account(session, account_id, name=name)
            full_key, _ = await create_api_key_for_account(session, account, name=key_name)
            return full_key
    finally:
        await close_db()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("account_id", help="Caller identity, e.g. group-sync@techacct.local")
    parser.add_argument("--name", default="Technical Account")
    parser.add_argument("--key-name", default="Default API Key")
    args = parser.parse_args(argv)

    full_key = asyncio.run(_create(args.account_id, args.name, args.key_name))
    print("API key (shown once, store it securely):")
    print(full_key)
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        raise
