#!/usr/bin/env python3
"""
ICE Bot product → role mappings and verification lookup

Maintains the role_mappings table the verification flow reads from, and lets
staff inspect a consumed invoice when a role grant needs manual follow-up.

Usage:
    python3 scripts/role_mappings.py list
    python3 scripts/role_mappings.py set <product_id> <role_id>
    python3 scripts/role_mappings.py remove <product_id>
    python3 scripts/role_mappings.py invoice <invoice_id>

Reads SQLITE_PATH from .env (default: data/bot.sqlite).
"""

import argparse
import asyncio
import os
import re
import sys
from typing import Optional

from dotenv import load_dotenv

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from icebot.config import DEFAULT_SQLITE_PATH
from icebot.store import VerificationStore

_SNOWFLAKE = re.compile(r"^\d{17,20}$")


def database_path(env_path: Optional[str] = None) -> str:
    load_dotenv(env_path)
    return os.environ.get("SQLITE_PATH", "").strip() or DEFAULT_SQLITE_PATH


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def cmd_list(store: VerificationStore, args) -> int:
    mappings = await store.list_role_mappings()
    if not mappings:
        print("No role mappings configured.")
        return 0
    print(f"{'PRODUCT':<24} ROLE")
    for product_id, role_id in mappings.items():
        print(f"{product_id:<24} {role_id}")
    return 0


async def cmd_set(store: VerificationStore, args) -> int:
    if not _SNOWFLAKE.match(args.role_id):
        print(f"ERROR: {args.role_id!r} is not a Discord role id.")
        return 1
    await store.set_role_mapping(args.product_id, args.role_id)
    print(f"Mapped product {args.product_id} -> role {args.role_id}")
    return 0


async def cmd_remove(store: VerificationStore, args) -> int:
    if await store.delete_role_mapping(args.product_id):
        print(f"Removed mapping for product {args.product_id}")
        return 0
    print(f"No mapping for product {args.product_id}")
    return 1


async def cmd_invoice(store: VerificationStore, args) -> int:
    record = await store.find_verification(args.invoice_id)
    if record is None:
        print(f"Invoice {args.invoice_id} has not been used.")
        return 1
    print(f"Invoice   : {record.invoice_id}")
    print(f"Discord ID: {record.account_id}")
    print(f"Product   : {record.product_id or '-'}")
    print(f"Role      : {record.role_id or '-'}")
    print(f"Status    : {record.status}")
    print(f"Used at   : {record.used_at}")
    return 0


async def run(db_path: str, args) -> int:
    async with VerificationStore(db_path) as store:
        return await args.handler(store, args)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Manage ICE Bot product role mappings.",
    )
    parser.add_argument("--env-file", default=None, help="Path to the .env file.")
    parser.add_argument("--db", default=None, help="SQLite file (overrides SQLITE_PATH).")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="Show all mappings.").set_defaults(handler=cmd_list)

    p_set = sub.add_parser("set", help="Map a Sell.app product to a role.")
    p_set.add_argument("product_id")
    p_set.add_argument("role_id")
    p_set.set_defaults(handler=cmd_set)

    p_remove = sub.add_parser("remove", help="Delete a mapping.")
    p_remove.add_argument("product_id")
    p_remove.set_defaults(handler=cmd_remove)

    p_invoice = sub.add_parser("invoice", help="Show the verification record for an invoice.")
    p_invoice.add_argument("invoice_id")
    p_invoice.set_defaults(handler=cmd_invoice)

    args = parser.parse_args(argv)
    db_path = args.db or database_path(args.env_file)
    sys.exit(asyncio.run(run(db_path, args)))


if __name__ == "__main__":
    main()
