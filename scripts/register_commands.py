#!/usr/bin/env python3
"""
ICE Bot slash command registration
Overwrites the bot's slash commands via the Discord REST API v10.

Usage:
    python3 scripts/register_commands.py
    python3 scripts/register_commands.py --dry-run
    python3 scripts/register_commands.py --guild 123456789012345678
    python3 scripts/register_commands.py --list

Reads credentials from .env:
    DISCORD_TOKEN=your-bot-token
    CLIENT_ID=your-application-id
"""

import argparse
import json
import os
import sys
import time
from typing import Optional

import requests
from dotenv import load_dotenv

# Reuse the command definitions the bot dispatches on
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from icebot.commands import COMMANDS

# ---------------------------------------------------------------------------
# Environment loading
# ---------------------------------------------------------------------------

def load_credentials(env_path: Optional[str] = None) -> tuple[str, str]:
    """Return (bot_token, client_id) from environment or .env file."""
    load_dotenv(env_path)

    token = os.environ.get("DISCORD_TOKEN", "").strip()
    client_id = os.environ.get("CLIENT_ID", "").strip()

    if not token:
        print("ERROR: DISCORD_TOKEN is not set in .env or environment.")
        sys.exit(1)
    if not client_id:
        print("ERROR: CLIENT_ID is not set in .env or environment.")
        sys.exit(1)

    return token, client_id


# ---------------------------------------------------------------------------
# Discord REST client with rate-limit handling
# ---------------------------------------------------------------------------

API_BASE = "https://discord.com/api/v10"


class DiscordClient:
    def __init__(self, token: str, dry_run: bool = False, session: Optional[requests.Session] = None):
        self.token = token
        self.dry_run = dry_run
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bot {token}",
            "Content-Type": "application/json",
            "User-Agent": "ICEBot/1.0",
        })

    def _request(self, method: str, path: str, **kwargs):
        if self.dry_run:
            print(f"  [DRY-RUN] {method.upper()} {path}")
            if kwargs.get("json") is not None:
                print(f"            payload: {json.dumps(kwargs['json'], indent=2, ensure_ascii=False)}")
            return kwargs.get("json") or []

        url = f"{API_BASE}{path}"
        while True:
            resp = self.session.request(method, url, timeout=30, **kwargs)
            if resp.status_code == 429:
                retry_after = resp.json().get("retry_after", 1.0)
                print(f"  [RATE LIMIT] Waiting {retry_after:.2f}s ...")
                time.sleep(retry_after)
                continue
            if resp.status_code in (200, 201):
                return resp.json()
            if resp.status_code == 204:
                return {}
            # Never print the response body (may echo the token)
            print(f"  [HTTP {resp.status_code}] {method.upper()} {path}")
            return None

    def get(self, path: str):
        return self._request("get", path)

    def put(self, path: str, payload):
        return self._request("put", path, json=payload)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def commands_path(client_id: str, guild_id: Optional[str] = None) -> str:
    """Global commands, or guild commands (which update instantly) when guild_id is set."""
    if guild_id:
        return f"/applications/{client_id}/guilds/{guild_id}/commands"
    return f"/applications/{client_id}/commands"


def register_commands(client: DiscordClient, client_id: str, guild_id: Optional[str] = None) -> bool:
    scope = f"guild ...{guild_id[-4:]}" if guild_id else "global"
    print(f"\n--- Registering {len(COMMANDS)} {scope} commands ---")
    for cmd in COMMANDS:
        print(f"  /{cmd['name']}: {cmd['description']}")

    result = client.put(commands_path(client_id, guild_id), COMMANDS)
    if result is None:
        print("  ERROR: Failed to register commands.")
        return False
    if not client.dry_run:
        print(f"  Registered {len(result)} command(s).")
    return True


def list_commands(client: DiscordClient, client_id: str, guild_id: Optional[str] = None) -> None:
    print("\n--- Registered commands ---")
    result = client.get(commands_path(client_id, guild_id))
    if not result:
        print("  No commands registered (or the request failed).")
        return
    for cmd in result:
        print(f"  /{cmd.get('name')}  (id={cmd.get('id')})")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Register the ICE Bot slash commands via the Discord REST API v10.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 scripts/register_commands.py
  python3 scripts/register_commands.py --dry-run
  python3 scripts/register_commands.py --guild 123456789012345678

Credentials are read from .env:
  DISCORD_TOKEN=your-bot-token
  CLIENT_ID=your-application-id
""",
    )
    parser.add_argument("--dry-run", action="store_true",
                        help="Print the payload without making any API calls.")
    parser.add_argument("--guild", default=None,
                        help="Register to one guild instead of globally.")
    parser.add_argument("--list", action="store_true",
                        help="List the currently registered commands and exit.")
    parser.add_argument("--env-file", default=None,
                        help="Path to the .env file.")
    args = parser.parse_args(argv)

    token, client_id = load_credentials(args.env_file)
    client = DiscordClient(token=token, dry_run=args.dry_run)

    if args.list:
        list_commands(client, client_id, args.guild)
        return

    ok = register_commands(client, client_id, args.guild)
    if args.dry_run:
        print("\nDry run finished. No changes were made to Discord.")
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
