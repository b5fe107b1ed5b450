"""Run the bot: ``python -m icebot`` or the ``icebot`` script."""

from __future__ import annotations

import argparse
import logging
import os
import sys

import discord
from dotenv import load_dotenv

from .bot import IceBot
from .config import ConfigError, load_settings


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="ICE R6S Discord bot: announcements, moderation and Sell.app invoice verification.",
    )
    parser.add_argument("--env-file", default=None,
                        help="Path to the .env file (default: .env in the working directory).")
    args = parser.parse_args(argv)

    load_dotenv(args.env_file)
    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").strip().upper(), logging.INFO)
    discord.utils.setup_logging(level=level)

    try:
        settings = load_settings(os.environ)
    except ConfigError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        sys.exit(1)

    bot = IceBot(settings)
    bot.run(settings.discord_token, log_handler=None)


if __name__ == "__main__":
    main()
