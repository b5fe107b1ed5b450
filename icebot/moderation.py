"""Validated wrappers around the moderation endpoints."""

from __future__ import annotations

import datetime
import re
from typing import Optional

import discord

PURGE_MIN, PURGE_MAX = 1, 100
TIMEOUT_MIN_MINUTES, TIMEOUT_MAX_MINUTES = 1, 40320  # 28 days, the platform maximum
DELETE_DAYS_MIN, DELETE_DAYS_MAX = 0, 7

_SNOWFLAKE = re.compile(r"^\d{17,20}$")


class ModerationError(ValueError):
    """Input rejected before any call to Discord."""


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if not low <= value <= high:
        raise ModerationError(f"{name} must be between {low} and {high}.")


async def purge(channel: discord.TextChannel, count: int) -> int:
    _check_range("Count", count, PURGE_MIN, PURGE_MAX)
    deleted = await channel.purge(limit=count)
    return len(deleted)


async def timeout_member(member: discord.Member, minutes: int, reason: Optional[str] = None) -> datetime.timedelta:
    _check_range("Minutes", minutes, TIMEOUT_MIN_MINUTES, TIMEOUT_MAX_MINUTES)
    duration = datetime.timedelta(minutes=minutes)
    await member.timeout(duration, reason=reason)
    return duration


async def remove_timeout(member: discord.Member, reason: Optional[str] = None) -> None:
    await member.timeout(None, reason=reason)


async def ban_user(
    guild: discord.Guild,
    user: discord.abc.Snowflake,
    reason: Optional[str] = None,
    delete_days: Optional[int] = None,
) -> None:
    days = delete_days or 0
    _check_range("Delete days", days, DELETE_DAYS_MIN, DELETE_DAYS_MAX)
    await guild.ban(user, reason=reason, delete_message_seconds=days * 86400)


async def unban_user(guild: discord.Guild, user_id: str, reason: Optional[str] = None) -> None:
    user_id = (user_id or "").strip()
    if not _SNOWFLAKE.match(user_id):
        raise ModerationError("User ID must be a numeric Discord ID.")
    await guild.unban(discord.Object(id=int(user_id)), reason=reason)
