"""Presence and activity resolution."""

from __future__ import annotations

from typing import Optional

import discord

from .config import Settings

ACTIVITY_TYPES = {
    "streaming": discord.ActivityType.streaming,
    "playing": discord.ActivityType.playing,
    "watching": discord.ActivityType.watching,
    "listening": discord.ActivityType.listening,
    "competing": discord.ActivityType.competing,
}

STATUSES = {
    "online": discord.Status.online,
    "idle": discord.Status.idle,
    "dnd": discord.Status.dnd,
    "invisible": discord.Status.invisible,
}

SESSION_PREFIXES = {
    "mobile": "📱",
    "desktop": "🖥️",
}


def resolve_activity_type(mode: Optional[str]) -> discord.ActivityType:
    return ACTIVITY_TYPES.get((mode or "").lower(), discord.ActivityType.watching)


def resolve_status(status: Optional[str]) -> discord.Status:
    return STATUSES.get((status or "").lower(), discord.Status.online)


def session_prefix(style: Optional[str]) -> str:
    return SESSION_PREFIXES.get((style or "").lower(), "")


def build_activity(settings: Settings) -> discord.BaseActivity:
    activity_type = resolve_activity_type(settings.activity_mode)
    prefix = session_prefix(settings.session_style)
    name = f"{prefix} {settings.activity_name}" if prefix else settings.activity_name
    if activity_type is discord.ActivityType.streaming and settings.stream_url:
        return discord.Streaming(name=name, url=settings.stream_url)
    return discord.Activity(type=activity_type, name=name)
