"""Bot settings, read from the environment and an optional .env file."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_FOOTER_TEXT = "Copyright 2025 © ICE R6S"
DEFAULT_ACTIVITY_NAME = "ICE R6S"
DEFAULT_SQLITE_PATH = os.path.join("data", "bot.sqlite")

_SNOWFLAKE = re.compile(r"^\d{17,20}$")


class ConfigError(Exception):
    """Required configuration is missing."""


def parse_channel_ids(csv: Optional[str]) -> list[str]:
    """Split a comma list, keeping only well-formed Discord ids."""
    if not csv or not csv.strip():
        return []
    return [s.strip() for s in csv.split(",") if _SNOWFLAKE.match(s.strip())]


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class Footer:
    text: str = DEFAULT_FOOTER_TEXT
    icon_url: Optional[str] = None


@dataclass(frozen=True)
class Settings:
    discord_token: str
    client_id: str
    updates_channel_ids: list[str] = field(default_factory=list)
    footer: Footer = Footer()
    auto_role_id: Optional[str] = None
    activity_mode: Optional[str] = None
    activity_name: str = DEFAULT_ACTIVITY_NAME
    stream_url: Optional[str] = None
    status: Optional[str] = None
    session_style: Optional[str] = None
    sellapp_api_key: Optional[str] = None
    sellapp_api_url: Optional[str] = None
    verify_role_id: Optional[str] = None
    sqlite_path: str = DEFAULT_SQLITE_PATH
    log_level: str = "INFO"


def load_settings(env: Optional[Mapping[str, str]] = None, env_file: Optional[str] = None) -> Settings:
    """Build ``Settings`` from ``env`` (default: ``os.environ`` after loading ``env_file``)."""
    if env is None:
        load_dotenv(env_file)
        env = os.environ

    token = _clean(env.get("DISCORD_TOKEN"))
    client_id = _clean(env.get("CLIENT_ID"))
    if not token or not client_id:
        raise ConfigError("Missing DISCORD_TOKEN or CLIENT_ID in .env")

    api_key = _clean(env.get("SELLAPP_API_KEY"))
    if not api_key:
        logger.warning("SELLAPP_API_KEY not set. Verification will fail until provided.")

    return Settings(
        discord_token=token,
        client_id=client_id,
        updates_channel_ids=parse_channel_ids(env.get("UPDATES_CHANNEL_IDS")),
        footer=Footer(
            text=_clean(env.get("FOOTER_TEXT")) or DEFAULT_FOOTER_TEXT,
            icon_url=_clean(env.get("FOOTER_ICON_URL")),
        ),
        auto_role_id=_clean(env.get("AUTO_ROLE_ID")),
        activity_mode=_clean(env.get("ACTIVITY_MODE")),
        activity_name=_clean(env.get("ACTIVITY_NAME")) or DEFAULT_ACTIVITY_NAME,
        stream_url=_clean(env.get("STREAM_URL")),
        status=_clean(env.get("STATUS")),
        session_style=_clean(env.get("SESSION_STYLE")),
        sellapp_api_key=api_key,
        sellapp_api_url=_clean(env.get("SELLAPP_API_URL")),
        verify_role_id=_clean(env.get("VERIFY_ROLE_ID")),
        sqlite_path=_clean(env.get("SQLITE_PATH")) or DEFAULT_SQLITE_PATH,
        log_level=(_clean(env.get("LOG_LEVEL")) or "INFO").upper(),
    )
