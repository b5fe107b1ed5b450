"""discord.py implementation of the verification guild gateway."""

from __future__ import annotations

import logging
from typing import Optional

import discord

from .verification import RoleGrantError

logger = logging.getLogger(__name__)


def _snowflake(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class DiscordGuildGateway:
    """Member and role access for one guild, acting as the bot's own member."""

    def __init__(self, guild: discord.Guild):
        self.guild = guild

    async def fetch_member(self, account_id: str) -> Optional[discord.Member]:
        user_id = _snowflake(account_id)
        if user_id is None:
            return None
        member = self.guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await self.guild.fetch_member(user_id)
        except discord.HTTPException:
            return None

    def can_manage_roles(self) -> bool:
        me = self.guild.me
        return me is not None and me.guild_permissions.manage_roles

    async def fetch_role(self, role_id: str) -> Optional[discord.Role]:
        rid = _snowflake(role_id)
        if rid is None:
            return None
        role = self.guild.get_role(rid)
        if role is not None:
            return role
        try:
            roles = await self.guild.fetch_roles()
        except discord.HTTPException:
            logger.exception("Could not fetch roles for guild %s", self.guild.id)
            return None
        return discord.utils.get(roles, id=rid)

    def top_rank(self) -> int:
        me = self.guild.me
        return me.top_role.position if me is not None else -1

    def rank_of(self, role: discord.Role) -> int:
        return role.position

    async def add_role(self, member: discord.Member, role: discord.Role, reason: str) -> None:
        try:
            await member.add_roles(role, reason=reason)
        except discord.HTTPException as exc:
            raise RoleGrantError(str(exc)) from exc
