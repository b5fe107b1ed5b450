"""The Discord client: command tree, modal handlers and member events."""

from __future__ import annotations

import logging
import math
from typing import Awaitable, Optional, Sequence

import aiosqlite
import discord
from discord import app_commands
from discord.ext import tasks

from . import moderation
from .config import Settings
from .cooldown import CooldownStore
from .embeds import (
    chunked,
    compose_edited_embeds,
    compose_embeds,
    existing_images,
    image_urls,
    updates_embed,
    verification_panel,
)
from .guild import DiscordGuildGateway
from .presence import build_activity, resolve_status
from .sellapp import DEFAULT_API_URL, SellAppClient
from .store import VerificationStore
from .verification import Outcome, OutcomeKind, RoleGrantError, VerificationWorkflow
from .views import EditEmbedModal, EmbedModal, InvoiceModal, UpdatesModal, VerifyPanelView

logger = logging.getLogger(__name__)

BUTTON_COOLDOWN_SECONDS = 15
PRUNE_INTERVAL_SECONDS = 60

GENERIC_ERROR = "Something went wrong while processing your action."
ADMIN_REQUIRED = "Admin permissions required."


class IceBot(discord.Client):
    def __init__(
        self,
        settings: Settings,
        store: Optional[VerificationStore] = None,
        sellapp: Optional[SellAppClient] = None,
        cooldowns: Optional[CooldownStore] = None,
    ):
        intents = discord.Intents.default()
        intents.members = True
        super().__init__(intents=intents)
        self.settings = settings
        self.store = store or VerificationStore(settings.sqlite_path)
        self.sellapp = sellapp or SellAppClient(
            settings.sellapp_api_key or "", settings.sellapp_api_url or DEFAULT_API_URL)
        self.cooldowns = cooldowns or CooldownStore(BUTTON_COOLDOWN_SECONDS)
        self.workflow = VerificationWorkflow(self.store, self.sellapp, settings.verify_role_id)
        self.tree = app_commands.CommandTree(self)
        self.tree.error(self.report_interaction_error)
        self._install_commands()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def setup_hook(self) -> None:
        await self.store.open()
        self.add_view(VerifyPanelView(self))
        self.prune_cooldowns.start()

    async def close(self) -> None:
        self.prune_cooldowns.cancel()
        await self.store.close()
        await self.sellapp.aclose()
        await super().close()

    async def on_ready(self) -> None:
        logger.info("Logged in as %s", self.user)
        await self.change_presence(
            status=resolve_status(self.settings.status),
            activity=build_activity(self.settings),
        )

    @tasks.loop(seconds=PRUNE_INTERVAL_SECONDS)
    async def prune_cooldowns(self) -> None:
        removed = self.cooldowns.prune()
        if removed:
            logger.debug("Pruned %d verify button cooldown entries", removed)

    async def on_member_join(self, member: discord.Member) -> None:
        gateway = DiscordGuildGateway(member.guild)
        if self.settings.auto_role_id:
            role = await gateway.fetch_role(self.settings.auto_role_id)
            if role is None:
                logger.warning("AUTO_ROLE_ID %s not found in %s", self.settings.auto_role_id, member.guild)
            else:
                try:
                    await gateway.add_role(member, role, "Auto role on join")
                except RoleGrantError:
                    logger.exception("Failed to add auto role to %s", member)
        try:
            restored = await self.workflow.restore_roles(str(member.id), gateway)
        except aiosqlite.Error:
            logger.exception("DB error restoring roles for %s", member)
            return
        if restored:
            logger.info("Restored roles %s for rejoining member %s", ", ".join(restored), member)

    # ------------------------------------------------------------------
    # Replies and errors
    # ------------------------------------------------------------------

    async def reply(self, interaction: discord.Interaction, content: str) -> None:
        """Ephemeral reply, or follow-up once the interaction is answered."""
        if interaction.response.is_done():
            await interaction.followup.send(content, ephemeral=True)
        else:
            await interaction.response.send_message(content, ephemeral=True)

    async def report_interaction_error(self, interaction: discord.Interaction, error: Exception) -> None:
        if isinstance(error, app_commands.CheckFailure):
            message = ADMIN_REQUIRED
        else:
            logger.error("Interaction error", exc_info=error)
            message = GENERIC_ERROR
        try:
            await self.reply(interaction, message)
        except discord.HTTPException:
            logger.exception("Could not report interaction error to %s", interaction.user)

    async def _text_channel(self, guild: discord.Guild, channel_id) -> Optional[discord.TextChannel]:
        try:
            cid = int(channel_id)
        except (TypeError, ValueError):
            return None
        channel = guild.get_channel(cid)
        if channel is None:
            try:
                channel = await guild.fetch_channel(cid)
            except discord.HTTPException:
                return None
        return channel if isinstance(channel, discord.TextChannel) else None

    async def _fetch_own_message(self, interaction: discord.Interaction, channel: discord.TextChannel, message_id):
        """The bot-authored message with embeds, or None after replying why not."""
        try:
            message = await channel.fetch_message(int(message_id))
        except (ValueError, discord.HTTPException):
            await self.reply(interaction, "Message not found.")
            return None
        if self.user is None or message.author.id != self.user.id:
            await self.reply(interaction, "I can only edit embeds that I sent.")
            return None
        if not message.embeds:
            await self.reply(interaction, "Message has no embeds to edit.")
            return None
        return message

    async def _moderate(self, interaction: discord.Interaction, action: Awaitable, done: str, failed: str) -> None:
        try:
            await action
        except moderation.ModerationError as exc:
            await self.reply(interaction, f"❌ {exc}")
        except discord.Forbidden:
            await self.reply(interaction, "❌ I don't have permission to do that.")
        except discord.HTTPException:
            logger.exception(failed)
            await self.reply(interaction, f"❌ {failed}")
        else:
            await self.reply(interaction, done)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def handle_verify_button(self, interaction: discord.Interaction) -> None:
        wait = self.cooldowns.hit(str(interaction.user.id))
        if wait:
            await self.reply(interaction, f"Please wait {math.ceil(wait)}s before trying again.")
            return
        await interaction.response.send_modal(InvoiceModal(self))

    async def handle_invoice_submit(self, interaction: discord.Interaction, raw_invoice_id: str) -> None:
        invoice_id = (raw_invoice_id or "").strip()
        if not invoice_id:
            await self.reply(interaction, Outcome(OutcomeKind.INVALID_INPUT, invoice_id).message())
            return
        if interaction.guild is None:
            await self.reply(interaction, "Verification only works inside the server.")
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        outcome = await self.workflow.verify(
            invoice_id, str(interaction.user.id), DiscordGuildGateway(interaction.guild))
        logger.info("Verification of invoice %s by %s: %s", invoice_id, interaction.user, outcome.kind.value)
        await interaction.followup.send(outcome.message(), ephemeral=True)

    # ------------------------------------------------------------------
    # Modal submissions
    # ------------------------------------------------------------------

    async def handle_updates_submit(self, interaction: discord.Interaction, description: str, image: str) -> None:
        ids = self.settings.updates_channel_ids
        if not ids:
            await self.reply(interaction, "UPDATES_CHANNEL_IDS is not configured in .env.")
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        channel = await self._text_channel(interaction.guild, ids[0])
        if channel is None:
            logger.error("Invalid or non-text channel: %s", ids[0])
            await self.reply(interaction, "Configured updates channel not found.")
            return
        embed = updates_embed(self.settings.footer, description or "", (image or "").strip())
        try:
            await channel.send(
                content="@everyone",
                embed=embed,
                allowed_mentions=discord.AllowedMentions(everyone=True),
            )
        except discord.HTTPException:
            logger.exception("Failed to send update")
            await self.reply(interaction, "Failed to send update.")
            return
        await self.reply(interaction, f"Update posted to {channel.mention}.")

    async def handle_embed_submit(
        self,
        interaction: discord.Interaction,
        channel_id: int,
        title: str,
        description: str,
        images: Sequence[str],
    ) -> None:
        channel = await self._text_channel(interaction.guild, channel_id)
        if channel is None:
            await self.reply(interaction, "Target channel not found or not a text channel.")
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        embeds = compose_embeds(
            self.settings.footer,
            (title or "").strip(),
            (description or "").replace("\\n", "\n"),
            image_urls(images),
        )
        try:
            for chunk in chunked(embeds):
                await channel.send(embeds=chunk, allowed_mentions=discord.AllowedMentions.none())
        except discord.HTTPException:
            logger.exception("Failed to send embed(s)")
            await self.reply(interaction, "Failed to send embed(s).")
            return
        logger.info("Embed(s) sent to #%s (%s) by %s", channel.name, channel.id, interaction.user)
        await self.reply(interaction, f"Embed posted to {channel.mention}.")

    async def handle_edit_embed_submit(
        self,
        interaction: discord.Interaction,
        channel_id: int,
        message_id: int,
        title: str,
        description: str,
        images: Sequence[str],
    ) -> None:
        await interaction.response.defer(ephemeral=True, thinking=True)
        channel = await self._text_channel(interaction.guild, channel_id)
        if channel is None:
            await self.reply(interaction, "Target channel not found or not a text channel.")
            return
        message = await self._fetch_own_message(interaction, channel, message_id)
        if message is None:
            return
        embeds = compose_edited_embeds(
            self.settings.footer, (title or "").strip(), (description or "").strip(), image_urls(images))
        try:
            await message.edit(embeds=embeds)
        except discord.HTTPException:
            logger.exception("Failed to edit message embed")
            await self.reply(interaction, "❌ Failed to edit embed. Check permissions and message state.")
            return
        await self.reply(interaction, "✅ Embed edited successfully.")

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------

    def _install_commands(self) -> None:
        tree = self.tree
        admin_only = app_commands.checks.has_permissions(administrator=True)

        @tree.command(name="updates", description="Post an update (modal, sends to configured UPDATES channel).")
        @app_commands.guild_only()
        async def updates(interaction: discord.Interaction) -> None:
            if not self.settings.updates_channel_ids:
                await self.reply(interaction, "UPDATES_CHANNEL_IDS is not configured in .env.")
                return
            await interaction.response.send_modal(UpdatesModal(self))

        @tree.command(name="embed", description="Send a custom embed via modal to a chosen channel.")
        @app_commands.guild_only()
        @app_commands.describe(channel="Channel to send the embed to")
        async def embed(interaction: discord.Interaction, channel: discord.TextChannel) -> None:
            target = await self._text_channel(interaction.guild, channel.id)
            if target is None:
                await self.reply(interaction, "Please choose a text channel.")
                return
            await interaction.response.send_modal(EmbedModal(self, target.id))

        @tree.command(name="editembed", description="Edit an existing bot embed message (admin only).")
        @app_commands.guild_only()
        @app_commands.default_permissions(administrator=True)
        @admin_only
        @app_commands.describe(channel="Channel containing the message", message_id="Message ID to edit")
        async def editembed(interaction: discord.Interaction, channel: discord.TextChannel, message_id: str) -> None:
            target = await self._text_channel(interaction.guild, channel.id)
            if target is None:
                await self.reply(interaction, "Invalid channel.")
                return
            message = await self._fetch_own_message(interaction, target, message_id)
            if message is None:
                return
            first = message.embeds[0]
            await interaction.response.send_modal(EditEmbedModal(
                self, target.id, message.id, first.title, first.description, existing_images(message.embeds)))

        @tree.command(name="verifyemb", description="Send the invoice verification embed to this channel (Admin only)")
        @app_commands.guild_only()
        @app_commands.default_permissions(administrator=True)
        @admin_only
        async def verifyemb(interaction: discord.Interaction) -> None:
            try:
                await interaction.channel.send(embed=verification_panel(self.settings.footer), view=VerifyPanelView(self))
            except discord.HTTPException:
                logger.exception("Failed to send verification embed")
                await self.reply(interaction, "❌ Failed to send verification embed. Check bot permissions.")
                return
            await self.reply(interaction, "✅ Verification embed sent to this channel.")

        @tree.command(name="purge", description="Delete messages in bulk (admin only).")
        @app_commands.guild_only()
        @app_commands.default_permissions(administrator=True)
        @admin_only
        @app_commands.describe(count="Number of messages to delete (1-100)",
                               channel="Channel to purge (defaults to current)")
        async def purge(
            interaction: discord.Interaction,
            count: app_commands.Range[int, 1, 100],
            channel: Optional[discord.TextChannel] = None,
        ) -> None:
            target = channel or interaction.channel
            if not isinstance(target, discord.TextChannel):
                await self.reply(interaction, "Please choose a text channel.")
                return
            await interaction.response.defer(ephemeral=True, thinking=True)
            try:
                deleted = await moderation.purge(target, count)
            except moderation.ModerationError as exc:
                await self.reply(interaction, f"❌ {exc}")
                return
            except discord.HTTPException:
                logger.exception("Failed to purge #%s", target)
                await self.reply(interaction, "❌ Failed to delete messages. Check bot permissions.")
                return
            logger.info("Purged %d messages in #%s by %s", deleted, target, interaction.user)
            await self.reply(interaction, f"🧹 Deleted {deleted} messages in {target.mention}.")

        @tree.command(name="timeout", description="Timeout a user for a duration in minutes (admin only).")
        @app_commands.guild_only()
        @app_commands.default_permissions(administrator=True)
        @admin_only
        @app_commands.describe(user="User to timeout", minutes="Duration in minutes (1-40320)",
                               reason="Reason for timeout")
        async def timeout(
            interaction: discord.Interaction,
            user: discord.Member,
            minutes: app_commands.Range[int, 1, 40320],
            reason: Optional[str] = None,
        ) -> None:
            await self._moderate(
                interaction,
                moderation.timeout_member(user, minutes, reason),
                f"⏳ {user.mention} timed out for {minutes} minutes.",
                "Failed to timeout user.",
            )

        @tree.command(name="untimeout", description="Remove timeout from a user (admin only).")
        @app_commands.guild_only()
        @app_commands.default_permissions(administrator=True)
        @admin_only
        @app_commands.describe(user="User to remove timeout")
        async def untimeout(interaction: discord.Interaction, user: discord.Member) -> None:
            await self._moderate(
                interaction,
                moderation.remove_timeout(user),
                f"✅ Timeout removed for {user.mention}.",
                "Failed to remove timeout.",
            )

        @tree.command(name="ban", description="Ban a user (admin only).")
        @app_commands.guild_only()
        @app_commands.default_permissions(administrator=True)
        @admin_only
        @app_commands.describe(user="User to ban", reason="Reason for ban",
                               delete_days="Delete message history in days (0-7)")
        async def ban(
            interaction: discord.Interaction,
            user: discord.User,
            reason: Optional[str] = None,
            delete_days: Optional[app_commands.Range[int, 0, 7]] = None,
        ) -> None:
            await self._moderate(
                interaction,
                moderation.ban_user(interaction.guild, user, reason, delete_days),
                f"🔨 Banned {user} ({user.id}).",
                "Failed to ban user.",
            )

        @tree.command(name="unban", description="Unban a user by ID (admin only).")
        @app_commands.guild_only()
        @app_commands.default_permissions(administrator=True)
        @admin_only
        @app_commands.describe(user_id="User ID to unban", reason="Reason for unban")
        async def unban(interaction: discord.Interaction, user_id: str, reason: Optional[str] = None) -> None:
            await self._moderate(
                interaction,
                moderation.unban_user(interaction.guild, user_id, reason),
                f"✅ Unbanned {user_id.strip()}.",
                "Failed to unban user.",
            )
