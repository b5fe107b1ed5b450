"""Modals and the persistent verification button."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

import discord

from .embeds import MAX_IMAGES

if TYPE_CHECKING:
    from .bot import IceBot

VERIFY_BUTTON_ID = "verify_invoice_button"
INVOICE_MODAL_ID = "invoice_modal"

# Discord rejects prefilled values longer than this.
MAX_INPUT_VALUE = 4000


def _prefill(value: Optional[str]) -> Optional[str]:
    if value and len(value) <= MAX_INPUT_VALUE:
        return value
    return None


class _BotModal(discord.ui.Modal):
    def __init__(self, bot: "IceBot", **kwargs):
        super().__init__(**kwargs)
        self.bot = bot

    async def on_error(self, interaction: discord.Interaction, error: Exception) -> None:
        await self.bot.report_interaction_error(interaction, error)


class InvoiceModal(_BotModal, title="Verify Invoice"):
    invoice_id = discord.ui.TextInput(
        label="Invoice ID",
        style=discord.TextStyle.short,
        required=True,
        placeholder="e.g., 2711846",
        max_length=100,
    )

    def __init__(self, bot: "IceBot"):
        super().__init__(bot, custom_id=INVOICE_MODAL_ID)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await self.bot.handle_invoice_submit(interaction, self.invoice_id.value)


class UpdatesModal(_BotModal, title="🔔 Updates"):
    description = discord.ui.TextInput(
        label="Update content",
        style=discord.TextStyle.paragraph,
        required=True,
        placeholder="Type your updates here.",
    )
    image = discord.ui.TextInput(
        label="Image URL (optional)",
        style=discord.TextStyle.short,
        required=False,
        placeholder="https://...",
    )

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await self.bot.handle_updates_submit(interaction, self.description.value, self.image.value)


class EmbedModal(_BotModal, title="Create Embed"):
    embed_title = discord.ui.TextInput(label="Title (optional)", style=discord.TextStyle.short, required=False)
    description = discord.ui.TextInput(
        label="Description (optional)", style=discord.TextStyle.paragraph, required=False)

    def __init__(self, bot: "IceBot", channel_id: int):
        super().__init__(bot)
        self.channel_id = channel_id
        self.images = [
            discord.ui.TextInput(label=f"Image URL {i} (optional)", style=discord.TextStyle.short, required=False)
            for i in range(1, MAX_IMAGES + 1)
        ]
        for item in self.images:
            self.add_item(item)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await self.bot.handle_embed_submit(
            interaction,
            self.channel_id,
            self.embed_title.value,
            self.description.value,
            [item.value for item in self.images],
        )


class EditEmbedModal(_BotModal, title="Edit Embed"):
    def __init__(
        self,
        bot: "IceBot",
        channel_id: int,
        message_id: int,
        title: Optional[str],
        description: Optional[str],
        images: Sequence[str],
    ):
        super().__init__(bot)
        self.channel_id = channel_id
        self.message_id = message_id
        self.embed_title = discord.ui.TextInput(
            label="Title (optional)", style=discord.TextStyle.short, required=False, default=_prefill(title))
        self.description = discord.ui.TextInput(
            label="Description (optional)", style=discord.TextStyle.paragraph, required=False,
            default=_prefill(description))
        self.images = [
            discord.ui.TextInput(
                label=f"Image URL {i + 1} (optional)",
                style=discord.TextStyle.short,
                required=False,
                placeholder="https://...",
                default=_prefill(images[i] if i < len(images) else None),
            )
            for i in range(MAX_IMAGES)
        ]
        for item in [self.embed_title, self.description, *self.images]:
            self.add_item(item)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await self.bot.handle_edit_embed_submit(
            interaction,
            self.channel_id,
            self.message_id,
            self.embed_title.value,
            self.description.value,
            [item.value for item in self.images],
        )


class VerifyPanelView(discord.ui.View):
    """Button under the verification panel; registered once so it survives restarts."""

    def __init__(self, bot: "IceBot"):
        super().__init__(timeout=None)
        self.bot = bot

    @discord.ui.button(
        label="Verify Invoice",
        style=discord.ButtonStyle.primary,
        emoji="🔎",
        custom_id=VERIFY_BUTTON_ID,
    )
    async def verify(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await self.bot.handle_verify_button(interaction)

    async def on_error(self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item) -> None:
        await self.bot.report_interaction_error(interaction, error)
