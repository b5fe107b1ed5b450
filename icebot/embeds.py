"""Embed construction for announcements, custom embeds and the verification panel."""

from __future__ import annotations

import re
from typing import Iterable, Iterator, Optional, Sequence

import discord

from .config import Footer

EMBED_COLOR = 0x3336FC
PANEL_COLOR = 0x00AE86
MAX_IMAGES = 3
MODAL_MAX_COMPONENTS = 5
EMBEDS_PER_MESSAGE = 10

UPDATES_TITLE = "🔔 Updates"
PANEL_TITLE = "🔒 Invoice Verification"
PANEL_DESCRIPTION = "\n".join([
    "Click the button below to verify your Sell.app invoice and receive your role.",
    "",
    "How it works: Click Verify → enter your invoice ID → if paid you will receive the role.",
    "",
    "Privacy: Invoice IDs are stored securely for verification and reassigning roles on rejoin.",
])

_URL = re.compile(r"^https?://\S+\.\S+")


def looks_like_url(value: Optional[str]) -> bool:
    return bool(value) and bool(_URL.match(value.strip()))


def image_urls(values: Iterable[Optional[str]]) -> list[str]:
    """Trimmed values that look like URLs, in order, at most MAX_IMAGES."""
    urls = [v.strip() for v in values if looks_like_url(v)]
    return urls[:MAX_IMAGES]


def build_embed(
    footer: Footer,
    title: Optional[str] = None,
    description: Optional[str] = None,
    image_url: Optional[str] = None,
) -> discord.Embed:
    embed = discord.Embed(color=EMBED_COLOR)
    embed.set_footer(text=footer.text, icon_url=footer.icon_url)
    if title and title.strip():
        embed.title = title.strip()
    if description and description.strip():
        embed.description = description
    if image_url and image_url.strip():
        embed.set_image(url=image_url.strip())
    return embed


def image_embed(footer: Footer, url: str) -> discord.Embed:
    return build_embed(footer, image_url=url)


def compose_embeds(footer: Footer, title: str, description: str, images: Sequence[str]) -> list[discord.Embed]:
    """Embeds for a new post: one text embed, plus one embed per image when there are several."""
    if len(images) <= 1:
        return [build_embed(footer, title, description, images[0] if images else None)]
    return [build_embed(footer, title, description)] + [image_embed(footer, url) for url in images]


def compose_edited_embeds(footer: Footer, title: str, description: str, images: Sequence[str]) -> list[discord.Embed]:
    """Embeds replacing an edited post: the first image stays on the main embed."""
    main = build_embed(footer, title, description, images[0] if images else None)
    return [main] + [image_embed(footer, url) for url in images[1:]]


def chunked(embeds: Sequence[discord.Embed], size: int = EMBEDS_PER_MESSAGE) -> Iterator[list[discord.Embed]]:
    for start in range(0, len(embeds), size):
        yield list(embeds[start:start + size])


def existing_images(embeds: Sequence[discord.Embed]) -> list[str]:
    """Image URLs of a bot post, in the order the edit modal shows them."""
    urls = []
    for embed in embeds[:1 + MAX_IMAGES]:
        if embed.image and embed.image.url:
            urls.append(embed.image.url)
    return urls[:MAX_IMAGES]


def updates_embed(footer: Footer, description: str, image_url: Optional[str]) -> discord.Embed:
    return build_embed(footer, UPDATES_TITLE, description, image_url if looks_like_url(image_url) else None)


def verification_panel(footer: Footer) -> discord.Embed:
    embed = discord.Embed(title=PANEL_TITLE, description=PANEL_DESCRIPTION, color=PANEL_COLOR)
    embed.set_footer(text=footer.text, icon_url=footer.icon_url)
    embed.add_field(name="Need help?", value="Contact staff if verification fails.", inline=False)
    embed.add_field(
        name="Find invoice ID",
        value="Use the invoice number from your Sell.app order (e.g., 2711846).",
        inline=False,
    )
    return embed
