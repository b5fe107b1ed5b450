"""Slash command payloads, in the shape Discord's bulk-overwrite endpoint expects."""

from __future__ import annotations

from typing import Optional

# ---------------------------------------------------------------------------
# Option and channel type constants (Discord API v10)
# ---------------------------------------------------------------------------

OPT_STRING  = 3
OPT_INTEGER = 4
OPT_USER    = 6
OPT_CHANNEL = 7

CH_TEXT = 0

PERM_ADMINISTRATOR = 1 << 3


def option(type_: int, name: str, description: str, required: bool = False, **extra) -> dict:
    payload = {"type": type_, "name": name, "description": description, "required": required}
    payload.update(extra)
    return payload


def text_channel(name: str, description: str, required: bool = False) -> dict:
    return option(OPT_CHANNEL, name, description, required, channel_types=[CH_TEXT])


def command(name: str, description: str, options: Optional[list[dict]] = None, admin: bool = False) -> dict:
    """Guild-only chat input command; ``admin`` hides it from non-administrators by default."""
    payload = {"name": name, "description": description, "dm_permission": False}
    if admin:
        payload["default_member_permissions"] = str(PERM_ADMINISTRATOR)
    if options:
        payload["options"] = options
    return payload


# ---------------------------------------------------------------------------
# Command definitions
# ---------------------------------------------------------------------------

COMMANDS = [
    command("updates", "Post an update (modal, sends to configured UPDATES channel)."),
    command("embed", "Send a custom embed via modal to a chosen channel.", [
        text_channel("channel", "Channel to send the embed to", required=True),
    ]),
    command("editembed", "Edit an existing bot embed message (admin only).", [
        text_channel("channel", "Channel containing the message", required=True),
        option(OPT_STRING, "message_id", "Message ID to edit", required=True),
    ], admin=True),
    command("purge", "Delete messages in bulk (admin only).", [
        option(OPT_INTEGER, "count", "Number of messages to delete (1-100)", required=True,
               min_value=1, max_value=100),
        text_channel("channel", "Channel to purge (defaults to current)"),
    ], admin=True),
    command("timeout", "Timeout a user for a duration in minutes (admin only).", [
        option(OPT_USER, "user", "User to timeout", required=True),
        option(OPT_INTEGER, "minutes", "Duration in minutes (1-40320)", required=True,
               min_value=1, max_value=40320),
        option(OPT_STRING, "reason", "Reason for timeout"),
    ], admin=True),
    command("untimeout", "Remove timeout from a user (admin only).", [
        option(OPT_USER, "user", "User to remove timeout", required=True),
    ], admin=True),
    command("ban", "Ban a user (admin only).", [
        option(OPT_USER, "user", "User to ban", required=True),
        option(OPT_STRING, "reason", "Reason for ban"),
        option(OPT_INTEGER, "delete_days", "Delete message history in days (0-7)",
               min_value=0, max_value=7),
    ], admin=True),
    command("unban", "Unban a user by ID (admin only).", [
        option(OPT_STRING, "user_id", "User ID to unban", required=True),
        option(OPT_STRING, "reason", "Reason for unban"),
    ], admin=True),
    command("verifyemb", "Send the invoice verification embed to this channel (Admin only)", admin=True),
]

COMMAND_NAMES = [c["name"] for c in COMMANDS]
