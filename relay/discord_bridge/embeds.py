"""Embed and channel-name helpers shared by the Discord bridge."""

import re

import discord

GROUP_COLOR = discord.Colour(0xFF5733)
DIRECT_COLOR = discord.Colour(0x33A5FF)

STALK_PREFIX = "stalk-"
FOOTER_PREFIX = "From: "

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str) -> str:
    """Reduce '+27 76 123-4567' or '27761234567@c.us' to bare digits."""
    return _NON_DIGITS.sub("", raw.split("@", 1)[0])


def stalk_channel_name(phone: str) -> str:
    return f"{STALK_PREFIX}{normalize_phone(phone)}"


def phone_from_channel_name(name: str | None) -> str | None:
    if not name or not name.startswith(STALK_PREFIX):
        return None
    return name[len(STALK_PREFIX):] or None


def phone_from_footer(text: str | None) -> str | None:
    if not text or not text.startswith(FOOTER_PREFIX):
        return None
    return text[len(FOOTER_PREFIX):].strip() or None


def describe_inbound(payload: dict) -> str | None:
    """Embed body for an inbound message: its text, or a media placeholder."""
    body = (payload.get("body") or "").strip()
    if body:
        return body
    media_type = payload.get("media_type")
    if media_type:
        return f"📎 [{media_type.upper()}] message"
    return None


def build_inbound_embed(payload: dict) -> discord.Embed | None:
    """Mirror of an inbound WhatsApp message, or None if there is nothing to show."""
    description = describe_inbound(payload)
    if description is None:
        return None

    embed = discord.Embed(
        description=description,
        colour=GROUP_COLOR if payload.get("is_group") else DIRECT_COLOR,
        timestamp=discord.utils.utcnow(),
    )
    embed.set_author(name=payload.get("sender_name") or "Unknown")
    embed.set_footer(text=f"{FOOTER_PREFIX}{payload.get('key', '')}")
    return embed
