from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Tuple

import discord

from .server_stats import count_humans


def _relative(moment: Optional[datetime]) -> str:
    if moment is None:
        return "Unknown"
    return discord.utils.format_dt(moment, style="R")


def latency_text(message_age_ms: int, api_latency_s: float) -> str:
    return (
        f"🏓 Pong! Latency is {message_age_ms}ms. "
        f"API Latency is {round(api_latency_s * 1000)}ms."
    )


def userinfo_embed(member: Any) -> discord.Embed:
    embed = discord.Embed(title=f"👤 User Info: {member.name}", color=0x57F287)
    avatar = getattr(member, "display_avatar", None)
    if avatar is not None:
        embed.set_thumbnail(url=avatar.url)
    embed.add_field(name="Tag", value=str(member), inline=True)
    embed.add_field(name="ID", value=str(member.id), inline=True)
    embed.add_field(
        name="Joined Server",
        value=_relative(getattr(member, "joined_at", None)),
        inline=True,
    )
    embed.add_field(
        name="Account Created", value=_relative(member.created_at), inline=True
    )
    return embed


def serverinfo_embed(guild: Any) -> discord.Embed:
    embed = discord.Embed(title=f"📊 Server Info: {guild.name}", color=0x5865F2)
    embed.add_field(name="Owner", value=f"<@{guild.owner_id}>", inline=True)
    embed.add_field(name="Members", value=str(guild.member_count), inline=True)
    embed.add_field(
        name="Humans", value=str(count_humans(guild.members)), inline=True
    )
    embed.add_field(
        name="Created On",
        value=discord.utils.format_dt(guild.created_at, style="D"),
        inline=True,
    )
    return embed


def parse_embed_args(text: str) -> Tuple[Optional[str], Optional[str]]:
    """Split `Title | Description`; either half may be missing."""
    title, _sep, description = (text or "").partition("|")
    return title.strip() or None, description.strip() or None


def custom_embed(text: str) -> discord.Embed:
    title, description = parse_embed_args(text)
    if title is None and description is None:
        raise ValueError("You must provide a title and/or description.")
    return discord.Embed(title=title, description=description, color=0x3498DB)
