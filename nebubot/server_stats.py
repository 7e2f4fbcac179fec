from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

import discord

from .models import GuildConfig, get_guild_config

LOGGER = logging.getLogger(__name__)

HUMANS_LABEL = "🔒 Humans: {}"
DOB_LABEL = "🌐 DOB: {}"
GOAL_LABEL = "🎯 Member Goal: {}"


def count_humans(members: Iterable[Any]) -> int:
    return sum(1 for member in members if not getattr(member, "bot", False))


def stat_labels(config: GuildConfig, humans: int) -> Dict[Optional[int], str]:
    """Channel id -> the name it should carry; unset channels are skipped."""
    labels = {
        config.vc_humans_id: HUMANS_LABEL.format(humans),
        config.vc_dob_id: DOB_LABEL.format(config.dob_text),
        config.vc_goal_id: GOAL_LABEL.format(config.goal_value),
    }
    labels.pop(None, None)
    return labels


def set_stats_channels(
    guild_id: int, humans_id: int, dob_id: int, goal_id: int
) -> GuildConfig:
    config = get_guild_config(guild_id)
    config.vc_humans_id = humans_id
    config.vc_dob_id = dob_id
    config.vc_goal_id = goal_id
    config.save()
    LOGGER.info(
        "Stats channels for guild %s set to %s/%s/%s",
        guild_id,
        humans_id,
        dob_id,
        goal_id,
    )
    return config


def set_dob_text(guild_id: int, text: str) -> GuildConfig:
    text = (text or "").strip()
    if not text:
        raise ValueError("Please provide a date to show.")
    config = get_guild_config(guild_id)
    config.dob_text = text
    config.save()
    return config


def set_goal_value(guild_id: int, goal: int) -> GuildConfig:
    if goal <= 0:
        raise ValueError("The member goal must be a positive number.")
    config = get_guild_config(guild_id)
    config.goal_value = goal
    config.save()
    return config


async def refresh_stats_channels(guild: Any) -> int:
    """Rename the configured stat channels; returns how many were renamed.

    Channels that already carry the right name are not touched.
    """
    config = GuildConfig.get_or_none(GuildConfig.guild_id == guild.id)
    if config is None:
        return 0
    renamed = 0
    labels = stat_labels(config, count_humans(guild.members))
    for channel_id, label in labels.items():
        channel = guild.get_channel(channel_id)
        if channel is None:
            LOGGER.warning(
                "Stats channel %s missing in guild %s", channel_id, guild.id
            )
            continue
        if channel.name == label:
            continue
        try:
            await channel.edit(name=label, reason="Server stats refresh")
        except discord.HTTPException as exc:
            LOGGER.warning("Failed renaming stats channel %s: %s", channel_id, exc)
            continue
        renamed += 1
    if renamed:
        LOGGER.debug("Renamed %s stats channel(s) in guild %s", renamed, guild.id)
    return renamed
