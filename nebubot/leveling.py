from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from .models import MemberStats, get_member_stats

LOGGER = logging.getLogger(__name__)

LEADERBOARD_SIZE = 10


class SupportsGuild(Protocol):
    id: int

    def get_role(self, role_id: int) -> Any | None: ...


class SupportsMember(Protocol):
    id: int
    roles: Iterable[Any]
    guild: SupportsGuild
    display_name: str

    async def add_roles(self, *roles: Any, **kwargs: Any) -> Any: ...

    async def remove_roles(self, *roles: Any, **kwargs: Any) -> Any: ...


@dataclass
class XpGain:
    xp: int
    level: int
    levels_gained: int

    @property
    def leveled_up(self) -> bool:
        return self.levels_gained > 0


def xp_needed(level: int) -> int:
    """XP required to advance from `level` to the next one."""
    return 5 * level**2 + 50 * level + 100


def apply_xp(xp: int, level: int, amount: int) -> XpGain:
    new_xp = xp + amount
    new_level = level
    while new_xp >= xp_needed(new_level):
        new_xp -= xp_needed(new_level)
        new_level += 1
    return XpGain(xp=new_xp, level=new_level, levels_gained=new_level - level)


def add_xp(user_id: int, amount: int) -> XpGain:
    stats = get_member_stats(user_id)
    gain = apply_xp(stats.xp, stats.level, amount)
    stats.xp = gain.xp
    stats.level = gain.level
    stats.save()
    if gain.leveled_up:
        LOGGER.info("User %s reached level %s", user_id, gain.level)
    return gain


def leaderboard(limit: int = LEADERBOARD_SIZE) -> List[MemberStats]:
    return list(
        MemberStats.select()
        .order_by(MemberStats.level.desc(), MemberStats.xp.desc())
        .limit(limit)
    )


def target_role_id(level_roles: Mapping[int, int], level: int) -> Optional[int]:
    target = None
    for required in sorted(level_roles):
        if required <= level:
            target = level_roles[required]
    return target


async def apply_level_roles(
    member: SupportsMember, level_roles: Dict[int, int], level: int
) -> Optional[int]:
    """Keep only the highest level reward the member has reached."""
    if not level_roles:
        return None
    guild = member.guild
    target_id = target_role_id(level_roles, level)
    target_role = guild.get_role(target_id) if target_id else None
    reward_ids = set(level_roles.values())

    to_remove = [
        role for role in member.roles if role.id in reward_ids and role.id != target_id
    ]
    if to_remove:
        try:
            await member.remove_roles(*to_remove, reason="Updating level role")
        except Exception as exc:
            LOGGER.warning("Failed removing level roles for %s: %s", member.id, exc)
    if target_role and target_role not in member.roles:
        try:
            await member.add_roles(target_role, reason="Updating level role")
            LOGGER.info(
                "Assigned level role %s (%s) to user %s",
                target_role.name,
                target_role.id,
                member.id,
            )
        except Exception as exc:
            LOGGER.warning("Failed adding level role for %s: %s", member.id, exc)
    return target_role.id if target_role else None
