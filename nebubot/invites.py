from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol

from .models import InviteUse, bot_database, get_member_stats

LOGGER = logging.getLogger(__name__)


class InviteLike(Protocol):
    code: str
    uses: Optional[int]
    inviter: Any


def uses_by_code(invites: Iterable[InviteLike]) -> Dict[str, int]:
    return {invite.code: int(invite.uses or 0) for invite in invites}


def find_used_invite(
    cached: Mapping[str, int], live: Iterable[InviteLike]
) -> Optional[InviteLike]:
    """Return the first invite whose live use counter moved past the cache."""
    for invite in live:
        if int(invite.uses or 0) > cached.get(invite.code, 0):
            return invite
    return None


def load_cache(guild_id: int) -> Dict[str, int]:
    rows = InviteUse.select().where(InviteUse.guild_id == guild_id)
    return {row.code: row.uses for row in rows}


def store_cache(guild_id: int, invites: Iterable[InviteLike]) -> int:
    uses = uses_by_code(invites)
    with bot_database.atomic():
        InviteUse.delete().where(InviteUse.guild_id == guild_id).execute()
        for code, count in uses.items():
            InviteUse.create(guild_id=guild_id, code=code, uses=count)
    return len(uses)


def credit_inviter(user_id: int) -> int:
    stats = get_member_stats(user_id)
    stats.invites = stats.invites + 1
    stats.save()
    return stats.invites


def attribute_join(guild_id: int, live: Iterable[InviteLike]) -> Optional[InviteLike]:
    """Diff the cached counters against `live`, credit the inviter, refresh."""
    live = list(live)
    used = find_used_invite(load_cache(guild_id), live)
    store_cache(guild_id, live)
    if used is None:
        LOGGER.info("Could not attribute join in guild %s to an invite", guild_id)
        return None
    inviter = getattr(used, "inviter", None)
    if inviter is None:
        LOGGER.info("Invite %s in guild %s has no inviter", used.code, guild_id)
        return used
    total = credit_inviter(inviter.id)
    LOGGER.info(
        "Join in guild %s attributed to invite %s by %s (invites=%s)",
        guild_id,
        used.code,
        inviter.id,
        total,
    )
    return used
