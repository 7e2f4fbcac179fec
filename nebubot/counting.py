from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from .models import CountingState, get_counting_state, get_guild_config

LOGGER = logging.getLogger(__name__)

NUMBER_RE = re.compile(r"^\d+$")


@dataclass
class CountResult:
    accepted: bool
    number: int
    expected: int
    reason: Optional[str] = None

    @property
    def next_number(self) -> int:
        return self.expected + 1 if self.accepted else 1


def parse_count(content: str) -> Optional[int]:
    text = (content or "").strip()
    if not NUMBER_RE.match(text):
        return None
    return int(text)


def evaluate_count(
    expected: int, last_user_id: Optional[int], user_id: int, number: int
) -> CountResult:
    if user_id == last_user_id:
        return CountResult(
            accepted=False,
            number=number,
            expected=expected,
            reason="You can't count twice in a row.",
        )
    if number != expected:
        return CountResult(
            accepted=False,
            number=number,
            expected=expected,
            reason=f"The next number should be **{expected}**.",
        )
    return CountResult(accepted=True, number=number, expected=expected)


def handle_count(guild_id: int, user_id: int, content: str) -> Optional[CountResult]:
    """Apply a counting-channel message; non-numeric chatter returns None."""
    number = parse_count(content)
    if number is None:
        return None
    state = get_counting_state(guild_id)
    result = evaluate_count(state.number, state.last_user_id, user_id, number)
    if result.accepted:
        state.number = result.next_number
        state.last_user_id = user_id
    else:
        LOGGER.info(
            "Counting reset in guild %s by %s at %s: %s",
            guild_id,
            user_id,
            state.number,
            result.reason,
        )
        state.number = 1
        state.last_user_id = None
    state.save()
    return result


def reset_count(guild_id: int) -> CountingState:
    state = get_counting_state(guild_id)
    state.number = 1
    state.last_user_id = None
    state.save()
    return state


def set_counting_channel(guild_id: int, channel_id: int) -> None:
    config = get_guild_config(guild_id)
    config.counting_channel_id = channel_id
    config.save()
    reset_count(guild_id)
    LOGGER.info("Counting channel for guild %s set to %s", guild_id, channel_id)
