from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional

from .errors import AlreadyActive

if TYPE_CHECKING:
    from .lifecycle import Game

LOGGER = logging.getLogger(__name__)


class ActiveGameRegistry:
    """Channel id -> the one live game in that channel.

    Created when the bot starts and cleared when it closes; nothing here is
    persisted, so a restart drops in-flight games.
    """

    def __init__(self):
        self._games: Dict[Any, "Game"] = {}

    def __len__(self) -> int:
        return len(self._games)

    def __contains__(self, channel_id: Any) -> bool:
        return channel_id in self._games

    def __iter__(self) -> Iterator["Game"]:
        return iter(list(self._games.values()))

    def register(self, channel_id: Any, game: "Game") -> None:
        if channel_id in self._games:
            raise AlreadyActive()
        self._games[channel_id] = game

    def get(self, channel_id: Any) -> Optional["Game"]:
        return self._games.get(channel_id)

    def deregister(self, channel_id: Any, game: Optional["Game"] = None) -> bool:
        current = self._games.get(channel_id)
        if current is None:
            return False
        if game is not None and current is not game:
            return False
        del self._games[channel_id]
        return True

    def clear(self) -> int:
        games = list(self._games.values())
        for game in games:
            game.abandon()
        self._games.clear()
        if games:
            LOGGER.info("Abandoned %s active game(s)", len(games))
        return len(games)
