from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Sequence

from .errors import GameNotFound, InvalidOpponent, NotYourTurn
from .rules import Rules
from .scheduling import Scheduler, TimerHandle

if TYPE_CHECKING:
    from .registry import ActiveGameRegistry

LOGGER = logging.getLogger(__name__)


class GameStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    WON = "won"
    DRAWN = "drawn"
    TIMED_OUT = "timed_out"
    ABANDONED = "abandoned"


TERMINAL_STATUSES = frozenset(
    {GameStatus.WON, GameStatus.DRAWN, GameStatus.TIMED_OUT, GameStatus.ABANDONED}
)


@dataclass
class MoveResult:
    player: Any
    mark: str
    position: Any
    status: GameStatus


def participant_id(participant: Any) -> Any:
    return getattr(participant, "id", participant)


def display_name(participant: Any) -> str:
    return (
        getattr(participant, "display_name", None)
        or getattr(participant, "name", None)
        or str(participant_id(participant))
    )


def player_label(participant: Any) -> str:
    return f"{display_name(participant)} ({participant_id(participant)})"


def check_participants(challenger: Any, opponent: Any) -> None:
    if opponent is None:
        raise InvalidOpponent("You need to mention a valid user to play against!")
    if getattr(opponent, "bot", False):
        raise InvalidOpponent("You can't challenge a bot.")
    if participant_id(opponent) == participant_id(challenger):
        raise InvalidOpponent("You can't challenge yourself.")


class Game:
    """One live match in a channel.

    The rules object owns board shape, move validation and win detection;
    this class owns turns, termination and the idle timer. A game leaves
    the registry exactly once, on its first terminal transition.
    """

    def __init__(
        self,
        channel_id: int,
        players: Sequence[Any],
        rules: Rules,
        registry: "ActiveGameRegistry",
        scheduler: Scheduler,
        idle_timeout: Optional[float] = None,
    ):
        challenger, opponent = players
        check_participants(challenger, opponent)
        self.channel_id = channel_id
        self.players = (challenger, opponent)
        self.rules = rules
        self.board = rules.new_board()
        self.turn = 0
        self.moves = 0
        self.status = GameStatus.IN_PROGRESS
        self.winner: Any = None
        self.last_position: Any = None
        self.idle_timeout = (
            idle_timeout if idle_timeout is not None else rules.default_idle_timeout
        )
        self._registry = registry
        self._scheduler = scheduler
        self._timer: TimerHandle | None = None
        self._end_listeners: List[Callable[["Game"], None]] = []

    @property
    def current_player(self) -> Any:
        return self.players[self.turn]

    @property
    def current_mark(self) -> str:
        return self.rules.marks[self.turn]

    def mark_for(self, participant: Any) -> Optional[str]:
        pid = participant_id(participant)
        for index, player in enumerate(self.players):
            if participant_id(player) == pid:
                return self.rules.marks[index]
        return None

    def is_participant(self, participant: Any) -> bool:
        return self.mark_for(participant) is not None

    @property
    def is_over(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_live(self) -> bool:
        return not self.is_over and self._registry.get(self.channel_id) is self

    def add_end_listener(self, listener: Callable[["Game"], None]) -> None:
        self._end_listeners.append(listener)

    def start(self) -> None:
        LOGGER.info(
            "%s started in channel %s: %s vs %s",
            self.rules.title,
            self.channel_id,
            player_label(self.players[0]),
            player_label(self.players[1]),
        )
        self._arm_timer()

    def submit_move(self, actor: Any, move: Any) -> MoveResult:
        if not self.is_live:
            raise GameNotFound()
        if participant_id(actor) != participant_id(self.current_player):
            raise NotYourTurn()
        player = self.current_player
        mark = self.current_mark
        position = self.rules.apply_move(self.board, move, mark)
        self.moves += 1
        self.last_position = position
        LOGGER.debug(
            "Move in channel %s by %s: %s -> %s",
            self.channel_id,
            player_label(player),
            move,
            position,
        )
        if self.rules.detect_win(self.board, position, mark):
            self.winner = player
            self._finish(GameStatus.WON)
        elif self.rules.is_full(self.board):
            self._finish(GameStatus.DRAWN)
        else:
            self.turn = 1 - self.turn
            self._arm_timer()
        return MoveResult(
            player=player, mark=mark, position=position, status=self.status
        )

    def abandon(self) -> bool:
        return self._finish(GameStatus.ABANDONED)

    def _arm_timer(self) -> None:
        self._cancel_timer()
        self._timer = self._scheduler.call_later(
            self.idle_timeout, self._on_idle_timeout
        )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_idle_timeout(self) -> None:
        self._timer = None
        if not self.is_live:
            return
        self._finish(GameStatus.TIMED_OUT)

    def _finish(self, status: GameStatus) -> bool:
        if self.is_over:
            return False
        self.status = status
        self._cancel_timer()
        self._registry.deregister(self.channel_id, self)
        winner = player_label(self.winner) if self.winner is not None else "-"
        LOGGER.info(
            "%s in channel %s ended: %s (winner=%s, moves=%s)",
            self.rules.title,
            self.channel_id,
            status.value,
            winner,
            self.moves,
        )
        for listener in list(self._end_listeners):
            try:
                listener(self)
            except Exception as exc:
                LOGGER.exception(
                    "End listener failed for game in channel %s: %s",
                    self.channel_id,
                    exc,
                )
        return True
