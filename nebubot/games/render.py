from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Set

from .lifecycle import Game, GameStatus, display_name

COLOR_IN_PROGRESS = 0x3498DB
COLOR_WON = 0x2ECC71
COLOR_DRAWN = 0x95A5A6
COLOR_ENDED = 0xE74C3C


@dataclass
class GameSnapshot:
    title: str
    rows: List[List[str]]
    status_text: str
    color: int
    terminal: bool
    disabled_moves: Set[int] = field(default_factory=set)

    @property
    def grid_text(self) -> str:
        return "\n".join(" ".join(row) for row in self.rows)


def status_text(game: Game) -> str:
    if game.status is GameStatus.WON:
        return f"{display_name(game.winner)} ({game.mark_for(game.winner)}) wins!"
    if game.status is GameStatus.DRAWN:
        return "It's a draw!"
    if game.status is GameStatus.TIMED_OUT:
        return "Game timed out due to inactivity."
    if game.status is GameStatus.ABANDONED:
        return "Game was stopped."
    return f"It's {display_name(game.current_player)}'s turn! ({game.current_mark})"


def snapshot(game: Game, annotation: Optional[str] = None) -> GameSnapshot:
    rules = game.rules
    rows = [
        [cell if cell is not None else rules.empty_symbol for cell in row]
        for row in rules.rows(game.board)
    ]
    all_moves = set(range(rules.move_count))
    if game.is_over:
        disabled = all_moves
    else:
        disabled = all_moves - set(rules.legal_moves(game.board))
    if game.status is GameStatus.WON:
        color = COLOR_WON
    elif game.status is GameStatus.DRAWN:
        color = COLOR_DRAWN
    elif game.is_over:
        color = COLOR_ENDED
    else:
        color = COLOR_IN_PROGRESS
    return GameSnapshot(
        title="Game Over!" if game.is_over else rules.title,
        rows=rows,
        status_text=annotation or status_text(game),
        color=color,
        terminal=game.is_over,
        disabled_moves=disabled,
    )
