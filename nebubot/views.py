from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Set

import discord

from .games.errors import GameError
from .games.lifecycle import Game, GameStatus
from .games.negotiator import Challenge
from .games.render import snapshot
from .games.rules import TicTacToeRules
from .verification import VerifyResult, verify_member

LOGGER = logging.getLogger(__name__)

# Board edits still in flight after a timeout or stop.
_pending_edits: Set["asyncio.Task[None]"] = set()

VERIFY_BUTTON_ID = "verify_button"
VERIFY_MESSAGES = {
    VerifyResult.VERIFIED: "🎉 You’ve been verified!",
    VerifyResult.ALREADY_VERIFIED: "✅ You’re already verified!",
    VerifyResult.FAILED: (
        "Couldn’t verify you right now. I might be missing permissions."
    ),
}


def game_embed(game: Game) -> discord.Embed:
    snap = snapshot(game)
    if isinstance(game.rules, TicTacToeRules):
        # The grid lives on the buttons.
        return discord.Embed(
            title=snap.title, description=snap.status_text, color=snap.color
        )
    embed = discord.Embed(
        title=snap.title, description=snap.grid_text, color=snap.color
    )
    embed.add_field(
        name="Game Over!" if snap.terminal else "Turn", value=snap.status_text
    )
    return embed


class ChallengeView(discord.ui.View):
    """Accept/Decline buttons; only the challenged user may answer."""

    def __init__(self, challenge: Challenge):
        super().__init__(timeout=None)
        self.challenge = challenge
        self.message: Optional[discord.Message] = None

    async def _answer(self, interaction: discord.Interaction, accept: bool) -> None:
        if not self.challenge.is_for(interaction.user):
            await interaction.response.send_message(
                "This challenge isn't for you.", ephemeral=True
            )
            return
        try:
            resolved = self.challenge.respond(interaction.user, accept)
        except GameError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return
        if not resolved:
            await interaction.response.send_message(
                "This challenge is no longer open.", ephemeral=True
            )
            return
        self.stop()
        if accept:
            content = "Challenge accepted! Starting game..."
        else:
            content = "Challenge declined."
        await interaction.response.edit_message(content=content, view=None)

    @discord.ui.button(label="Accept", style=discord.ButtonStyle.success)
    async def accept(
        self,
        interaction: discord.Interaction,
        button: discord.ui.Button,  # noqa: ARG002
    ) -> None:
        await self._answer(interaction, True)

    @discord.ui.button(label="Decline", style=discord.ButtonStyle.danger)
    async def decline(
        self,
        interaction: discord.Interaction,
        button: discord.ui.Button,  # noqa: ARG002
    ) -> None:
        await self._answer(interaction, False)


class MoveButton(discord.ui.Button["GameView"]):
    def __init__(self, move: int, label: str, row: int):
        super().__init__(label=label, style=discord.ButtonStyle.primary, row=row)
        self.move = move

    async def callback(self, interaction: discord.Interaction) -> None:
        if self.view is None:
            return
        await self.view.handle_move(interaction, self.move)


class GameView(discord.ui.View):
    """Board controls for one game; disabled buttons mark illegal moves."""

    def __init__(self, game: Game):
        super().__init__(timeout=None)
        self.game = game
        self.message: Optional[discord.Message] = None
        self.grid = isinstance(game.rules, TicTacToeRules)
        self.move_buttons: List[MoveButton] = []
        for move in range(game.rules.move_count):
            if self.grid:
                button = MoveButton(move, game.rules.empty_symbol, row=move // 3)
            else:
                # An action row holds at most five buttons.
                button = MoveButton(move, str(move + 1), row=move // 4)
                button.style = discord.ButtonStyle.secondary
            self.move_buttons.append(button)
            self.add_item(button)
        self.refresh()
        game.add_end_listener(self._on_game_end)

    def refresh(self) -> None:
        snap = snapshot(self.game)
        cells = [cell for row in snap.rows for cell in row]
        for button in self.move_buttons:
            button.disabled = button.move in snap.disabled_moves
            if self.grid:
                cell = cells[button.move]
                button.label = cell
                if cell != self.game.rules.empty_symbol:
                    button.style = discord.ButtonStyle.secondary

    def embed(self) -> discord.Embed:
        return game_embed(self.game)

    async def handle_move(self, interaction: discord.Interaction, move: int) -> None:
        try:
            self.game.submit_move(interaction.user, move)
        except GameError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return
        self.refresh()
        if self.game.is_over:
            self.stop()
        await interaction.response.edit_message(embed=self.embed(), view=self)

    def _on_game_end(self, game: Game) -> None:
        # Wins and draws are rendered by handle_move.
        if game.status not in (GameStatus.TIMED_OUT, GameStatus.ABANDONED):
            return
        self.refresh()
        self.stop()
        if self.message is None:
            return
        task = asyncio.get_running_loop().create_task(self._edit_final())
        _pending_edits.add(task)
        task.add_done_callback(_pending_edits.discard)

    async def _edit_final(self) -> None:
        if self.message is None:
            return
        try:
            await self.message.edit(embed=self.embed(), view=self)
        except discord.HTTPException as exc:
            LOGGER.warning(
                "Failed updating ended game in channel %s: %s",
                self.game.channel_id,
                exc,
            )


async def flush_final_edits() -> int:
    """Wait for pending ended-game edits; returns how many were awaited."""
    tasks = list(_pending_edits)
    if not tasks:
        return 0
    results = await asyncio.gather(*tasks, return_exceptions=True)
    for result in results:
        if isinstance(result, Exception):
            LOGGER.warning("Ended-game edit failed: %s", result)
    return len(tasks)


class VerifyView(discord.ui.View):
    """Persistent verify button; survives restarts through its custom id."""

    def __init__(self, role_id: Optional[int]):
        super().__init__(timeout=None)
        self.role_id = role_id

    @discord.ui.button(
        label="Verify",
        style=discord.ButtonStyle.success,
        custom_id=VERIFY_BUTTON_ID,
    )
    async def verify(
        self,
        interaction: discord.Interaction,
        button: discord.ui.Button,  # noqa: ARG002
    ) -> None:
        guild = interaction.guild
        role = guild.get_role(self.role_id) if guild and self.role_id else None
        result = await verify_member(interaction.user, role)
        await interaction.response.send_message(
            VERIFY_MESSAGES[result], ephemeral=True
        )
