import asyncio
from types import SimpleNamespace

from nebubot.bot import member_is_admin, run_challenge
from nebubot.games.lifecycle import GameStatus
from nebubot.games.negotiator import ChallengeNegotiator, ChallengeOutcome
from nebubot.games.registry import ActiveGameRegistry
from nebubot.views import GameView, MoveButton, VerifyView, flush_final_edits
from tests.fakes import (
    FakeContext,
    FakeGuild,
    FakeInteraction,
    FakeMember,
    FakeMessage,
    FakeRole,
    FakeUser,
    ManualScheduler,
    make_bot_stub,
)

ALICE = FakeUser(1, "Alice")
BOB = FakeUser(2, "Bob")
CAROL = FakeUser(3, "Carol")


def make_bot():
    scheduler = ManualScheduler()
    negotiator = ChallengeNegotiator(ActiveGameRegistry(), scheduler)
    return make_bot_stub(negotiator), scheduler


async def open_prompt(bot, ctx, variant="tictactoe"):
    task = asyncio.create_task(run_challenge(bot, ctx, BOB, variant))
    await asyncio.sleep(0)
    return task, ctx.sent[0].view


async def press(button, user):
    interaction = FakeInteraction(user)
    await button.callback(interaction)
    return interaction


def test_accepted_challenge_posts_board_and_plays_to_a_win():
    bot, _ = make_bot()
    ctx = FakeContext(ALICE)

    async def scenario():
        task, prompt = await open_prompt(bot, ctx)
        answer = await press(prompt.accept, BOB)
        challenge = await task
        board = ctx.sent[1].view

        wrong_turn = await press(board.move_buttons[4], BOB)
        for user, cell in [(ALICE, 0), (BOB, 3), (ALICE, 1), (BOB, 4)]:
            await press(board.move_buttons[cell], user)
        final = await press(board.move_buttons[2], ALICE)
        return challenge, answer, board, wrong_turn, final

    challenge, answer, board, wrong_turn, final = asyncio.run(scenario())

    assert challenge.outcome is ChallengeOutcome.ACCEPTED
    assert "challenged to **Tic Tac Toe**" in ctx.sent[0].content
    assert answer.response.edits == [
        {"content": "Challenge accepted! Starting game...", "view": None}
    ]
    assert isinstance(board, GameView)
    assert ctx.sent[1].embed.description == "It's Alice's turn! (❌)"

    assert wrong_turn.response.messages == ["It's not your turn!"]
    assert wrong_turn.response.ephemeral == [True]

    assert challenge.game.status is GameStatus.WON
    assert board.is_finished()
    assert all(button.disabled for button in board.move_buttons)
    assert board.move_buttons[0].label == "❌"
    embed = final.response.edits[-1]["embed"]
    assert embed.title == "Game Over!"
    assert embed.description == "Alice (❌) wins!"
    assert len(bot.registry) == 0


def test_connect4_board_uses_column_buttons():
    bot, _ = make_bot()
    ctx = FakeContext(ALICE)

    async def scenario():
        task, prompt = await open_prompt(bot, ctx, "connect4")
        await press(prompt.accept, BOB)
        await task
        board = ctx.sent[1].view
        await press(board.move_buttons[3], ALICE)
        return board

    board = asyncio.run(scenario())

    assert [button.label for button in board.move_buttons] == [
        "1", "2", "3", "4", "5", "6", "7"
    ]
    assert not any(button.disabled for button in board.move_buttons)
    assert board.game.board[5][3] == "🔴"
    assert board.game.current_player is BOB


def test_unanswered_challenge_is_marked_expired():
    bot, scheduler = make_bot()
    ctx = FakeContext(ALICE)

    async def scenario():
        task, prompt = await open_prompt(bot, ctx)
        scheduler.advance(120)
        return await task, prompt

    challenge, prompt = asyncio.run(scenario())

    assert challenge.outcome is ChallengeOutcome.EXPIRED
    assert prompt.is_finished()
    assert ctx.sent[0].edits == [
        {"content": "Challenge expired due to inactivity.", "view": None}
    ]
    assert len(ctx.sent) == 1


def test_declined_challenge_and_strangers_are_rejected():
    bot, _ = make_bot()
    ctx = FakeContext(ALICE)

    async def scenario():
        task, prompt = await open_prompt(bot, ctx)
        stranger = await press(prompt.accept, CAROL)
        declined = await press(prompt.decline, BOB)
        late = await press(prompt.accept, BOB)
        return await task, stranger, declined, late

    challenge, stranger, declined, late = asyncio.run(scenario())

    assert challenge.outcome is ChallengeOutcome.DECLINED
    assert stranger.response.messages == ["This challenge isn't for you."]
    assert declined.response.edits == [
        {"content": "Challenge declined.", "view": None}
    ]
    assert late.response.messages == ["This challenge is no longer open."]
    assert len(bot.registry) == 0


def test_idle_game_message_is_updated_on_timeout():
    bot, scheduler = make_bot()
    ctx = FakeContext(ALICE)

    async def scenario():
        task, prompt = await open_prompt(bot, ctx)
        await press(prompt.accept, BOB)
        await task
        board = ctx.sent[1].view
        scheduler.advance(180)
        await asyncio.sleep(0)
        return board

    board = asyncio.run(scenario())

    assert board.game.status is GameStatus.TIMED_OUT
    assert board.is_finished()
    edit = ctx.sent[1].edits[-1]
    assert edit["embed"].description == "Game timed out due to inactivity."
    assert all(button.disabled for button in board.move_buttons)


def test_failed_final_edit_is_logged_not_raised(caplog):
    bot, _ = make_bot()

    async def scenario():
        challenge = bot.negotiator.open_challenge(500, ALICE, BOB, "ttt")
        challenge.respond(BOB, True)
        board = GameView(challenge.game)
        board.message = FakeMessage(fail_edit=RuntimeError("gateway gone"))
        challenge.game.abandon()
        flushed = await flush_final_edits()
        return flushed, await flush_final_edits()

    flushed, again = asyncio.run(scenario())

    assert flushed == 1
    assert again == 0
    assert "Ended-game edit failed: gateway gone" in caplog.text


def test_detached_move_button_ignores_presses():
    async def scenario():
        button = MoveButton(0, "1", row=0)
        interaction = FakeInteraction(ALICE)
        await button.callback(interaction)
        return interaction

    interaction = asyncio.run(scenario())

    assert interaction.response.messages == []
    assert interaction.response.edits == []


def test_invalid_opponent_replies_with_usage():
    bot, _ = make_bot()
    ctx = FakeContext(ALICE)

    result = asyncio.run(run_challenge(bot, ctx, None, "tictactoe"))

    assert result is None
    assert ctx.replies == [
        "You need to mention a valid user to play against! "
        "Usage: `$tictactoe @user`"
    ]
    assert ctx.sent == []


def test_busy_channel_rejects_new_challenge():
    bot, _ = make_bot()
    bot.negotiator.open_challenge(500, CAROL, BOB, "connect4")
    ctx = FakeContext(ALICE, channel_id=500)

    result = asyncio.run(run_challenge(bot, ctx, BOB, "tictactoe"))

    assert result is None
    assert ctx.replies == ["There's already a game in progress in this channel!"]


def test_verify_button_grants_role():
    role = FakeRole(9, "Verified")
    guild = FakeGuild(id=1, roles=[role])
    member = FakeMember(id=10, roles=[], guild=guild)

    async def scenario():
        view = VerifyView(role_id=9)
        first = FakeInteraction(member, guild)
        await view.verify.callback(first)
        second = FakeInteraction(member, guild)
        await view.verify.callback(second)
        return first, second

    first, second = asyncio.run(scenario())

    assert first.response.messages == ["🎉 You’ve been verified!"]
    assert second.response.messages == ["✅ You’re already verified!"]
    assert member.added_roles == [9]


def test_member_is_admin_checks_permissions():
    admin = SimpleNamespace(
        guild_permissions=SimpleNamespace(administrator=False, manage_guild=True)
    )
    regular = SimpleNamespace(
        guild_permissions=SimpleNamespace(administrator=False, manage_guild=False)
    )
    assert member_is_admin(admin)
    assert not member_is_admin(regular)
    assert not member_is_admin(ALICE)
