import asyncio

import pytest

from nebubot.games.errors import AlreadyActive, InvalidOpponent
from nebubot.games.lifecycle import GameStatus
from nebubot.games.negotiator import ChallengeNegotiator, ChallengeOutcome
from nebubot.games.registry import ActiveGameRegistry
from tests.fakes import FakeUser, ManualScheduler

ALICE = FakeUser(1, "Alice")
BOB = FakeUser(2, "Bob")
CAROL = FakeUser(3, "Carol")


def make_negotiator(**kwargs):
    scheduler = ManualScheduler()
    negotiator = ChallengeNegotiator(ActiveGameRegistry(), scheduler, **kwargs)
    return negotiator, scheduler


def test_unanswered_challenge_expires():
    negotiator, scheduler = make_negotiator(challenge_timeout=120)

    async def scenario():
        task = asyncio.create_task(
            negotiator.propose_challenge(10, ALICE, BOB, "tictactoe")
        )
        await asyncio.sleep(0)
        assert negotiator.pending(10) is not None
        scheduler.advance(119)
        assert not task.done()
        scheduler.advance(1)
        return await task

    challenge = asyncio.run(scenario())
    assert challenge.outcome is ChallengeOutcome.EXPIRED
    assert challenge.game is None
    assert negotiator.pending(10) is None
    assert 10 not in negotiator.registry


def test_accept_starts_and_registers_game():
    negotiator, scheduler = make_negotiator(idle_timeouts={"connect4": 45})

    async def scenario():
        async def present(challenge):
            assert challenge.respond(BOB, True) is True

        return await negotiator.propose_challenge(
            10, ALICE, BOB, "c4", present=present
        )

    challenge = asyncio.run(scenario())
    assert challenge.outcome is ChallengeOutcome.ACCEPTED
    game = challenge.game
    assert negotiator.registry.get(10) is game
    assert game.players == (ALICE, BOB)
    assert game.idle_timeout == 45
    # The expiry timer was cancelled; only the game's idle timer remains.
    assert scheduler.pending == 1
    scheduler.advance(45)
    assert game.status is GameStatus.TIMED_OUT


def test_decline_leaves_channel_free():
    negotiator, _ = make_negotiator()
    challenge = negotiator.open_challenge(10, ALICE, BOB, "tictactoe")
    assert challenge.respond(BOB, False) is True
    assert challenge.outcome is ChallengeOutcome.DECLINED
    assert len(negotiator.registry) == 0
    assert negotiator.pending(10) is None
    negotiator.open_challenge(10, ALICE, BOB, "tictactoe")


def test_only_the_challenged_user_can_answer():
    negotiator, _ = make_negotiator()
    challenge = negotiator.open_challenge(10, ALICE, BOB, "tictactoe")
    assert challenge.respond(CAROL, True) is False
    assert challenge.respond(ALICE, True) is False
    assert not challenge.is_resolved


def test_late_accept_after_expiry_is_ignored():
    negotiator, scheduler = make_negotiator(challenge_timeout=5)
    challenge = negotiator.open_challenge(10, ALICE, BOB, "tictactoe")
    scheduler.advance(5)
    assert challenge.outcome is ChallengeOutcome.EXPIRED
    assert challenge.respond(BOB, True) is False
    assert challenge.outcome is ChallengeOutcome.EXPIRED
    assert len(negotiator.registry) == 0


def test_first_answer_wins():
    negotiator, scheduler = make_negotiator()
    challenge = negotiator.open_challenge(10, ALICE, BOB, "tictactoe")
    assert challenge.respond(BOB, False) is True
    assert challenge.respond(BOB, True) is False
    scheduler.advance(500)
    assert challenge.outcome is ChallengeOutcome.DECLINED


def test_channel_with_game_or_pending_challenge_is_busy():
    negotiator, _ = make_negotiator()
    challenge = negotiator.open_challenge(10, ALICE, BOB, "tictactoe")
    with pytest.raises(AlreadyActive):
        negotiator.open_challenge(10, CAROL, ALICE, "connect4")
    challenge.respond(BOB, True)
    with pytest.raises(AlreadyActive):
        negotiator.open_challenge(10, CAROL, ALICE, "connect4")
    negotiator.open_challenge(11, CAROL, ALICE, "connect4")


def test_invalid_opponents_are_rejected():
    negotiator, scheduler = make_negotiator()
    with pytest.raises(InvalidOpponent):
        negotiator.open_challenge(10, ALICE, None, "tictactoe")
    with pytest.raises(InvalidOpponent):
        negotiator.open_challenge(10, ALICE, ALICE, "tictactoe")
    with pytest.raises(InvalidOpponent):
        negotiator.open_challenge(10, ALICE, FakeUser(9, "Bot", bot=True), "ttt")
    assert negotiator.pending(10) is None
    assert scheduler.pending == 0


def test_failed_presentation_releases_the_channel():
    negotiator, scheduler = make_negotiator()

    async def present(_challenge):
        raise RuntimeError("send failed")

    with pytest.raises(RuntimeError):
        asyncio.run(
            negotiator.propose_challenge(10, ALICE, BOB, "ttt", present=present)
        )
    assert negotiator.pending(10) is None
    assert scheduler.pending == 0


def test_expire_all_resolves_pending_challenges():
    negotiator, _ = make_negotiator()
    first = negotiator.open_challenge(10, ALICE, BOB, "tictactoe")
    second = negotiator.open_challenge(11, CAROL, BOB, "connect4")
    assert negotiator.expire_all() == 2
    assert first.outcome is ChallengeOutcome.EXPIRED
    assert second.outcome is ChallengeOutcome.EXPIRED


def test_wait_returns_the_outcome_once_resolved():
    negotiator, _ = make_negotiator()

    async def scenario():
        challenge = negotiator.open_challenge(10, ALICE, BOB, "tictactoe")
        waiter = asyncio.create_task(challenge.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        challenge.respond(BOB, False)
        return await waiter, await challenge.wait()

    first, again = asyncio.run(scenario())
    assert first is ChallengeOutcome.DECLINED
    assert again is ChallengeOutcome.DECLINED
