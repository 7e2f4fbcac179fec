from datetime import datetime, timedelta

import pytest

from nebubot.economy import (
    CooldownActive,
    InsufficientFunds,
    InvalidBet,
    balance_of,
    claim_daily,
    coin_flip,
    format_remaining,
    parse_guess,
    work,
)
from nebubot.models import get_wallet


class FixedRandom:
    def __init__(self, amount=0, choice_index=0):
        self.amount = amount
        self.choice_index = choice_index
        self.ranges = []

    def randint(self, low, high):
        self.ranges.append((low, high))
        return self.amount

    def choice(self, options):
        return options[self.choice_index]


NOW = datetime(2024, 5, 1, 12, 0, 0)


def test_daily_credits_once_per_day(db):
    rng = FixedRandom(amount=321)
    payout = claim_daily(1, now=NOW, rng=rng)
    assert payout.amount == 321
    assert payout.balance == 321
    assert rng.ranges == [(200, 500)]

    with pytest.raises(CooldownActive) as excinfo:
        claim_daily(1, now=NOW + timedelta(hours=23), rng=rng)
    assert excinfo.value.remaining == timedelta(hours=1)
    assert balance_of(1) == 321

    claim_daily(1, now=NOW + timedelta(hours=24), rng=rng)
    assert balance_of(1) == 642


def test_work_uses_its_own_cooldown(db):
    rng = FixedRandom(amount=75, choice_index=4)
    payout = work(2, now=NOW, rng=rng)
    assert payout.amount == 75
    assert payout.flavour == "You delivered mail and received"
    assert rng.ranges == [(50, 200)]

    with pytest.raises(CooldownActive) as excinfo:
        work(2, now=NOW + timedelta(minutes=90), rng=rng)
    assert format_remaining(excinfo.value.remaining) == "00:30:00"

    claim_daily(2, now=NOW + timedelta(minutes=90), rng=FixedRandom(amount=200))
    work(2, now=NOW + timedelta(hours=2), rng=rng)
    assert balance_of(2) == 350


def test_coin_flip_win_and_loss(db):
    wallet = get_wallet(3)
    wallet.balance = 100
    wallet.save()

    won = coin_flip(3, "h", "40", rng=FixedRandom(choice_index=0))
    assert won.won
    assert won.result == "heads"
    assert won.balance == 140

    lost = coin_flip(3, "Tails", 140, rng=FixedRandom(choice_index=0))
    assert not lost.won
    assert lost.balance == 0
    assert balance_of(3) == 0


def test_coin_flip_rejects_bad_bets(db):
    wallet = get_wallet(4)
    wallet.balance = 10
    wallet.save()
    with pytest.raises(InsufficientFunds):
        coin_flip(4, "heads", 11, rng=FixedRandom())
    with pytest.raises(InvalidBet):
        coin_flip(4, "heads", "-5", rng=FixedRandom())
    with pytest.raises(InvalidBet):
        coin_flip(4, "heads", "lots", rng=FixedRandom())
    with pytest.raises(InvalidBet):
        coin_flip(4, "edge", 5, rng=FixedRandom())
    assert balance_of(4) == 10


def test_parse_guess_and_format_remaining():
    assert parse_guess(" T ") == "tails"
    assert parse_guess("heads") == "heads"
    assert format_remaining(timedelta(hours=25, minutes=1, seconds=2)) == "25:01:02"
    assert format_remaining(timedelta(seconds=-5)) == "00:00:00"
